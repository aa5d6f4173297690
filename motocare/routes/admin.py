"""Admin triage, pricing and invoicing routes."""

import math
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from motocare.core.config import Settings
from motocare.db.session import get_db
from motocare.routes.deps import get_app_settings, require_admin
from motocare.schemas.appointment import (
    AdminAppointmentResponse,
    ExpirySweepResponse,
    QuotedPriceRequest,
    SlotAvailabilityResponse,
)
from motocare.schemas.common import APIResponse, Page
from motocare.schemas.invoice import (
    InvoiceCreateRequest,
    InvoiceEditRequest,
    InvoiceResponse,
    InvoiceStatusRequest,
)
from motocare.services.appointment_service import (
    expire_stale_appointments,
    list_appointments,
    set_quoted_price,
)
from motocare.services.appointment_status import Caller
from motocare.services.invoice_service import (
    create_invoice,
    edit_invoice_draft,
    list_pending_payments,
    transition_invoice,
)
from motocare.services.slot_service import get_slot_availability

router = APIRouter(prefix="/admin", tags=["admin"])


def _dump_items(items) -> list[dict]:
    return [item.model_dump() for item in items]


def _vat_or_default(vat_rate, settings: Settings):
    return settings.default_vat_rate if vat_rate is None else vat_rate


@router.get("/appointments", response_model=APIResponse[Page[AdminAppointmentResponse]])
def admin_list_appointments(
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    _: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows, total = list_appointments(db=db, status=status, page=page, limit=limit)
    return APIResponse(
        success=True,
        data=Page[AdminAppointmentResponse](
            items=[AdminAppointmentResponse.model_validate(row) for row in rows],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit),
        ),
    )


@router.get("/appointments/slots", response_model=APIResponse[SlotAvailabilityResponse])
def admin_slot_occupancy(
    date: date,
    garage_id: int | None = None,
    _: Caller = Depends(require_admin),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    return APIResponse(
        success=True,
        data=SlotAvailabilityResponse(
            **get_slot_availability(
                db=db,
                target_date=date,
                garage_id=garage_id,
                max_per_slot=settings.max_per_slot,
            )
        ),
    )


@router.patch(
    "/appointments/{appointment_id}/price",
    response_model=APIResponse[AdminAppointmentResponse],
)
def admin_set_price(
    appointment_id: int,
    payload: QuotedPriceRequest,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    appointment = set_quoted_price(
        db=db,
        appointment_id=appointment_id,
        price=payload.quoted_price,
        actor_id=caller.user_id,
    )
    return APIResponse(success=True, data=AdminAppointmentResponse.model_validate(appointment))


@router.post(
    "/appointments/{appointment_id}/invoice",
    status_code=201,
    response_model=APIResponse[InvoiceResponse],
)
def admin_create_invoice(
    appointment_id: int,
    payload: InvoiceCreateRequest,
    caller: Caller = Depends(require_admin),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    invoice = create_invoice(
        db=db,
        appointment_id=appointment_id,
        items=_dump_items(payload.items),
        vat_rate=_vat_or_default(payload.vat_rate, settings),
        initial_status=payload.status,
        actor_id=caller.user_id,
    )
    return APIResponse(success=True, data=InvoiceResponse.model_validate(invoice))


@router.post("/appointments/expire", response_model=APIResponse[ExpirySweepResponse])
def admin_expire_stale(
    _: Caller = Depends(require_admin),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    expired = expire_stale_appointments(db=db, threshold_hours=settings.request_expiry_hours)
    return APIResponse(success=True, data=ExpirySweepResponse(expired=expired))


@router.patch("/invoices/{invoice_id}", response_model=APIResponse[InvoiceResponse])
def admin_edit_invoice(
    invoice_id: int,
    payload: InvoiceEditRequest,
    caller: Caller = Depends(require_admin),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    invoice = edit_invoice_draft(
        db=db,
        invoice_id=invoice_id,
        items=_dump_items(payload.items),
        vat_rate=_vat_or_default(payload.vat_rate, settings),
        actor_id=caller.user_id,
    )
    return APIResponse(success=True, data=InvoiceResponse.model_validate(invoice))


@router.patch("/invoices/{invoice_id}/status", response_model=APIResponse[InvoiceResponse])
def admin_update_invoice_status(
    invoice_id: int,
    payload: InvoiceStatusRequest,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    invoice = transition_invoice(
        db=db,
        invoice_id=invoice_id,
        to_status=payload.status,
        redeem_points_value=payload.redeem_points,
        actor_id=caller.user_id,
    )
    return APIResponse(success=True, data=InvoiceResponse.model_validate(invoice))


@router.get("/invoices/pending", response_model=APIResponse[list[InvoiceResponse]])
def admin_pending_payments(
    _: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    invoices = list_pending_payments(db=db)
    return APIResponse(
        success=True,
        data=[InvoiceResponse.model_validate(invoice) for invoice in invoices],
    )
