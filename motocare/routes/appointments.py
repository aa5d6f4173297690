"""Customer-facing appointment routes."""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from motocare.core.config import Settings
from motocare.db.session import get_db
from motocare.routes.deps import get_app_settings, get_caller
from motocare.schemas.appointment import (
    AppointmentCreateRequest,
    AppointmentResponse,
    CancelRequest,
    SlotAvailabilityResponse,
    StatusUpdateRequest,
)
from motocare.schemas.common import APIResponse
from motocare.services.appointment_service import (
    AppointmentDetails,
    cancel_appointment,
    create_appointment,
    list_customer_appointments,
    transition_appointment,
)
from motocare.services.appointment_status import Caller, TransitionExtras
from motocare.services.slot_service import get_slot_availability

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("/", status_code=201, response_model=APIResponse[AppointmentResponse])
def create(
    payload: AppointmentCreateRequest,
    caller: Caller = Depends(get_caller),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    appointment = create_appointment(
        db=db,
        customer_id=caller.user_id,
        bike_id=payload.bike_id,
        garage_id=payload.garage_id,
        details=AppointmentDetails(
            km_running=payload.km_running,
            preferred_date=payload.preferred_date,
            time_slot=payload.time_slot,
            service_type=payload.service_type,
            notes=payload.notes,
        ),
        max_per_slot=settings.max_per_slot,
    )
    return APIResponse(success=True, data=AppointmentResponse.model_validate(appointment))


@router.get("/", response_model=APIResponse[List[AppointmentResponse]])
def list_mine(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    appointments = list_customer_appointments(db=db, customer_id=caller.user_id)
    return APIResponse(
        success=True,
        data=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
    )


@router.get("/availability", response_model=APIResponse[SlotAvailabilityResponse])
def availability(
    garage_id: int,
    date: date,
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


@router.patch("/{appointment_id}/cancel", response_model=APIResponse[AppointmentResponse])
def cancel(
    appointment_id: int,
    payload: CancelRequest | None = None,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    appointment = cancel_appointment(
        db=db,
        appointment_id=appointment_id,
        customer_id=caller.user_id,
        reason=payload.reason if payload else None,
    )
    return APIResponse(success=True, data=AppointmentResponse.model_validate(appointment))


@router.patch("/{appointment_id}/status", response_model=APIResponse[AppointmentResponse])
def update_status(
    appointment_id: int,
    payload: StatusUpdateRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    appointment = transition_appointment(
        db=db,
        appointment_id=appointment_id,
        to_status=payload.status,
        caller=caller,
        extras=TransitionExtras(
            reason=payload.reason,
            note=payload.note,
            reschedule_from=payload.reschedule_from,
            reschedule_to=payload.reschedule_to,
        ),
    )
    return APIResponse(success=True, data=AppointmentResponse.model_validate(appointment))
