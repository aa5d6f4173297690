"""Customer invoice routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from motocare.db.session import get_db
from motocare.routes.deps import get_caller
from motocare.schemas.common import APIResponse
from motocare.schemas.invoice import InvoiceResponse, PaymentRequest
from motocare.services.appointment_status import Caller
from motocare.services.invoice_service import request_payment

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/{invoice_id}/pay", response_model=APIResponse[InvoiceResponse])
def pay(
    invoice_id: int,
    payload: PaymentRequest | None = None,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    invoice = request_payment(
        db=db,
        invoice_id=invoice_id,
        customer_id=caller.user_id,
        redeem_points_value=payload.redeem_points if payload else 0,
    )
    return APIResponse(success=True, data=InvoiceResponse.model_validate(invoice))
