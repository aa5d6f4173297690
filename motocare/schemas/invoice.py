from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict

from motocare.core.enums import InvoiceStatus


class InvoiceItemPayload(BaseModel):
    description: str | None = None
    unit_price: Any = None
    quantity: Any = None


class InvoiceCreateRequest(BaseModel):
    items: list[InvoiceItemPayload] = []
    vat_rate: Any = None
    status: str | None = None


class InvoiceEditRequest(BaseModel):
    items: list[InvoiceItemPayload] = []
    vat_rate: Any = None


class InvoiceStatusRequest(BaseModel):
    status: str
    redeem_points: int | None = None


class PaymentRequest(BaseModel):
    redeem_points: int = 0


class InvoiceItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    subtotal_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    redeemed_points: int
    redeemed_amount: Decimal
    paid_amount: Decimal | None = None
    status: InvoiceStatus
    issued_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    items: list[InvoiceItemResponse] = []
