from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from motocare.core.enums import ActorRole, AppointmentStatus
from motocare.schemas.invoice import InvoiceResponse


class AppointmentCreateRequest(BaseModel):
    bike_id: int
    garage_id: int
    km_running: int
    preferred_date: date
    time_slot: str = Field(pattern=r"^\d{2}:\d{2}$")
    service_type: str | None = None
    notes: str | None = None


class StatusUpdateRequest(BaseModel):
    status: str
    reason: str | None = None
    note: str | None = None
    reschedule_from: str | None = None
    reschedule_to: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class QuotedPriceRequest(BaseModel):
    quoted_price: Decimal


class StatusHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: AppointmentStatus
    to_status: AppointmentStatus
    actor_id: int | None
    actor_role: ActorRole
    at: datetime
    reason: str | None = None
    note: str | None = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    bike_id: int
    garage_id: int
    km_running: int
    service_type: str
    preferred_date: date
    time_slot: str
    notes: str | None = None
    quoted_price: Decimal | None = None
    status: AppointmentStatus
    history: list[StatusHistoryItem] = []
    decided_by: int | None = None
    decided_at: datetime | None = None
    cancellation_reason: str | None = None
    reschedule_from: datetime | None = None
    reschedule_to: datetime | None = None
    created_at: datetime
    updated_at: datetime
    invoice: InvoiceResponse | None = None


class AdminAppointmentResponse(AppointmentResponse):
    internal_notes: str | None = None


class SlotAvailabilityResponse(BaseModel):
    date: date
    garage_id: int | None
    max_per_slot: int
    counts: dict[str, int]


class ExpirySweepResponse(BaseModel):
    expired: int
