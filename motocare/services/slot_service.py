"""Slot capacity and booking-time admission checks.

A slot is a (garage, date, HH:MM) tuple. Only appointments in an active
status occupy it. Reads and the write-side check share the same status set,
and the write side re-counts inside the creating request.
"""

import re
from datetime import date, datetime, time

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from motocare.core.domain_exceptions import AdmissionRejectedError, ValidationError
from motocare.core.enums import ACTIVE_STATUSES, TERMINAL_STATUSES
from motocare.db.models import Appointment
from motocare.db.types import stored_status_values

TIME_SLOT_PATTERN = re.compile(r"^\d{2}:\d{2}$")


def parse_time_slot(time_slot: str | None) -> time:
    raw = (time_slot or "").strip()
    if not TIME_SLOT_PATTERN.match(raw):
        raise ValidationError("Time slot must be in HH:MM format.")
    try:
        return time.fromisoformat(raw)
    except ValueError:
        raise ValidationError("Time slot must be in HH:MM format.") from None


def ensure_not_in_past(preferred_date: date, time_slot: str, now: datetime | None = None) -> None:
    """Reject dates before today and same-day slots that have already started."""
    now = now or datetime.now()
    slot = parse_time_slot(time_slot)
    if preferred_date < now.date():
        raise AdmissionRejectedError("Date cannot be in the past.")
    if datetime.combine(preferred_date, slot) <= now.replace(tzinfo=None):
        raise AdmissionRejectedError("Time slot cannot be in the past.")


def count_slot_occupancy(
    db: Session,
    garage_id: int,
    preferred_date: date,
    time_slot: str,
) -> int:
    return db.scalar(
        select(func.count(Appointment.id))
        .where(Appointment.garage_id == garage_id)
        .where(Appointment.preferred_date == preferred_date)
        .where(Appointment.time_slot == time_slot)
        .where(Appointment.status.in_(stored_status_values(ACTIVE_STATUSES)))
    ) or 0


def check_slot_conflict(
    db: Session,
    garage_id: int,
    preferred_date: date,
    time_slot: str,
    *,
    max_per_slot: int,
) -> bool:
    occupancy = count_slot_occupancy(db, garage_id, preferred_date, time_slot)
    return occupancy >= max_per_slot


def ensure_no_live_appointment(db: Session, customer_id: int) -> None:
    """Only one non-terminal appointment per customer at a time."""
    live_status = db.scalar(
        select(Appointment.status)
        .where(Appointment.user_id == customer_id)
        .where(Appointment.status.not_in(stored_status_values(TERMINAL_STATUSES)))
        .limit(1)
    )
    if live_status is not None:
        raise AdmissionRejectedError("You can only have one active appointment.")


def admit_booking(
    db: Session,
    *,
    customer_id: int,
    garage_id: int,
    preferred_date: date,
    time_slot: str,
    max_per_slot: int,
    now: datetime | None = None,
) -> None:
    """Run every admission rule for a new booking, raising on the first failure."""
    ensure_not_in_past(preferred_date, time_slot, now=now)
    ensure_no_live_appointment(db, customer_id)
    if check_slot_conflict(
        db,
        garage_id,
        preferred_date,
        time_slot,
        max_per_slot=max_per_slot,
    ):
        raise AdmissionRejectedError("Selected time slot is fully booked.")


def get_slot_counts(
    db: Session,
    target_date: date,
    garage_id: int | None = None,
) -> dict[str, int]:
    query = (
        select(Appointment.time_slot, func.count(Appointment.id))
        .where(Appointment.preferred_date == target_date)
        .where(Appointment.status.in_(stored_status_values(ACTIVE_STATUSES)))
        .group_by(Appointment.time_slot)
        .order_by(Appointment.time_slot.asc())
    )
    if garage_id is not None:
        query = query.where(Appointment.garage_id == garage_id)
    return {time_slot: int(count) for time_slot, count in db.execute(query).all()}


def get_slot_availability(
    db: Session,
    target_date: date,
    garage_id: int | None,
    *,
    max_per_slot: int,
) -> dict:
    return {
        "date": target_date,
        "garage_id": garage_id,
        "max_per_slot": max_per_slot,
        "counts": get_slot_counts(db, target_date, garage_id),
    }
