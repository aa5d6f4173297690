"""Appointment booking and lifecycle service helpers."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from motocare.core.config import DEFAULT_MAX_PER_SLOT, DEFAULT_REQUEST_EXPIRY_HOURS
from motocare.core.domain_exceptions import (
    InvalidTransitionError,
    LockedError,
    NotFoundError,
    UnauthorizedActorError,
    ValidationError,
)
from motocare.core.enums import (
    ActorRole,
    AppointmentStatus,
    GarageStatus,
    InvoiceStatus,
)
from motocare.db.models import Appointment, Bike, Garage, Invoice
from motocare.db.types import normalize_status, stored_status_values
from motocare.services.appointment_status import (
    Caller,
    TransitionExtras,
    apply_transition,
    ensure_transition,
    initial_history_entry,
    resolve_actor_role,
)
from motocare.services.reward_service import award_service_points
from motocare.services.slot_service import admit_booking, parse_time_slot

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TYPE = "General Service"
CENT = Decimal("0.01")


@dataclass
class AppointmentDetails:
    km_running: int | None
    preferred_date: date | None
    time_slot: str | None
    service_type: str | None = None
    notes: str | None = None


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.scalar(
        select(Appointment)
        .options(selectinload(Appointment.invoice).selectinload(Invoice.items))
        .where(Appointment.id == appointment_id)
    )
    if appointment is None:
        raise NotFoundError("Appointment not found.")
    return appointment


def _validate_details(details: AppointmentDetails) -> None:
    if details.preferred_date is None or not details.time_slot:
        raise ValidationError("Preferred date and time slot are required.")
    parse_time_slot(details.time_slot)
    if details.km_running is None or isinstance(details.km_running, bool):
        raise ValidationError("Odometer reading is required.")
    try:
        km_running = int(details.km_running)
    except (TypeError, ValueError):
        raise ValidationError("Odometer reading must be a whole number.") from None
    if km_running <= 0:
        raise ValidationError("Odometer reading must be greater than 0.")


def create_appointment(
    db: Session,
    customer_id: int,
    bike_id: int,
    garage_id: int,
    details: AppointmentDetails,
    *,
    max_per_slot: int = DEFAULT_MAX_PER_SLOT,
    now: datetime | None = None,
) -> Appointment:
    """Book a service request after bike, garage and slot admission checks."""
    _validate_details(details)

    bike = db.scalar(
        select(Bike)
        .where(Bike.id == bike_id)
        .where(Bike.user_id == customer_id)
    )
    if bike is None:
        raise NotFoundError("Bike not found.")

    garage = db.scalar(
        select(Garage)
        .where(Garage.id == garage_id)
        .where(Garage.status == GarageStatus.APPROVED)
        .where(Garage.is_deleted.is_(False))
    )
    if garage is None:
        raise NotFoundError("Garage not available.")

    time_slot = details.time_slot.strip()
    admit_booking(
        db,
        customer_id=customer_id,
        garage_id=garage_id,
        preferred_date=details.preferred_date,
        time_slot=time_slot,
        max_per_slot=max_per_slot,
        now=now,
    )

    ensure_transition(AppointmentStatus.DRAFT, AppointmentStatus.REQUESTED, ActorRole.CUSTOMER)
    created_at = datetime.now(timezone.utc)

    try:
        appointment = Appointment(
            user_id=customer_id,
            bike_id=bike_id,
            garage_id=garage_id,
            km_running=int(details.km_running),
            service_type=(details.service_type or "").strip() or DEFAULT_SERVICE_TYPE,
            preferred_date=details.preferred_date,
            time_slot=time_slot,
            notes=(details.notes or "").strip() or None,
            status=AppointmentStatus.REQUESTED,
            status_history=[initial_history_entry(customer_id, created_at).to_dict()],
            created_at=created_at,
            updated_at=created_at,
            updated_by=customer_id,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        "Appointment created",
        extra={
            "appointment_id": appointment.id,
            "customer_id": customer_id,
            "garage_id": garage_id,
        },
    )
    return appointment


def _parse_target_status(to_status: AppointmentStatus | str | None) -> AppointmentStatus:
    if not to_status:
        raise ValidationError("Invalid or missing status.")
    try:
        return normalize_status(to_status)
    except ValueError:
        raise ValidationError("Invalid or missing status.") from None


def transition_appointment(
    db: Session,
    appointment_id: int,
    to_status: AppointmentStatus | str,
    caller: Caller,
    extras: TransitionExtras | None = None,
) -> Appointment:
    """Move an appointment to ``to_status`` on behalf of ``caller``."""
    target = _parse_target_status(to_status)
    appointment = get_appointment(db, appointment_id)

    actor_role = resolve_actor_role(caller, appointment)
    if actor_role is None:
        raise UnauthorizedActorError("Not authorized for this appointment.")

    try:
        apply_transition(
            appointment,
            target,
            actor_id=caller.user_id,
            actor_role=actor_role,
            extras=extras,
        )
        db.flush()

        invoice = appointment.invoice
        if (
            target == AppointmentStatus.COMPLETED
            and invoice is not None
            and invoice.status == InvoiceStatus.PAID
        ):
            award_service_points(db, appointment, invoice)

        db.commit()
        db.refresh(appointment)
        return appointment
    except SQLAlchemyError:
        db.rollback()
        raise


def cancel_appointment(
    db: Session,
    appointment_id: int,
    customer_id: int,
    reason: str | None = None,
) -> Appointment:
    """Customer self-cancel of their own appointment."""
    appointment = db.scalar(
        select(Appointment)
        .where(Appointment.id == appointment_id)
        .where(Appointment.user_id == customer_id)
    )
    if appointment is None:
        raise NotFoundError("Appointment not found.")

    if appointment.status == AppointmentStatus.CANCELLED:
        raise InvalidTransitionError("Appointment already cancelled.")

    try:
        apply_transition(
            appointment,
            AppointmentStatus.CANCELLED,
            actor_id=customer_id,
            actor_role=ActorRole.CUSTOMER,
            extras=TransitionExtras(reason=reason),
        )
        db.commit()
        db.refresh(appointment)
        return appointment
    except SQLAlchemyError:
        db.rollback()
        raise


def expire_stale_appointments(
    db: Session,
    now: datetime | None = None,
    threshold_hours: int = DEFAULT_REQUEST_EXPIRY_HOURS,
) -> int:
    """Move REQUESTED appointments older than the threshold to EXPIRED.

    Re-running after a sweep finds nothing left to expire.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = now - timedelta(hours=threshold_hours)

    stale = db.scalars(
        select(Appointment)
        .where(Appointment.status.in_(stored_status_values({AppointmentStatus.REQUESTED})))
        .where(Appointment.created_at < cutoff)
        .order_by(Appointment.id.asc())
    ).all()

    try:
        for appointment in stale:
            apply_transition(
                appointment,
                AppointmentStatus.EXPIRED,
                actor_id=None,
                actor_role=ActorRole.SYSTEM,
                now=now,
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if stale:
        logger.info("Expired %d stale appointment requests.", len(stale))
    return len(stale)


def parse_price(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError("Valid quoted price is required.")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Valid quoted price is required.") from None
    if not price.is_finite() or price < 0:
        raise ValidationError("Valid quoted price is required.")
    return price.quantize(CENT, rounding=ROUND_HALF_UP)


def set_quoted_price(
    db: Session,
    appointment_id: int,
    price,
    *,
    actor_id: int | None = None,
) -> Appointment:
    """Set the quoted price while the invoice is absent or an empty draft."""
    quoted_price = parse_price(price)
    appointment = get_appointment(db, appointment_id)

    invoice = appointment.invoice
    if invoice is not None and (invoice.status != InvoiceStatus.DRAFT or invoice.items):
        raise LockedError("Price is locked once the invoice has items or is issued.")

    now = datetime.now(timezone.utc)
    try:
        appointment.quoted_price = quoted_price
        appointment.updated_by = actor_id
        appointment.updated_at = now

        if invoice is not None:
            invoice.subtotal_amount = quoted_price
            invoice.total_amount = quoted_price
            invoice.vat_rate = Decimal("0")
            invoice.vat_amount = Decimal("0")
            invoice.updated_by = actor_id
            invoice.updated_at = now

        db.commit()
        db.refresh(appointment)
        return appointment
    except SQLAlchemyError:
        db.rollback()
        raise


def list_customer_appointments(db: Session, customer_id: int) -> list[Appointment]:
    return db.scalars(
        select(Appointment)
        .options(selectinload(Appointment.invoice).selectinload(Invoice.items))
        .where(Appointment.user_id == customer_id)
        .order_by(Appointment.created_at.desc(), Appointment.id.desc())
    ).all()


def list_appointments(
    db: Session,
    status: AppointmentStatus | str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Appointment], int]:
    """Admin listing, newest first. Returns (page rows, total count)."""
    page = max(page, 1)
    limit = max(limit, 1)

    query = select(Appointment)
    count_query = select(func.count(Appointment.id))
    if status:
        statuses = stored_status_values({_parse_target_status(status)})
        query = query.where(Appointment.status.in_(statuses))
        count_query = count_query.where(Appointment.status.in_(statuses))

    total = db.scalar(count_query) or 0
    rows = db.scalars(
        query.options(selectinload(Appointment.invoice).selectinload(Invoice.items))
        .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return rows, int(total)
