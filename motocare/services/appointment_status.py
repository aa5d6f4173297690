"""Appointment lifecycle state machine.

The transition table maps ``(from, to)`` to the actor roles allowed to make
that move. A pair missing from the table is an invalid transition; a pair
present with the caller's role missing is a forbidden one.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from motocare.core.domain_exceptions import (
    ForbiddenTransitionError,
    InvalidTransitionError,
    ValidationError,
)
from motocare.core.enums import ActorRole, AppointmentStatus, UserRole
from motocare.core.error_codes import ErrorCode
from motocare.db.models import Appointment
from motocare.db.types import StatusHistoryEntry, normalize_status

logger = logging.getLogger(__name__)

S = AppointmentStatus
R = ActorRole

TRANSITIONS: dict[AppointmentStatus, dict[AppointmentStatus, frozenset[ActorRole]]] = {
    S.DRAFT: {
        S.REQUESTED: frozenset({R.CUSTOMER}),
    },
    S.REQUESTED: {
        S.CONFIRMED: frozenset({R.ADMIN, R.PROVIDER}),
        S.REJECTED: frozenset({R.ADMIN, R.PROVIDER}),
        S.CANCELLED: frozenset({R.ADMIN, R.CUSTOMER}),
        S.EXPIRED: frozenset({R.SYSTEM}),
    },
    S.CONFIRMED: {
        S.CANCELLED: frozenset({R.ADMIN, R.CUSTOMER, R.PROVIDER}),
        S.RESCHEDULED: frozenset({R.ADMIN, R.PROVIDER}),
        S.NO_SHOW: frozenset({R.ADMIN, R.PROVIDER}),
        S.COMPLETED: frozenset({R.ADMIN, R.PROVIDER}),
    },
    S.RESCHEDULED: {
        S.CONFIRMED: frozenset({R.PROVIDER}),
        S.CANCELLED: frozenset({R.ADMIN, R.CUSTOMER}),
    },
}

INVALID = "invalid"
FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    error_kind: str | None = None


@dataclass(frozen=True)
class Caller:
    """Identity of whoever is acting, as supplied by the hosting application."""

    user_id: int | None
    role: UserRole | str = UserRole.CUSTOMER


@dataclass
class TransitionExtras:
    reason: str | None = None
    note: str | None = None
    reschedule_from: datetime | str | None = None
    reschedule_to: datetime | str | None = None


def _is_admin(role: UserRole | str | None) -> bool:
    if isinstance(role, UserRole):
        return role == UserRole.ADMIN
    return str(role or "").strip().upper() == UserRole.ADMIN.value


def resolve_actor_role(caller: Caller, appointment: Appointment) -> ActorRole | None:
    """Return the role the caller acts in for this appointment, or None."""
    if _is_admin(caller.role):
        return ActorRole.ADMIN
    if caller.user_id is not None and appointment.user_id == caller.user_id:
        return ActorRole.CUSTOMER
    return None


def can_transition(
    from_status: AppointmentStatus | str,
    to_status: AppointmentStatus | str,
    role: ActorRole | None,
) -> TransitionCheck:
    allowed_roles = TRANSITIONS.get(normalize_status(from_status), {}).get(
        normalize_status(to_status)
    )
    if allowed_roles is None:
        return TransitionCheck(allowed=False, error_kind=INVALID)
    if role not in allowed_roles:
        return TransitionCheck(allowed=False, error_kind=FORBIDDEN)
    return TransitionCheck(allowed=True)


def ensure_transition(
    from_status: AppointmentStatus,
    to_status: AppointmentStatus,
    role: ActorRole,
) -> None:
    check = can_transition(from_status, to_status, role)
    if check.allowed:
        return
    if check.error_kind == FORBIDDEN:
        raise ForbiddenTransitionError(
            f"{role.value} is not allowed to move an appointment "
            f"from {from_status.value} to {to_status.value}."
        )
    raise InvalidTransitionError(
        f"Invalid status transition: {from_status.value} -> {to_status.value}.",
    )


def parse_timestamp(value: datetime | str | None, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            f"{field} must be an ISO-8601 timestamp.",
            code=ErrorCode.VALIDATION_ERROR,
        ) from None


def build_schedule_datetime(preferred_date: date | None, time_slot: str | None) -> datetime | None:
    if preferred_date is None or not time_slot:
        return None
    try:
        slot = time.fromisoformat(time_slot)
    except ValueError:
        return None
    return datetime.combine(preferred_date, slot)


def _wall_clock(value: datetime) -> datetime:
    """Keep the wall-clock time as written, dropping any offset.

    Reschedule columns hold garage-local times, matching ``preferred_date`` and
    ``time_slot``, so an offset is never converted to UTC.
    """
    return value.replace(tzinfo=None)


def apply_transition(
    appointment: Appointment,
    to_status: AppointmentStatus,
    *,
    actor_id: int | None,
    actor_role: ActorRole,
    extras: TransitionExtras | None = None,
    now: datetime | None = None,
) -> StatusHistoryEntry:
    """Validate and apply one status change, appending a history entry.

    The caller is responsible for committing the session.
    """
    extras = extras or TransitionExtras()
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    from_status = normalize_status(appointment.status)
    to_status = normalize_status(to_status)

    ensure_transition(from_status, to_status, actor_role)

    reason = (extras.reason or "").strip() or None
    note = (extras.note or "").strip() or None

    if to_status == S.CANCELLED and actor_role == R.ADMIN and not reason:
        raise ValidationError("Cancellation reason is required.")

    reschedule_to = None
    reschedule_from = None
    if to_status == S.RESCHEDULED:
        reschedule_to = parse_timestamp(extras.reschedule_to, "reschedule_to")
        if reschedule_to is None:
            raise ValidationError("Reschedule time is required.")
        reschedule_from = parse_timestamp(extras.reschedule_from, "reschedule_from")
        if reschedule_from is None:
            reschedule_from = build_schedule_datetime(
                appointment.preferred_date,
                appointment.time_slot,
            )

    history = appointment.history
    if history and history[-1].at > now:
        # Keep history ordered even if clocks disagree between writers.
        now = history[-1].at

    appointment.status = to_status
    appointment.updated_by = actor_id
    appointment.updated_at = now

    if to_status in (S.CONFIRMED, S.REJECTED):
        appointment.decided_by = actor_id
        appointment.decided_at = now

    if to_status == S.CANCELLED:
        appointment.cancellation_reason = reason

    if to_status == S.RESCHEDULED:
        appointment.reschedule_from = _wall_clock(reschedule_from) if reschedule_from else None
        appointment.reschedule_to = _wall_clock(reschedule_to)

    if actor_role == R.ADMIN and note:
        appointment.internal_notes = note

    entry = StatusHistoryEntry(
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        actor_role=actor_role,
        at=now,
        reason=reason,
        note=note,
    )
    appointment.status_history = [*(appointment.status_history or []), entry.to_dict()]

    logger.info(
        "Appointment %s moved %s -> %s by %s",
        appointment.id,
        from_status.value,
        to_status.value,
        actor_role.value,
    )
    return entry


def initial_history_entry(customer_id: int, now: datetime) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        from_status=S.DRAFT,
        to_status=S.REQUESTED,
        actor_id=customer_id,
        actor_role=R.CUSTOMER,
        at=now,
    )
