"""Column types and stored record shapes.

Legacy rows may hold the status value ``PENDING``; it is read back as
``REQUESTED`` here and nowhere else.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from motocare.core.enums import ActorRole, AppointmentStatus

LEGACY_STATUS_ALIASES: dict[str, AppointmentStatus] = {
    "PENDING": AppointmentStatus.REQUESTED,
}


def normalize_status(value: str | AppointmentStatus) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    raw = str(value).strip().upper()
    if raw in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[raw]
    return AppointmentStatus(raw)


def stored_status_values(statuses: Iterable[AppointmentStatus]) -> list[str]:
    """Raw column values matching ``statuses``, legacy aliases included."""
    values = {status.value for status in statuses}
    for legacy, canonical in LEGACY_STATUS_ALIASES.items():
        if canonical.value in values:
            values.add(legacy)
    return sorted(values)


class AppointmentStatusType(TypeDecorator):
    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, AppointmentStatus):
            return value.value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return normalize_status(value)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class StatusHistoryEntry:
    from_status: AppointmentStatus
    to_status: AppointmentStatus
    actor_id: int | None
    actor_role: ActorRole
    at: datetime
    reason: str | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "from": self.from_status.value,
            "to": self.to_status.value,
            "by": self.actor_id,
            "role": self.actor_role.value,
            "at": self.at.isoformat(),
        }
        if self.reason:
            data["reason"] = self.reason
        if self.note:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusHistoryEntry":
        return cls(
            from_status=normalize_status(data["from"]),
            to_status=normalize_status(data["to"]),
            actor_id=data.get("by"),
            actor_role=ActorRole(data["role"]),
            at=_parse_timestamp(data["at"]),
            reason=data.get("reason"),
            note=data.get("note"),
        )
