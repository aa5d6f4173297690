"""Loyalty points ledger.

Balances are never stored: they are derived from the ledger as
``sum(EARN) - sum(REDEEM)``. EARN and REDEEM rows are unique per
(user, appointment), so retried completion or payment events cannot award
or deduct twice.
"""

import logging
import math
from decimal import Decimal
from typing import Final

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from motocare.core.domain_exceptions import RedemptionLimitError, ValidationError
from motocare.core.enums import AppointmentStatus, RewardType
from motocare.db.models import Appointment, Invoice, RewardTransaction

logger = logging.getLogger(__name__)

EARN_RATE: Final[Decimal] = Decimal("0.5")
MAX_POINTS_PER_SERVICE: Final[int] = 1000
REDEEM_RATE: Final[Decimal] = Decimal("0.5")
MIN_REDEEM_POINTS: Final[int] = 100
POINT_VALUE: Final[Decimal] = Decimal("1")
RECENT_TRANSACTIONS_LIMIT: Final[int] = 50

_LEDGER_KEY = ("user_id", "appointment_id", "type")


def _to_decimal(value) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        return None
    if not amount.is_finite():
        return None
    return amount


def calculate_service_points(amount) -> int:
    """Points earned for a completed service worth ``amount``."""
    safe = _to_decimal(amount)
    if safe is None or safe <= 0:
        return 0
    return min(MAX_POINTS_PER_SERVICE, math.floor(safe * EARN_RATE))


def compute_redeemable_points(balance, invoice_total) -> int:
    """Largest number of points that may be applied to an invoice."""
    total = _to_decimal(invoice_total)
    safe_balance = _to_decimal(balance)
    if total is None or total <= 0:
        return 0
    if safe_balance is None or safe_balance <= 0:
        return 0
    max_by_amount = math.floor(total * REDEEM_RATE)
    max_allowed = max(0, min(int(safe_balance), max_by_amount))
    if max_allowed < MIN_REDEEM_POINTS:
        return 0
    return max_allowed


def points_to_amount(points: int) -> Decimal:
    return (Decimal(points) * POINT_VALUE).quantize(Decimal("0.01"))


def _sum_points(db: Session, user_id: int, reward_type: RewardType) -> int:
    total = db.scalar(
        select(func.coalesce(func.sum(RewardTransaction.points), 0))
        .where(RewardTransaction.user_id == user_id)
        .where(RewardTransaction.type == reward_type)
    )
    return int(total or 0)


def get_reward_balance(db: Session, user_id: int) -> dict[str, int]:
    earned = _sum_points(db, user_id, RewardType.EARN)
    redeemed = _sum_points(db, user_id, RewardType.REDEEM)
    return {
        "balance": earned - redeemed,
        "earned": earned,
        "redeemed": redeemed,
    }


def get_reward_summary(
    db: Session,
    user_id: int,
    limit: int = RECENT_TRANSACTIONS_LIMIT,
) -> dict:
    summary: dict = get_reward_balance(db, user_id)
    summary["transactions"] = db.scalars(
        select(RewardTransaction)
        .where(RewardTransaction.user_id == user_id)
        .order_by(RewardTransaction.created_at.desc(), RewardTransaction.id.desc())
        .limit(limit)
    ).all()
    return summary


def _find_entry(
    db: Session,
    user_id: int,
    appointment_id: int,
    reward_type: RewardType,
) -> RewardTransaction | None:
    return db.scalar(
        select(RewardTransaction)
        .where(RewardTransaction.user_id == user_id)
        .where(RewardTransaction.appointment_id == appointment_id)
        .where(RewardTransaction.type == reward_type)
    )


def _insert_if_absent(db: Session, values: dict) -> bool:
    """Insert one ledger row unless its (user, appointment, type) key exists.

    Returns True when this call created the row.
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect_name == "sqlite" else postgresql.insert
        statement = (
            insert(RewardTransaction)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(_LEDGER_KEY))
        )
        return db.execute(statement).rowcount == 1

    try:
        with db.begin_nested():
            db.add(RewardTransaction(**values))
    except IntegrityError:
        return False
    return True


def _record_once(
    db: Session,
    *,
    user_id: int,
    appointment_id: int,
    reward_type: RewardType,
    points: int,
    note: str,
) -> tuple[RewardTransaction, bool]:
    created = _insert_if_absent(
        db,
        {
            "user_id": user_id,
            "appointment_id": appointment_id,
            "type": reward_type,
            "points": points,
            "note": note,
        },
    )
    entry = _find_entry(db, user_id, appointment_id, reward_type)
    if entry is None:
        raise RuntimeError("Reward ledger entry missing after insert.")
    return entry, created


def award_service_points(
    db: Session,
    appointment: Appointment,
    invoice: Invoice | None = None,
) -> RewardTransaction | None:
    """Credit points for a completed service, at most once per appointment.

    Returns the new ledger row, or None when nothing was credited.
    """
    if appointment is None or appointment.status != AppointmentStatus.COMPLETED:
        return None

    amount = invoice.total_amount if invoice is not None else appointment.quoted_price
    points = calculate_service_points(amount)
    if not points:
        return None

    entry, created = _record_once(
        db,
        user_id=appointment.user_id,
        appointment_id=appointment.id,
        reward_type=RewardType.EARN,
        points=points,
        note="Service completed reward",
    )
    if not created:
        return None

    logger.info(
        "Awarded %d points to user %s for appointment %s",
        points,
        appointment.user_id,
        appointment.id,
    )
    return entry


def redeem_points(
    db: Session,
    *,
    user_id: int,
    appointment_id: int,
    points: int,
    note: str,
) -> tuple[RewardTransaction, bool]:
    entry, created = _record_once(
        db,
        user_id=user_id,
        appointment_id=appointment_id,
        reward_type=RewardType.REDEEM,
        points=points,
        note=note,
    )
    if created:
        logger.info(
            "Redeemed %d points for user %s on appointment %s",
            points,
            user_id,
            appointment_id,
        )
    return entry, created


def parse_redeem_points(value) -> int:
    """Validate a requested redemption: 0, or an integer of at least 100."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("Redeem points must be a non-negative integer.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError("Redeem points must be a non-negative integer.")
        value = int(value)
    try:
        points = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Redeem points must be a non-negative integer.") from None
    if isinstance(value, str) and value.strip() != str(points):
        raise ValidationError("Redeem points must be a non-negative integer.")
    if points < 0:
        raise ValidationError("Redeem points must be a non-negative integer.")
    if 0 < points < MIN_REDEEM_POINTS:
        raise RedemptionLimitError(f"Minimum redeemable points is {MIN_REDEEM_POINTS}.")
    return points


def ensure_redeemable(db: Session, user_id: int, points: int, invoice_total) -> None:
    if points == 0:
        return
    balance = get_reward_balance(db, user_id)["balance"]
    if points > balance:
        raise RedemptionLimitError("Redeem points exceed the available balance.")
    if points > compute_redeemable_points(balance, invoice_total):
        raise RedemptionLimitError("Redeem points exceed allowed limit.")
