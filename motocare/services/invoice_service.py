"""Invoice pricing, lifecycle and payment settlement."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from motocare.core.domain_exceptions import (
    ConflictError,
    InvalidTransitionError,
    LockedError,
    NotFoundError,
    ValidationError,
)
from motocare.core.enums import InvoiceStatus
from motocare.db.models import Appointment, Invoice, InvoiceItem
from motocare.services.reward_service import (
    award_service_points,
    ensure_redeemable,
    parse_redeem_points,
    points_to_amount,
    redeem_points,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
# Invoice.vat_rate is Numeric(5, 2)
MAX_VAT_RATE = Decimal("999.99")

INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.ISSUED, InvoiceStatus.CANCELLED}),
    InvoiceStatus.ISSUED: frozenset(
        {InvoiceStatus.PAYMENT_PENDING, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.PAYMENT_PENDING: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}
CREATABLE_STATUSES = frozenset(
    {
        InvoiceStatus.DRAFT,
        InvoiceStatus.ISSUED,
        InvoiceStatus.PAYMENT_PENDING,
        InvoiceStatus.PAID,
    }
)
POSITIVE_TOTAL_STATUSES = frozenset(
    {InvoiceStatus.ISSUED, InvoiceStatus.PAYMENT_PENDING, InvoiceStatus.PAID}
)


@dataclass(frozen=True)
class LineItem:
    description: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return _money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def normalize_items(items: Iterable[Any] | None) -> list[LineItem]:
    """Keep only items with a description and a non-negative unit price.

    Items may be dicts or objects exposing ``description``, ``unit_price`` and
    ``quantity``. A missing quantity counts as 1.
    """
    normalized: list[LineItem] = []
    for item in items or []:
        description = str(_field(item, "description") or "").strip()
        unit_price = _decimal_or_none(_field(item, "unit_price"))
        raw_quantity = _field(item, "quantity")
        quantity = _decimal_or_none(1 if raw_quantity in (None, "") else raw_quantity)

        if not description or unit_price is None or unit_price < 0:
            continue
        if quantity is None or quantity < 1 or quantity != quantity.to_integral_value():
            continue

        normalized.append(
            LineItem(
                description=description,
                unit_price=_money(unit_price),
                quantity=int(quantity),
            )
        )
    return normalized


def calculate_totals(items: Iterable[LineItem], vat_rate) -> InvoiceTotals:
    rate = Decimal(str(vat_rate))
    subtotal = sum((item.unit_price * item.quantity for item in items), ZERO)
    vat_amount = _money(subtotal * rate / 100)
    subtotal = _money(subtotal)
    return InvoiceTotals(
        subtotal=subtotal,
        vat_amount=vat_amount,
        total=subtotal + vat_amount,
    )


def parse_vat_rate(value, *, strict: bool) -> Decimal:
    """Return a usable VAT rate rounded to the stored precision.

    Invalid values raise when ``strict``, else mean 0. Rates too large for the
    column always raise.
    """
    rate = _decimal_or_none(value)
    if rate is None or rate < 0:
        if strict:
            raise ValidationError("Valid VAT rate is required.")
        return ZERO
    rate = _money(rate)
    if rate > MAX_VAT_RATE:
        raise ValidationError(f"VAT rate cannot exceed {MAX_VAT_RATE}.")
    return rate


def _parse_invoice_status(value, *, default: InvoiceStatus | None = None) -> InvoiceStatus:
    if isinstance(value, InvoiceStatus):
        return value
    try:
        return InvoiceStatus(str(value or "").strip().upper())
    except ValueError:
        if default is not None:
            return default
        raise ValidationError("Invalid invoice status.") from None


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.scalar(
        select(Invoice)
        .options(selectinload(Invoice.items), selectinload(Invoice.appointment))
        .where(Invoice.id == invoice_id)
    )
    if invoice is None:
        raise NotFoundError("Invoice not found.")
    return invoice


def _replace_items(invoice: Invoice, items: list[LineItem]) -> None:
    invoice.items.clear()
    invoice.items.extend(
        InvoiceItem(
            description=item.description,
            unit_price=item.unit_price,
            quantity=item.quantity,
            line_total=item.line_total,
        )
        for item in items
    )


def _ensure_positive_total(total: Decimal | None) -> None:
    if total is None or total <= 0:
        raise ValidationError("Invoice amount must be greater than 0.")


def create_invoice(
    db: Session,
    appointment_id: int,
    items: Iterable[Any] | None = None,
    vat_rate=None,
    initial_status: InvoiceStatus | str | None = None,
    *,
    actor_id: int | None = None,
) -> Invoice:
    """Create the single invoice for an appointment that already has a quoted price."""
    appointment = db.scalar(select(Appointment).where(Appointment.id == appointment_id))
    if appointment is None:
        raise NotFoundError("Appointment not found.")

    if appointment.quoted_price is None:
        raise ValidationError("Set a quoted price before creating an invoice.")

    existing = db.scalar(select(Invoice.id).where(Invoice.appointment_id == appointment_id))
    if existing is not None:
        raise ConflictError("Invoice already exists.")

    status = _parse_invoice_status(initial_status, default=InvoiceStatus.DRAFT)
    if status not in CREATABLE_STATUSES:
        status = InvoiceStatus.DRAFT

    line_items = normalize_items(items)
    if line_items:
        rate = parse_vat_rate(vat_rate, strict=False)
        totals = calculate_totals(line_items, rate)
    else:
        rate = ZERO
        quoted = _money(Decimal(appointment.quoted_price))
        totals = InvoiceTotals(subtotal=quoted, vat_amount=ZERO, total=quoted)

    if status in POSITIVE_TOTAL_STATUSES:
        _ensure_positive_total(totals.total)

    now = datetime.now(timezone.utc)
    try:
        invoice = Invoice(
            appointment_id=appointment.id,
            subtotal_amount=totals.subtotal,
            vat_rate=rate,
            vat_amount=totals.vat_amount,
            total_amount=totals.total,
            redeemed_points=0,
            redeemed_amount=ZERO,
            paid_amount=totals.total if status == InvoiceStatus.PAID else None,
            status=status,
            issued_at=now if status in POSITIVE_TOTAL_STATUSES else None,
            paid_at=now if status == InvoiceStatus.PAID else None,
            created_by=actor_id,
            updated_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        _replace_items(invoice, line_items)
        db.add(invoice)
        db.flush()

        if status == InvoiceStatus.PAID:
            award_service_points(db, appointment, invoice)

        db.commit()
        db.refresh(invoice)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        "Invoice %s created for appointment %s with status %s (total=%s)",
        invoice.id,
        appointment.id,
        status.value,
        invoice.total_amount,
    )
    return invoice


def edit_invoice_draft(
    db: Session,
    invoice_id: int,
    items: Iterable[Any] | None,
    vat_rate,
    *,
    actor_id: int | None = None,
) -> Invoice:
    """Replace every line item of a DRAFT invoice and recompute its totals."""
    invoice = get_invoice(db, invoice_id)
    if invoice.status != InvoiceStatus.DRAFT:
        raise LockedError("Only draft invoices can be edited.")

    rate = parse_vat_rate(vat_rate, strict=True)
    line_items = normalize_items(items)
    if not line_items:
        raise ValidationError("At least one invoice item is required.")

    totals = calculate_totals(line_items, rate)
    try:
        _replace_items(invoice, line_items)
        invoice.subtotal_amount = totals.subtotal
        invoice.vat_rate = rate
        invoice.vat_amount = totals.vat_amount
        invoice.total_amount = totals.total
        invoice.updated_by = actor_id
        invoice.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(invoice)
        return invoice
    except SQLAlchemyError:
        db.rollback()
        raise


def _settle_redemption(db: Session, invoice: Invoice, redeem_points_value) -> None:
    appointment = invoice.appointment
    if redeem_points_value is not None and redeem_points_value != "":
        points = parse_redeem_points(redeem_points_value)
    else:
        points = parse_redeem_points(invoice.redeemed_points or 0)

    if points:
        ensure_redeemable(db, appointment.user_id, points, invoice.total_amount)
        redeem_points(
            db,
            user_id=appointment.user_id,
            appointment_id=appointment.id,
            points=points,
            note=f"Redeemed at payment for invoice {invoice.id}",
        )
        invoice.redeemed_points = points
        invoice.redeemed_amount = points_to_amount(points)
    else:
        invoice.redeemed_points = 0
        invoice.redeemed_amount = ZERO


def transition_invoice(
    db: Session,
    invoice_id: int,
    to_status: InvoiceStatus | str,
    redeem_points_value=None,
    *,
    actor_id: int | None = None,
) -> Invoice:
    """Admin-driven invoice status change, settling points on PAID."""
    target = _parse_invoice_status(to_status)
    invoice = get_invoice(db, invoice_id)
    current = _parse_invoice_status(invoice.status)

    if current == InvoiceStatus.CANCELLED and target == InvoiceStatus.PAID:
        raise InvalidTransitionError("Cancelled invoices can never be paid.")
    if current == InvoiceStatus.PAID and target == InvoiceStatus.CANCELLED:
        raise LockedError("Paid invoices cannot be cancelled.")
    if target not in INVOICE_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Invalid invoice transition: {current.value} -> {target.value}."
        )

    if target in POSITIVE_TOTAL_STATUSES:
        _ensure_positive_total(invoice.total_amount)

    now = datetime.now(timezone.utc)
    try:
        if target == InvoiceStatus.PAID:
            _settle_redemption(db, invoice, redeem_points_value)
            invoice.paid_amount = _money(invoice.total_amount - invoice.redeemed_amount)
            invoice.paid_at = now
        elif target in (InvoiceStatus.ISSUED, InvoiceStatus.PAYMENT_PENDING):
            invoice.issued_at = invoice.issued_at or now
        elif target == InvoiceStatus.CANCELLED:
            invoice.cancelled_at = now

        invoice.status = target
        invoice.updated_by = actor_id
        invoice.updated_at = now
        db.flush()

        if target == InvoiceStatus.PAID:
            award_service_points(db, invoice.appointment, invoice)

        db.commit()
        db.refresh(invoice)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Invoice %s moved %s -> %s", invoice.id, current.value, target.value)
    return invoice


def request_payment(
    db: Session,
    invoice_id: int,
    customer_id: int,
    redeem_points_value=0,
) -> Invoice:
    """Customer payment request: ISSUED -> PAYMENT_PENDING awaiting admin approval."""
    invoice = get_invoice(db, invoice_id)
    appointment = invoice.appointment
    if appointment is None or appointment.user_id != customer_id:
        raise NotFoundError("Invoice not found.")

    status = _parse_invoice_status(invoice.status)
    if status == InvoiceStatus.PAID:
        raise InvalidTransitionError("Invoice already paid.")
    if status == InvoiceStatus.CANCELLED:
        raise InvalidTransitionError("Cancelled invoices cannot be paid.")
    if status != InvoiceStatus.ISSUED:
        raise InvalidTransitionError("Invoice must be issued before payment.")

    points = parse_redeem_points(redeem_points_value)
    ensure_redeemable(db, customer_id, points, invoice.total_amount)

    try:
        invoice.redeemed_points = points
        invoice.redeemed_amount = points_to_amount(points)
        invoice.paid_amount = None
        invoice.status = InvoiceStatus.PAYMENT_PENDING
        invoice.updated_by = customer_id
        invoice.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(invoice)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        "Payment requested for invoice %s by customer %s (redeem=%d)",
        invoice.id,
        customer_id,
        points,
    )
    return invoice


def list_pending_payments(db: Session) -> list[Invoice]:
    return db.scalars(
        select(Invoice)
        .options(selectinload(Invoice.items), selectinload(Invoice.appointment))
        .where(Invoice.status == InvoiceStatus.PAYMENT_PENDING)
        .order_by(Invoice.updated_at.desc(), Invoice.id.desc())
    ).all()
