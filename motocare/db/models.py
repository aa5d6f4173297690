"""SQLAlchemy ORM models."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from motocare.core.enums import (
    AppointmentStatus,
    GarageStatus,
    InvoiceStatus,
    RewardType,
    UserRole,
)
from motocare.db.session import Base
from motocare.db.types import AppointmentStatusType, StatusHistoryEntry

MONEY = Numeric(10, 2)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_column(enum_cls):
    return Enum(enum_cls, native_enum=False, length=32, validate_strings=True)


class User(Base):
    """A platform account; customers own bikes and appointments."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole),
        nullable=False,
        default=UserRole.CUSTOMER,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    bikes: Mapped[list["Bike"]] = relationship(back_populates="owner")
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="user")


class Garage(Base):
    """A service garage that accepts bookings once approved."""

    __tablename__ = "garages"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    owner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    status: Mapped[GarageStatus] = mapped_column(
        _enum_column(GarageStatus),
        nullable=False,
        default=GarageStatus.PENDING,
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    appointments: Mapped[list["Appointment"]] = relationship(back_populates="garage")


class Bike(Base):
    """A bike registered by a customer."""

    __tablename__ = "bikes"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    company: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    registration_no: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    owner: Mapped["User"] = relationship(back_populates="bikes")


class Appointment(Base):
    """A service request for one bike at one garage."""

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    bike_id: Mapped[int] = mapped_column(ForeignKey("bikes.id"), nullable=False)
    garage_id: Mapped[int] = mapped_column(ForeignKey("garages.id"), nullable=False, index=True)

    km_running: Mapped[int] = mapped_column(Integer, nullable=False)
    service_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="General Service",
    )
    preferred_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    quoted_price: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    status: Mapped[AppointmentStatus] = mapped_column(
        AppointmentStatusType(),
        nullable=False,
        default=AppointmentStatus.REQUESTED,
        index=True,
    )
    status_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    decided_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reschedule_from: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    reschedule_to: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    user: Mapped["User"] = relationship(back_populates="appointments")
    bike: Mapped["Bike"] = relationship()
    garage: Mapped["Garage"] = relationship(back_populates="appointments")
    invoice: Mapped[Optional["Invoice"]] = relationship(
        back_populates="appointment",
        uselist=False,
    )

    @property
    def history(self) -> list[StatusHistoryEntry]:
        return [StatusHistoryEntry.from_dict(entry) for entry in self.status_history or []]


class Invoice(Base):
    """The bill for one appointment."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    appointment_id: Mapped[int] = mapped_column(
        ForeignKey("appointments.id"),
        nullable=False,
        unique=True,
        index=True,
    )

    subtotal_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    vat_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    redeemed_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    redeemed_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    status: Mapped[InvoiceStatus] = mapped_column(
        _enum_column(InvoiceStatus),
        nullable=False,
        default=InvoiceStatus.DRAFT,
        index=True,
    )

    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    appointment: Mapped["Appointment"] = relationship(back_populates="invoice")
    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id"),
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    line_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="items")


class RewardTransaction(Base):
    """Append-only loyalty ledger row."""

    __tablename__ = "reward_transactions"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "appointment_id",
            "type",
            name="uq_reward_transactions_user_appointment_type",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    appointment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("appointments.id"),
        nullable=True,
    )

    type: Mapped[RewardType] = mapped_column(_enum_column(RewardType), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
