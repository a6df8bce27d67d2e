from datetime import UTC, date as _date, datetime, time as _time
from decimal import Decimal
from enum import Enum as _Enum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class (explicit for mypy)."""

    pass


class ServiceType(str, _Enum):
    MUSIC_LESSON = "music_lesson"
    RECORDING = "recording"
    REHEARSAL = "rehearsal"
    DANCE = "dance"
    ARRANGEMENT = "arrangement"
    VOICEOVER = "voiceover"


class BookingStatus(str, _Enum):  # values match DB labels
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    # old row of a reschedule chain, superseded by the row pointing at it
    RESCHEDULED = "rescheduled"


class PaymentStatus(str, _Enum):
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    FAILED = "failed"


class PolicyType(str, _Enum):
    CANCELLATION = "cancellation"
    RESCHEDULING = "rescheduling"


def normalize_booking_status(value: str | BookingStatus | None) -> BookingStatus | None:
    """Return a BookingStatus enum when possible (accepts strings/enum values)."""
    if isinstance(value, BookingStatus):
        return value
    if isinstance(value, str):
        try:
            return BookingStatus(value.strip().lower())
        except ValueError:
            return None
    return None


def normalize_service_type(value: str | ServiceType | None) -> ServiceType | None:
    if isinstance(value, ServiceType):
        return value
    if isinstance(value, str):
        try:
            return ServiceType(value.strip().lower())
        except ValueError:
            return None
    return None


TERMINAL_STATUSES = frozenset(
    {
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
        BookingStatus.RESCHEDULED,
    }
)

# Statuses that occupy their [start, end) interval
BLOCKING_STATUSES = frozenset(set(BookingStatus) - {BookingStatus.CANCELLED, BookingStatus.RESCHEDULED})

CANCELLABLE_STATUSES = frozenset(
    {
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.IN_PROGRESS,
    }
)

RESCHEDULABLE_STATUSES = frozenset(
    {
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
    }
)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.RESCHEDULED}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.RESCHEDULED}
    ),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.RESCHEDULED: frozenset(),
}


def can_transition(current: BookingStatus | str | None, target: BookingStatus) -> bool:
    status = normalize_booking_status(current)
    if status is None:
        return False
    return target in ALLOWED_TRANSITIONS[status]


def _enum_column(enum_cls: type[_Enum], name: str) -> Enum:
    # persist lowercase values, not member names
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda e: [m.value for m in e],
        native_enum=True,
        validate_strings=True,
    )


class Instructor(Base):
    __tablename__ = "instructors"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120))
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_date_room", "booking_date", "room"),
        Index("ix_bookings_date_instructor", "booking_date", "instructor_id"),
    )

    booking_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_reference: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_contact: Mapped[str | None] = mapped_column(String(64), nullable=True)

    service_type: Mapped[ServiceType] = mapped_column(_enum_column(ServiceType, "service_type"))
    # exclusivity scope shared by every service mapped onto the same room
    room: Mapped[str] = mapped_column(String(64))
    instructor_id: Mapped[int | None] = mapped_column(
        ForeignKey("instructors.id", ondelete="SET NULL"), nullable=True
    )

    booking_date: Mapped[_date] = mapped_column(Date)
    start_time: Mapped[_time] = mapped_column(Time)
    end_time: Mapped[_time] = mapped_column(Time)
    duration_minutes: Mapped[int] = mapped_column(Integer)

    status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus, "booking_status"), default=BookingStatus.PENDING
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus, "payment_status"), default=PaymentStatus.PENDING
    )
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    invoice_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    rescheduling_fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    rescheduled_from: Mapped[int | None] = mapped_column(
        ForeignKey("bookings.booking_id", ondelete="SET NULL"), nullable=True
    )
    # set on the superseded row once its replacement exists
    rescheduled_to: Mapped[int | None] = mapped_column(
        ForeignKey("bookings.booking_id", ondelete="SET NULL"), nullable=True
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


class CancellationPolicy(Base):
    __tablename__ = "cancellation_policies"
    __table_args__ = (
        # retired tiers may share a threshold; only one active tier per threshold
        Index(
            "uq_policy_tier_active",
            "policy_type",
            "hours_before_booking",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    policy_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_type: Mapped[PolicyType] = mapped_column(_enum_column(PolicyType, "policy_type"))
    hours_before_booking: Mapped[int] = mapped_column(Integer)
    # percentages are stored as 0..100
    refund_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    fee_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    description: Mapped[str] = mapped_column(String(255), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class BookingRefund(Base):
    """Pending money movement: refund (> 0) or rescheduling fee (< 0)."""

    __tablename__ = "booking_refunds"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.booking_id", ondelete="CASCADE"))
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    refund_reason: Mapped[str] = mapped_column(String(32))
    refund_method: Mapped[str] = mapped_column(String(32), default="original_payment_method")
    status: Mapped[str] = mapped_column(String(16), default="pending")
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(64))
    entity_type: Mapped[str] = mapped_column(String(32), default="booking")
    entity_id: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


__all__ = [
    "Base",
    "ServiceType",
    "BookingStatus",
    "PaymentStatus",
    "PolicyType",
    "Instructor",
    "Booking",
    "CancellationPolicy",
    "BookingRefund",
    "ActivityLog",
    "normalize_booking_status",
    "normalize_service_type",
    "can_transition",
    "TERMINAL_STATUSES",
    "BLOCKING_STATUSES",
    "CANCELLABLE_STATUSES",
    "RESCHEDULABLE_STATUSES",
    "ALLOWED_TRANSITIONS",
]
