"""Booking lifecycle over the database.

Repositories own the SQL. Module-level operations open a session, run one
transaction and translate storage errors into the domain taxonomy:
``IntegrityError`` (the overlap exclusion constraint) becomes
``ConflictError`` and any other ``SQLAlchemyError`` becomes
``StorageFailure``.
"""

from __future__ import annotations

import logging
import zlib
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Any, AsyncIterator

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from studio import config
from studio.app.core.db import get_session
from studio.app.core.errors import (
    BookingNotFound,
    ConflictError,
    InvalidTransition,
    PolicyNotFoundError,
    ReschedulingNotAllowed,
    StorageFailure,
    ValidationError,
)
from studio.app.domain.models import (
    ActivityLog,
    Booking,
    BookingRefund,
    BookingStatus,
    CancellationPolicy,
    CANCELLABLE_STATUSES,
    Instructor,
    PaymentStatus,
    PolicyType,
    RESCHEDULABLE_STATUSES,
    ServiceType,
    can_transition,
    normalize_booking_status,
    normalize_service_type,
)
from studio.app.services.conflicts import (
    BookingScope,
    ConflictOutcome,
    Interval,
    filter_available,
    probe_slot,
    select_blocking,
)
from studio.app.services.policy import (
    PolicyEvaluation,
    PolicyOutcome,
    evaluate_cancellation,
    evaluate_rescheduling,
    hours_until,
)
from studio.app.services.pricing import (
    calculate_amount,
    generate_booking_reference,
    rescheduled_reference,
)
from studio.app.services.slots import (
    MINUTES_PER_DAY,
    Slot,
    TickGrid,
    build_tick_grid,
    generate_slots,
    validate_duration,
)

logger = logging.getLogger(__name__)

__all__ = [
    "BookingRequest",
    "BookingRepo",
    "PolicyRepo",
    "ActivityRepo",
    "scope_for",
    "list_available_slots",
    "get_tick_grid",
    "is_instructor_available",
    "create_booking",
    "get_booking",
    "get_booking_by_reference",
    "list_user_bookings",
    "list_bookings",
    "quote_cancellation",
    "quote_rescheduling",
    "cancel_booking",
    "reschedule_booking",
    "mark_payment_paid",
    "mark_payment_expired",
    "mark_payment_failed",
    "confirm_booking",
    "check_in_booking",
    "complete_booking",
]

_INT4_MAX = 2147483647


@dataclass
class BookingRequest:
    service_type: str
    booking_date: date
    start_time: time
    duration_minutes: int
    customer_name: str | None = None
    customer_email: str | None = None
    customer_contact: str | None = None
    user_id: int | None = None
    instructor_id: int | None = None
    payment_method: str | None = None


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class BookingRepo:
    """Booking queries. Methods take the caller's session so they share its transaction."""

    @staticmethod
    async def get(session, booking_id: int, *, for_update: bool = False) -> Booking:
        booking = await session.get(Booking, booking_id, with_for_update=for_update)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    @staticmethod
    async def get_by_reference(session, reference: str) -> Booking:
        result = await session.execute(select(Booking).where(Booking.booking_reference == reference))
        booking = result.scalars().first()
        if booking is None:
            raise BookingNotFound(reference)
        return booking

    @staticmethod
    async def list_for_user(session, user_id: int, limit: int = 100) -> list[Booking]:
        """A customer's bookings, latest first."""
        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.booking_date.desc(), Booking.start_time.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_bookings(
        session,
        booking_date: date | None = None,
        status: BookingStatus | None = None,
        limit: int = 200,
    ) -> list[Booking]:
        """Staff listing, optionally narrowed to one date and/or status."""
        stmt = select(Booking)
        if booking_date is not None:
            stmt = stmt.where(Booking.booking_date == booking_date)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.booking_date.desc(), Booking.start_time.desc()).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_blocking(
        session,
        booking_date: date,
        scope: BookingScope,
        exclude_booking_id: int | None = None,
    ) -> list[Booking]:
        result = await session.execute(select_blocking(booking_date, scope, exclude_booking_id))
        return list(result.scalars().all())

    @staticmethod
    async def acquire_scope_locks(session, booking_date: date, scope: BookingScope) -> None:
        """Serialize writers on the same (resource, date) pairs.

        Transaction-scoped advisory locks, PostgreSQL only. Keys are taken in
        sorted order so two writers never wait on each other crosswise.
        """
        if _dialect_name(session) != "postgresql":
            return
        k2 = booking_date.toordinal() % _INT4_MAX
        for key in scope.lock_keys():
            k1 = zlib.crc32(key.encode("utf-8")) & 0x7FFFFFFF
            await session.execute(text("SELECT pg_advisory_xact_lock(:k1, :k2)"), {"k1": k1, "k2": k2})


class PolicyRepo:
    @staticmethod
    async def active_policies(session, policy_type: PolicyType | None = None) -> list[CancellationPolicy]:
        stmt = select(CancellationPolicy).where(CancellationPolicy.is_active.is_(True))
        if policy_type is not None:
            stmt = stmt.where(CancellationPolicy.policy_type == policy_type)
        stmt = stmt.order_by(CancellationPolicy.hours_before_booking.desc())
        result = await session.execute(stmt)
        return list(result.scalars().all())


class ActivityRepo:
    @staticmethod
    async def log(session, action: str, booking_id: int, description: str, user_id: int | None = None) -> ActivityLog:
        entry = ActivityLog(
            user_id=user_id,
            action=action,
            entity_type="booking",
            entity_id=booking_id,
            description=description,
        )
        session.add(entry)
        return entry


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dialect_name(session) -> str | None:
    bind = getattr(session, "bind", None)
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None)


@asynccontextmanager
async def _transaction() -> AsyncIterator[Any]:
    try:
        async with get_session() as session:
            async with session.begin():
                yield session
    except IntegrityError as exc:
        logger.info("IntegrityError while writing booking (slot likely taken): %s", exc)
        raise ConflictError() from exc
    except SQLAlchemyError as exc:
        logger.error("Booking storage failure: %s", exc)
        raise StorageFailure("Booking storage is unavailable") from exc


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def _minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def _require_service(service_type: str | ServiceType | None) -> ServiceType:
    svc = normalize_service_type(service_type)
    if svc is None:
        raise ValidationError(f"Unsupported service type: {service_type!r}", code="invalid_service")
    return svc


def scope_for(service_type: str | ServiceType, instructor_id: int | None = None) -> BookingScope:
    """The room the service occupies plus the requested instructor, if any."""
    svc = _require_service(service_type)
    room = config.get_service_room(svc.value)
    if room is None:
        raise ValidationError(f"No room configured for service {svc.value}", code="invalid_service")
    return BookingScope(room=room, instructor_id=instructor_id)


def _validate_candidate(booking_date: date, start_time: time, duration_minutes: Any, now: datetime) -> Interval:
    """Duration bounds, midnight, operating hours and lead time for a new interval."""
    min_minutes, max_minutes = config.get_duration_bounds()
    duration = validate_duration(duration_minutes, min_minutes, max_minutes)
    interval = Interval.from_times(start_time, duration)
    if interval.end >= MINUTES_PER_DAY:
        raise ValidationError("Booking may not cross midnight", code="crosses_midnight")

    open_hour, close_hour = config.get_operating_hours()
    if interval.start < open_hour * 60 or interval.end > close_hour * 60:
        raise ValidationError(
            f"Booking must fall within operating hours {open_hour}:00-{close_hour}:00",
            code="outside_operating_hours",
        )

    starts_at = datetime.combine(booking_date, start_time, tzinfo=config.get_local_tz())
    if starts_at <= now:
        raise ValidationError("Cannot book a time in the past", code="booking_in_past")
    return interval


async def _ensure_instructor(session, instructor_id: int | None) -> None:
    if instructor_id is None:
        return
    instructor = await session.get(Instructor, instructor_id)
    if instructor is None or not getattr(instructor, "is_active", True):
        raise ValidationError(f"Instructor {instructor_id} is not available", code="invalid_instructor")


def _transition(booking: Booking, target: BookingStatus) -> None:
    current = normalize_booking_status(booking.status)
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Booking {booking.booking_id} cannot go from {getattr(current, 'value', current)} to {target.value}",
            details={"booking_id": booking.booking_id, "status": getattr(current, "value", None)},
        )
    booking.status = target


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


async def list_available_slots(
    booking_date: date,
    service_type: str | ServiceType,
    duration_minutes: Any,
    instructor_id: int | None = None,
) -> list[Slot]:
    """Free slots of the day for a service (and instructor) at the hourly step."""
    min_minutes, max_minutes = config.get_duration_bounds()
    duration = validate_duration(duration_minutes, min_minutes, max_minutes)
    scope = scope_for(service_type, instructor_id)
    open_hour, close_hour = config.get_operating_hours()
    candidates = generate_slots(open_hour, close_hour, duration, config.get_slot_step_minutes())

    async with _transaction() as session:
        rows = await BookingRepo.list_blocking(session, booking_date, scope)

    available = filter_available(candidates, rows)
    logger.debug(
        "Slots for %s %s %smin (instructor=%s): %d/%d free",
        booking_date, scope.room, duration, instructor_id, len(available), len(candidates),
    )
    return available


async def get_tick_grid(booking_date: date, duration_minutes: Any, instructor_id: int | None = None) -> TickGrid:
    """Half-hour staff grid over every blocking booking of the day, or one instructor's."""
    min_minutes, max_minutes = config.get_duration_bounds()
    duration = validate_duration(duration_minutes, min_minutes, max_minutes)
    open_hour, close_hour, step = config.get_grid_window()

    async with _transaction() as session:
        rows = await BookingRepo.list_blocking(session, booking_date, BookingScope(instructor_id=instructor_id))

    busy = [Interval.from_booking(r) for r in rows]
    return build_tick_grid(busy, open_hour, close_hour, duration, step)


async def is_instructor_available(
    booking_date: date,
    start_time: time,
    duration_minutes: int,
    instructor_id: int,
    exclude_booking_id: int | None = None,
) -> bool:
    async with _transaction() as session:
        check = await probe_slot(
            session,
            booking_date,
            start_time,
            int(duration_minutes),
            BookingScope(instructor_id=instructor_id),
            exclude_booking_id,
        )
    if check.outcome is ConflictOutcome.UNKNOWN:
        check.raise_for_outcome()
    return check.is_available


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_booking(request: BookingRequest, now: datetime | None = None) -> Booking:
    """Validate, lock the scope, probe for overlaps and insert a pending booking."""
    now = _now(now)
    svc = _require_service(request.service_type)
    interval = _validate_candidate(request.booking_date, request.start_time, request.duration_minutes, now)
    scope = scope_for(svc, request.instructor_id)
    duration = interval.end - interval.start
    paid_at_desk = (request.payment_method or "").strip().lower() == "cash"

    async with _transaction() as session:
        await _ensure_instructor(session, request.instructor_id)
        await BookingRepo.acquire_scope_locks(session, request.booking_date, scope)
        check = await probe_slot(session, request.booking_date, request.start_time, duration, scope)
        check.raise_for_outcome()

        booking = Booking(
            booking_reference=generate_booking_reference(),
            user_id=request.user_id,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_contact=request.customer_contact,
            service_type=svc,
            room=scope.room,
            instructor_id=request.instructor_id,
            booking_date=request.booking_date,
            start_time=_minutes_to_time(interval.start),
            end_time=_minutes_to_time(interval.end),
            duration_minutes=duration,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PAID if paid_at_desk else PaymentStatus.PENDING,
            payment_method=request.payment_method,
            paid_at=now if paid_at_desk else None,
            total_amount=calculate_amount(svc, duration),
        )
        session.add(booking)
        await session.flush()
        await ActivityRepo.log(
            session,
            "booking_created",
            booking.booking_id,
            f"Booking {booking.booking_reference} created for {booking.booking_date} {booking.start_time:%H:%M}",
            request.user_id,
        )

    logger.info(
        "Created booking %s (%s) %s %s-%s room=%s instructor=%s",
        booking.booking_id, booking.booking_reference, booking.booking_date,
        booking.start_time, booking.end_time, booking.room, booking.instructor_id,
    )
    return booking


async def get_booking(booking_id: int) -> Booking:
    async with _transaction() as session:
        return await BookingRepo.get(session, booking_id)


async def get_booking_by_reference(reference: str) -> Booking:
    async with _transaction() as session:
        return await BookingRepo.get_by_reference(session, reference.strip().upper())


async def list_user_bookings(user_id: int) -> list[Booking]:
    async with _transaction() as session:
        return await BookingRepo.list_for_user(session, user_id)


async def list_bookings(booking_date: date | None = None, status: str | BookingStatus | None = None) -> list[Booking]:
    """Bookings for the staff view; an unknown ``status`` is a ValidationError."""
    wanted = None
    if status is not None:
        wanted = normalize_booking_status(status)
        if wanted is None:
            raise ValidationError(f"Unknown booking status: {status!r}", code="invalid_status")
    async with _transaction() as session:
        return await BookingRepo.list_bookings(session, booking_date, wanted)


# ---------------------------------------------------------------------------
# Cancellation / rescheduling
# ---------------------------------------------------------------------------


def _lead_hours(booking: Booking, now: datetime) -> float:
    return hours_until(booking.booking_date, booking.start_time, now, config.get_local_tz())


def _ensure_status(booking: Booking, allowed: frozenset[BookingStatus], action: str) -> None:
    status = normalize_booking_status(booking.status)
    if status not in allowed:
        raise InvalidTransition(
            f"Booking {booking.booking_id} cannot be {action} in status {getattr(status, 'value', booking.status)}",
            details={"booking_id": booking.booking_id},
        )


async def _evaluate_cancellation(session, booking: Booking, now: datetime) -> PolicyEvaluation:
    _ensure_status(booking, CANCELLABLE_STATUSES, "cancelled")
    policies = await PolicyRepo.active_policies(session, PolicyType.CANCELLATION)
    return evaluate_cancellation(booking.total_amount, _lead_hours(booking, now), policies)


async def _evaluate_rescheduling(session, booking: Booking, now: datetime) -> PolicyEvaluation:
    _ensure_status(booking, RESCHEDULABLE_STATUSES, "rescheduled")
    policies = await PolicyRepo.active_policies(session, PolicyType.RESCHEDULING)
    return evaluate_rescheduling(
        booking.total_amount,
        _lead_hours(booking, now),
        policies,
        cutoff_hours=config.get_reschedule_cutoff_hours(),
    )


async def quote_cancellation(booking_id: int, now: datetime | None = None) -> PolicyEvaluation:
    """Refund the customer would receive if they cancelled now (no side effects)."""
    now = _now(now)
    async with _transaction() as session:
        booking = await BookingRepo.get(session, booking_id)
        return await _evaluate_cancellation(session, booking, now)


async def quote_rescheduling(booking_id: int, now: datetime | None = None) -> PolicyEvaluation:
    now = _now(now)
    async with _transaction() as session:
        booking = await BookingRepo.get(session, booking_id)
        return await _evaluate_rescheduling(session, booking, now)


async def cancel_booking(
    booking_id: int,
    reason: str | None = None,
    cancelled_by: int | None = None,
    now: datetime | None = None,
) -> tuple[Booking, PolicyEvaluation]:
    now = _now(now)
    async with _transaction() as session:
        booking = await BookingRepo.get(session, booking_id, for_update=True)
        evaluation = await _evaluate_cancellation(session, booking, now)
        if evaluation.outcome is PolicyOutcome.NO_POLICY:
            raise PolicyNotFoundError(evaluation.policy_description)

        _transition(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = now
        booking.cancelled_by = cancelled_by
        booking.cancellation_reason = reason
        booking.refund_amount = evaluation.amount

        if evaluation.amount > 0:
            session.add(
                BookingRefund(
                    booking_id=booking.booking_id,
                    refund_amount=evaluation.amount,
                    refund_reason="cancellation",
                    refund_method="original_payment_method",
                    status="pending",
                    admin_notes=f"Auto-calculated refund for cancellation: {reason or ''}".rstrip(),
                )
            )
        await ActivityRepo.log(
            session,
            "booking_cancelled",
            booking.booking_id,
            f"Booking cancelled with refund amount: {evaluation.amount}",
            cancelled_by,
        )

    logger.info(
        "Cancelled booking %s %.1fh before start, refund %s (%s%%)",
        booking_id, evaluation.hours_until_booking, evaluation.amount, evaluation.percentage,
    )
    return booking, evaluation


async def reschedule_booking(
    booking_id: int,
    new_date: date,
    new_start: time,
    rescheduled_by: int | None = None,
    now: datetime | None = None,
    reason: str | None = None,
) -> tuple[Booking, PolicyEvaluation]:
    """Move a booking: the old row is superseded by a new confirmed row.

    Returns the new booking and the fee evaluation.
    """
    now = _now(now)
    async with _transaction() as session:
        old = await BookingRepo.get(session, booking_id, for_update=True)
        evaluation = await _evaluate_rescheduling(session, old, now)
        if evaluation.outcome is PolicyOutcome.NOT_ALLOWED:
            raise ReschedulingNotAllowed(evaluation.policy_description)
        if evaluation.outcome is PolicyOutcome.NO_POLICY:
            raise PolicyNotFoundError(evaluation.policy_description)

        interval = _validate_candidate(new_date, new_start, old.duration_minutes, now)
        duration = interval.end - interval.start
        scope = BookingScope(room=old.room, instructor_id=old.instructor_id)
        await BookingRepo.acquire_scope_locks(session, new_date, scope)
        check = await probe_slot(session, new_date, new_start, duration, scope, exclude_booking_id=old.booking_id)
        check.raise_for_outcome()

        fee = evaluation.amount
        _transition(old, BookingStatus.RESCHEDULED)
        old.rescheduling_fee = fee
        # the old row must stop blocking before the new one is inserted
        await session.flush()

        new = Booking(
            booking_reference=rescheduled_reference(old.booking_reference),
            user_id=old.user_id,
            customer_name=old.customer_name,
            customer_email=old.customer_email,
            customer_contact=old.customer_contact,
            service_type=old.service_type,
            room=old.room,
            instructor_id=old.instructor_id,
            booking_date=new_date,
            start_time=_minutes_to_time(interval.start),
            end_time=_minutes_to_time(interval.end),
            duration_minutes=duration,
            status=BookingStatus.CONFIRMED,
            payment_status=old.payment_status,
            payment_method=old.payment_method,
            payment_reference=old.payment_reference,
            invoice_id=old.invoice_id,
            paid_at=old.paid_at,
            total_amount=old.total_amount,
            rescheduling_fee=fee,
            rescheduled_from=old.booking_id,
        )
        session.add(new)
        await session.flush()
        old.rescheduled_to = new.booking_id

        if fee > 0:
            session.add(
                BookingRefund(
                    booking_id=old.booking_id,
                    refund_amount=-fee,
                    refund_reason="rescheduling_fee",
                    refund_method="original_payment_method",
                    status="pending",
                    admin_notes=f"Rescheduling fee: {reason or ''}".rstrip(),
                )
            )
        await ActivityRepo.log(
            session,
            "booking_rescheduled",
            old.booking_id,
            f"Booking rescheduled to new booking ID: {new.booking_id}, fee: {fee}",
            rescheduled_by,
        )

    logger.info(
        "Rescheduled booking %s -> %s (%s %s), fee %s",
        booking_id, new.booking_id, new_date, new.start_time, fee,
    )
    return new, evaluation


# ---------------------------------------------------------------------------
# Payment webhook transitions
# ---------------------------------------------------------------------------


async def _reschedule_chain(session, booking_id: int) -> list[Booking]:
    """The booking and every row that replaced it, oldest first.

    Payment callbacks carry the id the invoice was issued for, which may have
    been rescheduled since; the last row of the chain is the live booking.
    """
    chain = [await BookingRepo.get(session, booking_id, for_update=True)]
    seen = {chain[0].booking_id}
    while (
        normalize_booking_status(chain[-1].status) is BookingStatus.RESCHEDULED
        and chain[-1].rescheduled_to is not None
        and chain[-1].rescheduled_to not in seen
    ):
        successor = await BookingRepo.get(session, chain[-1].rescheduled_to, for_update=True)
        seen.add(successor.booking_id)
        chain.append(successor)
    if len(chain) > 1:
        logger.info("Payment for booking %s follows reschedules to booking %s", booking_id, chain[-1].booking_id)
    return chain


async def mark_payment_paid(
    booking_id: int,
    payment_reference: str | None = None,
    invoice_id: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """Record a successful payment; a pending booking becomes confirmed.

    Applied to every row of the reschedule chain; returns the live booking.
    """
    now = _now(now)
    async with _transaction() as session:
        chain = await _reschedule_chain(session, booking_id)
        booking = chain[-1]
        if booking.payment_status == PaymentStatus.PAID:
            logger.info("Payment for booking %s already recorded", booking.booking_id)
            return booking

        for row in chain:
            if row.payment_status == PaymentStatus.PAID:
                continue
            row.payment_status = PaymentStatus.PAID
            row.paid_at = now
            row.payment_reference = payment_reference or row.payment_reference
            row.invoice_id = invoice_id or row.invoice_id
        if normalize_booking_status(booking.status) is BookingStatus.PENDING:
            _transition(booking, BookingStatus.CONFIRMED)
        await ActivityRepo.log(session, "payment_received", booking.booking_id, f"Payment received ({payment_reference or 'n/a'})")

    logger.info("Payment received for booking %s (status=%s)", booking.booking_id, booking.status)
    return booking


async def _mark_payment_outcome(booking_id: int, outcome: PaymentStatus) -> Booking:
    async with _transaction() as session:
        chain = await _reschedule_chain(session, booking_id)
        booking = chain[-1]
        if booking.payment_status != PaymentStatus.PENDING:
            logger.info(
                "Ignoring payment %s for booking %s: payment already %s",
                outcome.value, booking.booking_id, getattr(booking.payment_status, "value", booking.payment_status),
            )
            return booking
        for row in chain:
            if row.payment_status == PaymentStatus.PENDING:
                row.payment_status = outcome
        await ActivityRepo.log(session, f"payment_{outcome.value}", booking.booking_id, f"Payment {outcome.value}")
    logger.info("Payment %s for booking %s", outcome.value, booking.booking_id)
    return booking


async def mark_payment_expired(booking_id: int) -> Booking:
    return await _mark_payment_outcome(booking_id, PaymentStatus.EXPIRED)


async def mark_payment_failed(booking_id: int) -> Booking:
    return await _mark_payment_outcome(booking_id, PaymentStatus.FAILED)


# ---------------------------------------------------------------------------
# Staff transitions
# ---------------------------------------------------------------------------


async def _staff_transition(
    booking_id: int,
    target: BookingStatus,
    action: str,
    staff_id: int | None,
    now: datetime,
    *,
    same_day_only: bool = False,
) -> Booking:
    async with _transaction() as session:
        booking = await BookingRepo.get(session, booking_id, for_update=True)
        if same_day_only:
            today = now.astimezone(config.get_local_tz()).date()
            if booking.booking_date != today:
                raise ValidationError("Can only check in bookings for today", code="not_booking_day")
        _transition(booking, target)
        if target is BookingStatus.IN_PROGRESS:
            booking.checked_in_at = now
        await ActivityRepo.log(session, action, booking.booking_id, f"Booking {target.value}", staff_id)
    logger.info("Booking %s -> %s", booking_id, target.value)
    return booking


async def confirm_booking(booking_id: int, staff_id: int | None = None, now: datetime | None = None) -> Booking:
    return await _staff_transition(booking_id, BookingStatus.CONFIRMED, "booking_confirmed", staff_id, _now(now))


async def check_in_booking(booking_id: int, staff_id: int | None = None, now: datetime | None = None) -> Booking:
    return await _staff_transition(
        booking_id, BookingStatus.IN_PROGRESS, "booking_checked_in", staff_id, _now(now), same_day_only=True
    )


async def complete_booking(booking_id: int, staff_id: int | None = None, now: datetime | None = None) -> Booking:
    return await _staff_transition(booking_id, BookingStatus.COMPLETED, "booking_completed", staff_id, _now(now))
