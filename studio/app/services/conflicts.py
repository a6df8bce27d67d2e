"""Conflict Detector.

Pure interval arithmetic plus one database probe. Intervals are half-open
``[start, end)`` in minutes since midnight, so back-to-back bookings that
touch at a boundary never conflict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Iterable, Sequence, TypeVar

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import SQLAlchemyError

from studio.app.core.errors import ConflictError, StorageFailure
from studio.app.domain.models import BLOCKING_STATUSES, Booking, normalize_booking_status

logger = logging.getLogger(__name__)

__all__ = [
    "Interval",
    "overlaps",
    "find_conflicts",
    "has_conflict",
    "filter_available",
    "BookingScope",
    "ConflictOutcome",
    "ConflictCheck",
    "select_blocking",
    "probe_slot",
]

T = TypeVar("T")


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class Interval:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError(f"Interval end must be after start: [{self.start}, {self.end})")

    @classmethod
    def from_times(cls, start: time, duration_minutes: int) -> "Interval":
        begin = _minutes(start)
        return cls(begin, begin + int(duration_minutes))

    @classmethod
    def from_booking(cls, row: Any) -> "Interval":
        """Interval of a stored booking (prefers end_time, else duration)."""
        start = _minutes(row.start_time)
        end_time = getattr(row, "end_time", None)
        end = _minutes(end_time) if end_time is not None else 0
        if end <= start:
            end = start + int(getattr(row, "duration_minutes", 0) or 0)
        return cls(start, end)


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def _is_blocking(row: Any) -> bool:
    status = normalize_booking_status(getattr(row, "status", None))
    # rows with an unreadable status keep blocking
    return status is None or status in BLOCKING_STATUSES


def find_conflicts(
    candidate: Interval,
    existing: Iterable[T],
    exclude_booking_id: int | None = None,
) -> list[T]:
    """Existing rows whose interval overlaps ``candidate``.

    Non-blocking rows (cancelled / rescheduled) and ``exclude_booking_id``
    are skipped, so raw rows can be passed in.
    """
    conflicts: list[T] = []
    for row in existing:
        if exclude_booking_id is not None and getattr(row, "booking_id", None) == exclude_booking_id:
            continue
        if not _is_blocking(row):
            continue
        if overlaps(candidate, Interval.from_booking(row)):
            conflicts.append(row)
    return conflicts


def has_conflict(candidate: Interval, existing: Iterable[Any], exclude_booking_id: int | None = None) -> bool:
    return bool(find_conflicts(candidate, existing, exclude_booking_id))


def filter_available(slots: Sequence[T], existing: Sequence[Any]) -> list[T]:
    """Slots (anything with ``start_minutes`` / ``end_minutes``) free of conflicts."""
    rows = list(existing)
    return [
        slot
        for slot in slots
        if not has_conflict(Interval(slot.start_minutes, slot.end_minutes), rows)
    ]


@dataclass(frozen=True)
class BookingScope:
    """What a candidate must not overlap.

    A room and/or an instructor; with neither, every blocking booking of the
    date is in scope.
    """

    room: str | None = None
    instructor_id: int | None = None

    @property
    def is_global(self) -> bool:
        return self.room is None and self.instructor_id is None

    def lock_keys(self) -> list[str]:
        """Stable, ordered names of the resources this scope touches."""
        keys: list[str] = []
        if self.instructor_id is not None:
            keys.append(f"instructor:{self.instructor_id}")
        if self.room is not None:
            keys.append(f"room:{self.room}")
        return sorted(keys)


class ConflictOutcome(str, Enum):
    AVAILABLE = "available"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


@dataclass
class ConflictCheck:
    outcome: ConflictOutcome
    conflicts: list[Any] = field(default_factory=list)
    error: Exception | None = None

    @property
    def is_available(self) -> bool:
        return self.outcome is ConflictOutcome.AVAILABLE

    @property
    def conflicting_ids(self) -> list[int]:
        return [int(row.booking_id) for row in self.conflicts if getattr(row, "booking_id", None) is not None]

    def raise_for_outcome(self) -> None:
        if self.outcome is ConflictOutcome.CONFLICT:
            raise ConflictError(conflicting_ids=self.conflicting_ids)
        if self.outcome is ConflictOutcome.UNKNOWN:
            raise StorageFailure("Could not verify slot availability") from self.error


def select_blocking(
    booking_date: date,
    scope: BookingScope,
    exclude_booking_id: int | None = None,
) -> Select:
    """Blocking bookings on ``booking_date`` within ``scope``, by start time."""
    stmt = select(Booking).where(
        Booking.booking_date == booking_date,
        Booking.status.in_(tuple(BLOCKING_STATUSES)),
    )
    clauses = []
    if scope.room is not None:
        clauses.append(Booking.room == scope.room)
    if scope.instructor_id is not None:
        clauses.append(Booking.instructor_id == scope.instructor_id)
    if clauses:
        stmt = stmt.where(or_(*clauses))
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.booking_id != exclude_booking_id)
    return stmt.order_by(Booking.start_time)


async def probe_slot(
    session,
    booking_date: date,
    start_time: time,
    duration_minutes: int,
    scope: BookingScope,
    exclude_booking_id: int | None = None,
) -> ConflictCheck:
    """Check a candidate against storage.

    A query failure yields ``UNKNOWN`` carrying the error; it is never
    reported as available.
    """
    candidate = Interval.from_times(start_time, duration_minutes)
    try:
        result = await session.execute(select_blocking(booking_date, scope, exclude_booking_id))
        rows = list(result.scalars().all())
    except SQLAlchemyError as exc:
        logger.error("Conflict probe failed for %s %s (%s): %s", booking_date, start_time, scope, exc)
        return ConflictCheck(ConflictOutcome.UNKNOWN, error=exc)

    conflicts = find_conflicts(candidate, rows, exclude_booking_id)
    if conflicts:
        logger.info(
            "Slot %s %s+%smin conflicts with bookings %s",
            booking_date, start_time, duration_minutes, [getattr(r, "booking_id", None) for r in conflicts],
        )
        return ConflictCheck(ConflictOutcome.CONFLICT, conflicts=conflicts)
    return ConflictCheck(ConflictOutcome.AVAILABLE)
