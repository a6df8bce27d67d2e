"""Slot Generator.

One generator parameterised by granularity serves both the customer slot
list (hourly starts inside operating hours) and the staff tick grid
(half-hour ticks). All times are minutes since midnight on the booking date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from studio.app.core.errors import ValidationError
from studio.app.services.conflicts import Interval, overlaps

logger = logging.getLogger(__name__)

__all__ = [
    "Slot",
    "TickGrid",
    "format_time_12h",
    "format_time_24h",
    "validate_duration",
    "generate_slots",
    "build_tick_grid",
]

MINUTES_PER_DAY = 24 * 60


def format_time_12h(minutes: int) -> str:
    """Render minutes since midnight as ``8:00 AM`` / ``12:30 PM``."""
    hours, mins = divmod(int(minutes), 60)
    period = "PM" if hours >= 12 else "AM"
    display = hours - 12 if hours > 12 else (12 if hours == 0 else hours)
    return f"{display}:{mins:02d} {period}"


def format_time_24h(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


@dataclass(frozen=True)
class Slot:
    start_minutes: int
    end_minutes: int

    @property
    def start_time(self) -> str:
        return format_time_24h(self.start_minutes)

    @property
    def end_time(self) -> str:
        return format_time_24h(self.end_minutes)

    @property
    def display(self) -> str:
        return f"{format_time_12h(self.start_minutes)} - {format_time_12h(self.end_minutes)}"

    @property
    def interval(self) -> Interval:
        return Interval(self.start_minutes, self.end_minutes)

    def to_payload(self) -> dict[str, Any]:
        return {
            "display": self.display,
            "startTime": self.start_time,
            "startMinutes": self.start_minutes,
            "endTime": self.end_time,
            "endMinutes": self.end_minutes,
        }


def validate_duration(minutes: Any, min_minutes: int = 60, max_minutes: int = 480) -> int:
    """Return ``minutes`` as int or raise ValidationError when out of range."""
    try:
        value = int(minutes)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Duration must be a whole number of minutes, got {minutes!r}") from exc
    if value < min_minutes or value > max_minutes:
        raise ValidationError(
            f"Duration must be between {min_minutes} and {max_minutes} minutes, got {value}",
            details={"min": min_minutes, "max": max_minutes, "received": value},
        )
    return value


def _validate_window(open_hour: int, close_hour: int, granularity_minutes: int) -> None:
    if not (0 <= open_hour < close_hour <= 24):
        raise ValidationError(f"Invalid operating window {open_hour}..{close_hour}")
    if granularity_minutes <= 0:
        raise ValidationError(f"Granularity must be positive, got {granularity_minutes}")


def generate_slots(
    open_hour: int,
    close_hour: int,
    duration_minutes: int,
    granularity_minutes: int = 60,
) -> list[Slot]:
    """Every candidate slot of ``duration_minutes`` inside the window.

    Starts are ``open + k * granularity`` strictly before
    ``close - duration``; a slot ending exactly at closing time is not
    offered. Returns an empty list when the duration does not fit.
    """
    _validate_window(open_hour, close_hour, granularity_minutes)
    if duration_minutes <= 0:
        raise ValidationError(f"Duration must be positive, got {duration_minutes}")

    open_min = open_hour * 60
    last_start = close_hour * 60 - duration_minutes

    slots: list[Slot] = []
    start = open_min
    while start < last_start:
        slots.append(Slot(start, start + duration_minutes))
        start += granularity_minutes
    return slots


@dataclass
class TickGrid:
    """Staff view of one day: every tick, the occupied ones and the free starts."""

    ticks: list[int] = field(default_factory=list)
    occupied: list[int] = field(default_factory=list)
    available: list[Slot] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "ticks": [format_time_24h(t) for t in self.ticks],
            "occupied": [format_time_24h(t) for t in self.occupied],
            "available": [s.to_payload() for s in self.available],
        }


def _as_interval(item: Interval | Sequence[int]) -> Interval:
    if isinstance(item, Interval):
        return item
    start, end = item
    return Interval(int(start), int(end))


def build_tick_grid(
    busy_intervals: Iterable[Interval | Sequence[int]],
    open_hour: int = 10,
    close_hour: int = 20,
    duration_minutes: int = 60,
    granularity_minutes: int = 30,
) -> TickGrid:
    _validate_window(open_hour, close_hour, granularity_minutes)
    busy = [_as_interval(b) for b in busy_intervals]

    ticks = list(range(open_hour * 60, close_hour * 60, granularity_minutes))
    occupied = [t for t in ticks if any(b.start <= t < b.end for b in busy)]
    available = [
        slot
        for slot in generate_slots(open_hour, close_hour, duration_minutes, granularity_minutes)
        if not any(overlaps(slot.interval, b) for b in busy)
    ]
    logger.debug(
        "tick grid %s..%s step=%s: %d ticks, %d occupied, %d available",
        open_hour, close_hour, granularity_minutes, len(ticks), len(occupied), len(available),
    )
    return TickGrid(ticks=ticks, occupied=occupied, available=available)
