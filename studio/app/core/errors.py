"""Domain exceptions for the booking core.

Every error carries a short machine ``code`` (safe to hand to a frontend)
and the HTTP status the API layer answers with.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "BookingError",
    "ValidationError",
    "ConflictError",
    "PolicyNotFoundError",
    "ReschedulingNotAllowed",
    "InvalidTransition",
    "BookingNotFound",
    "StorageFailure",
]


class BookingError(Exception):
    """Base class for expected booking-core failures."""

    code: str = "booking_error"
    http_status: int = 400

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(BookingError):
    """Missing or malformed input: bad date, unsupported service, duration out of range."""

    code = "validation_error"
    http_status = 400


class ConflictError(BookingError):
    """The requested interval overlaps an existing booking in the same scope."""

    code = "slot_unavailable"
    http_status = 409

    def __init__(self, message: str = "This time slot is already booked", conflicting_ids: list[int] | None = None) -> None:
        super().__init__(message, details={"conflicting_ids": list(conflicting_ids or [])})
        self.conflicting_ids = list(conflicting_ids or [])


class PolicyNotFoundError(BookingError):
    """No active policy tier covers the computed lead time."""

    code = "policy_not_found"
    http_status = 422


class ReschedulingNotAllowed(BookingError):
    code = "reschedule_not_allowed"
    http_status = 422


class InvalidTransition(BookingError):
    """Status change not permitted from the booking's current state."""

    code = "invalid_transition"
    http_status = 409


class BookingNotFound(BookingError):
    code = "booking_not_found"
    http_status = 404

    def __init__(self, booking_id: int | str) -> None:
        super().__init__(f"Booking {booking_id} not found", details={"booking_id": booking_id})
        self.booking_id = booking_id


class StorageFailure(BookingError):
    """The persistence layer failed; never to be read as "no conflicts"."""

    code = "storage_unavailable"
    http_status = 503
