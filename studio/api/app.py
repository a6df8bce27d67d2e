"""FastAPI facade for the studio booking core.

Thin JSON layer over ``studio.app.services.booking_services``. Business
errors come back as ``{"ok": false, "error": "<code>"}`` with the status
code carried by the exception class.
"""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from functools import wraps
from typing import Any, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from studio import config
from studio.app.core.db import init_db
from studio.app.core.errors import BookingError, BookingNotFound, StorageFailure
from studio.app.core.logger import configure_logging
from studio.app.core.notifications import close_bot, notify_admins
from studio.app.domain.models import Booking
from studio.app.services import booking_services
from studio.app.services.booking_services import BookingRequest
from studio.app.services.pricing import format_money

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    if config.get_setting("auto_create_schema", False):
        logger.info("AUTO_CREATE_SCHEMA enabled; creating tables from models")
        await init_db()
    yield
    await close_bot()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class SlotOut(BaseModel):
    display: str
    start_time: str = Field(..., alias="startTime")
    start_minutes: int = Field(..., alias="startMinutes")
    end_time: str = Field(..., alias="endTime")
    end_minutes: int = Field(..., alias="endMinutes")


class SlotsResponse(BaseModel):
    date: date
    service: str
    duration_hours: float
    operating_hours: dict[str, str]
    slots: list[SlotOut]
    timezone: Optional[str] = None


class TickGridResponse(BaseModel):
    date: date
    duration_minutes: int
    instructor_id: Optional[int] = None
    ticks: list[str]
    occupied: list[str]
    available: list[SlotOut]


class InstructorAvailabilityResponse(BaseModel):
    instructor_id: int
    date: date
    start_time: time
    duration_minutes: int
    available: bool


class BookingCreateRequest(BaseModel):
    service: str
    date: date
    start_time: time
    duration_minutes: int = Field(..., gt=0)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_contact: Optional[str] = None
    user_id: Optional[int] = None
    instructor_id: Optional[int] = None
    payment_method: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    cancelled_by: Optional[int] = None


class RescheduleRequest(BaseModel):
    new_date: date
    new_start_time: time
    rescheduled_by: Optional[int] = None
    reason: Optional[str] = None


class BookingOut(BaseModel):
    booking_id: int
    booking_reference: str
    service_type: str
    room: str
    instructor_id: Optional[int] = None
    booking_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    total_amount: float
    refund_amount: Optional[float] = None
    rescheduling_fee: Optional[float] = None
    rescheduled_from: Optional[int] = None
    rescheduled_to: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None


class BookingResponse(BaseModel):
    ok: bool
    booking: Optional[BookingOut] = None
    policy: Optional[dict[str, Any]] = None
    currency: Optional[str] = None
    error: Optional[str] = None


class BookingListResponse(BaseModel):
    ok: bool
    bookings: list[BookingOut] = []
    count: int = 0


class PolicyQuoteResponse(BaseModel):
    ok: bool
    booking_id: int
    policy: dict[str, Any]
    currency: Optional[str] = None


class PaymentWebhook(BaseModel):
    model_config = ConfigDict(extra="allow")

    external_id: str
    status: str
    id: Optional[str] = None
    payment_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Error handling helpers
# ---------------------------------------------------------------------------


def _normalize_error_code(val: str | Exception | None, default: str) -> str:
    """Return a safe error code for the frontend without leaking exception text."""
    if val is None:
        return default
    code = str(val).strip().lower()
    if not code:
        return default
    if not all(ch.isalnum() or ch in {"_", "-"} for ch in code):
        return default
    return code[:64]


def _error_response(exc: BookingError, default_error: str) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content={
            "ok": False,
            "error": _normalize_error_code(exc.code, default_error),
            "message": exc.message,
            "details": exc.details,
        },
    )


def booking_error_handler(default_error: str):
    """Decorator to de-duplicate try/except in booking endpoints.

    - Passes through FastAPI `HTTPException` untouched.
    - Converts `BookingError` to its status code and error code.
    - Logs unexpected exceptions and returns a unified 500 error code.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except BookingError as exc:
                logger.info("%s rejected: %s (%s)", func.__name__, exc.code, exc.message)
                return _error_response(exc, default_error)
            except Exception as exc:  # noqa: BLE001 - API boundary
                logger.exception("%s failed: %s", func.__name__, exc)
                return JSONResponse(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    content={"ok": False, "error": default_error},
                )

        return wrapper

    return decorator


def _booking_out(booking: Booking) -> BookingOut:
    def _money(val: Any) -> float | None:
        return float(val) if val is not None else None

    return BookingOut(
        booking_id=int(booking.booking_id),
        booking_reference=booking.booking_reference,
        service_type=getattr(booking.service_type, "value", booking.service_type),
        room=booking.room,
        instructor_id=booking.instructor_id,
        booking_date=booking.booking_date,
        start_time=booking.start_time,
        end_time=booking.end_time,
        duration_minutes=int(booking.duration_minutes),
        status=getattr(booking.status, "value", booking.status),
        payment_status=getattr(booking.payment_status, "value", booking.payment_status),
        payment_method=booking.payment_method,
        total_amount=float(booking.total_amount or 0),
        refund_amount=_money(booking.refund_amount),
        rescheduling_fee=_money(booking.rescheduling_fee),
        rescheduled_from=booking.rescheduled_from,
        rescheduled_to=booking.rescheduled_to,
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
    )


def _secret_matches(provided: str | None, expected: str) -> bool:
    # an unset secret rejects everything
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def require_admin(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    if not _secret_matches(x_admin_token, config.get_admin_api_token()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_admin_token")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title="Studio Booking API", version="0.1.0", lifespan=lifespan)


@app.get("/api/slots", response_model=SlotsResponse)
@booking_error_handler("slots_failed")
async def get_slots(
    date_: date = Query(..., alias="date"),
    service: str = Query(...),
    duration: int = Query(..., description="Duration in minutes"),
    instructor_id: Optional[int] = Query(default=None),
) -> SlotsResponse:
    slots = await booking_services.list_available_slots(date_, service, duration, instructor_id)
    open_hour, close_hour = config.get_operating_hours()
    return SlotsResponse(
        date=date_,
        service=service,
        duration_hours=duration / 60,
        operating_hours={"open": f"{open_hour}:00", "close": f"{close_hour}:00"},
        slots=[SlotOut(**s.to_payload()) for s in slots],
        timezone=str(config.get_local_tz()),
    )


@app.get("/api/slots/grid", response_model=TickGridResponse)
@booking_error_handler("grid_failed")
async def get_slot_grid(
    date_: date = Query(..., alias="date"),
    duration: int = Query(60),
    instructor_id: Optional[int] = Query(default=None),
) -> TickGridResponse:
    grid = await booking_services.get_tick_grid(date_, duration, instructor_id)
    payload = grid.to_payload()
    return TickGridResponse(
        date=date_,
        duration_minutes=duration,
        instructor_id=instructor_id,
        ticks=payload["ticks"],
        occupied=payload["occupied"],
        available=[SlotOut(**s) for s in payload["available"]],
    )


@app.get("/api/instructors/{instructor_id}/availability", response_model=InstructorAvailabilityResponse)
@booking_error_handler("availability_failed")
async def instructor_availability(
    instructor_id: int,
    date_: date = Query(..., alias="date"),
    start: time = Query(...),
    duration: int = Query(60),
) -> InstructorAvailabilityResponse:
    available = await booking_services.is_instructor_available(date_, start, duration, instructor_id)
    return InstructorAvailabilityResponse(
        instructor_id=instructor_id,
        date=date_,
        start_time=start,
        duration_minutes=duration,
        available=available,
    )


@app.post("/api/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
@booking_error_handler("booking_failed")
async def create_booking(payload: BookingCreateRequest, background_tasks: BackgroundTasks) -> BookingResponse:
    booking = await booking_services.create_booking(
        BookingRequest(
            service_type=payload.service,
            booking_date=payload.date,
            start_time=payload.start_time,
            duration_minutes=payload.duration_minutes,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_contact=payload.customer_contact,
            user_id=payload.user_id,
            instructor_id=payload.instructor_id,
            payment_method=payload.payment_method,
        )
    )
    currency = config.get_currency()
    background_tasks.add_task(
        notify_admins,
        f"New booking {booking.booking_reference}\n"
        f"{payload.service} on {booking.booking_date} {booking.start_time:%H:%M}-{booking.end_time:%H:%M}\n"
        f"Client: {booking.customer_name or '-'}\n"
        f"Total: {format_money(booking.total_amount, currency)}",
    )
    return BookingResponse(ok=True, booking=_booking_out(booking), currency=currency)


@app.get("/api/bookings/{booking_id}", response_model=BookingResponse)
@booking_error_handler("booking_lookup_failed")
async def get_booking(booking_id: int) -> BookingResponse:
    booking = await booking_services.get_booking(booking_id)
    return BookingResponse(ok=True, booking=_booking_out(booking), currency=config.get_currency())


@app.get("/api/bookings/by-reference/{reference}", response_model=BookingResponse)
@booking_error_handler("booking_lookup_failed")
async def get_booking_by_reference(reference: str) -> BookingResponse:
    booking = await booking_services.get_booking_by_reference(reference)
    return BookingResponse(ok=True, booking=_booking_out(booking), currency=config.get_currency())


@app.get("/api/users/{user_id}/bookings", response_model=BookingListResponse)
@booking_error_handler("booking_list_failed")
async def list_user_bookings(user_id: int) -> BookingListResponse:
    bookings = await booking_services.list_user_bookings(user_id)
    return BookingListResponse(ok=True, bookings=[_booking_out(b) for b in bookings], count=len(bookings))


@app.get("/api/bookings/{booking_id}/cancellation-quote", response_model=PolicyQuoteResponse)
@booking_error_handler("quote_failed")
async def cancellation_quote(booking_id: int) -> PolicyQuoteResponse:
    evaluation = await booking_services.quote_cancellation(booking_id)
    return PolicyQuoteResponse(
        ok=True, booking_id=booking_id, policy=evaluation.to_payload(), currency=config.get_currency()
    )


@app.get("/api/bookings/{booking_id}/reschedule-quote", response_model=PolicyQuoteResponse)
@booking_error_handler("quote_failed")
async def reschedule_quote(booking_id: int) -> PolicyQuoteResponse:
    evaluation = await booking_services.quote_rescheduling(booking_id)
    return PolicyQuoteResponse(
        ok=True, booking_id=booking_id, policy=evaluation.to_payload(), currency=config.get_currency()
    )


@app.post("/api/bookings/{booking_id}/cancel", response_model=BookingResponse)
@booking_error_handler("cancel_failed")
async def cancel_booking(
    booking_id: int,
    payload: CancelRequest,
    background_tasks: BackgroundTasks,
) -> BookingResponse:
    booking, evaluation = await booking_services.cancel_booking(
        booking_id, reason=payload.reason, cancelled_by=payload.cancelled_by
    )
    currency = config.get_currency()
    background_tasks.add_task(
        notify_admins,
        f"Booking {booking.booking_reference} cancelled\n"
        f"Refund: {format_money(evaluation.amount, currency)} ({evaluation.percentage}%)",
    )
    return BookingResponse(ok=True, booking=_booking_out(booking), policy=evaluation.to_payload(), currency=currency)


@app.post("/api/bookings/{booking_id}/reschedule", response_model=BookingResponse)
@booking_error_handler("reschedule_failed")
async def reschedule_booking(
    booking_id: int,
    payload: RescheduleRequest,
    background_tasks: BackgroundTasks,
) -> BookingResponse:
    booking, evaluation = await booking_services.reschedule_booking(
        booking_id,
        payload.new_date,
        payload.new_start_time,
        rescheduled_by=payload.rescheduled_by,
        reason=payload.reason,
    )
    currency = config.get_currency()
    background_tasks.add_task(
        notify_admins,
        f"Booking #{booking_id} moved to {booking.booking_date} {booking.start_time:%H:%M}"
        f" as {booking.booking_reference}\nFee: {format_money(evaluation.amount, currency)}",
    )
    return BookingResponse(ok=True, booking=_booking_out(booking), policy=evaluation.to_payload(), currency=currency)


@app.post("/api/webhooks/payment")
async def payment_webhook(
    event: PaymentWebhook,
    background_tasks: BackgroundTasks,
    x_callback_token: str | None = Header(default=None, alias="x-callback-token"),
) -> JSONResponse:
    """Payment gateway callback.

    Always acknowledged with 200 except for a bad token (401) and storage
    failures (503, so the gateway retries).
    """
    if not _secret_matches(x_callback_token, config.get_webhook_token()):
        logger.warning("Invalid payment webhook token received")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_webhook_token")

    event_status = event.status.strip().upper()
    logger.info("Payment webhook received: %s for %s", event_status, event.external_id)
    try:
        booking_id = int(event.external_id)
    except ValueError:
        logger.warning("Payment webhook for unknown external_id %r", event.external_id)
        return JSONResponse({"received": True, "ignored": "unknown_booking"})

    try:
        if event_status == "PAID":
            booking = await booking_services.mark_payment_paid(booking_id, event.payment_id, event.id)
            background_tasks.add_task(notify_admins, f"Payment received for booking {booking.booking_reference}")
        elif event_status == "EXPIRED":
            await booking_services.mark_payment_expired(booking_id)
        elif event_status == "FAILED":
            await booking_services.mark_payment_failed(booking_id)
        else:
            logger.info("Unhandled payment webhook status: %s", event_status)
            return JSONResponse({"received": True, "ignored": "unhandled_status"})
    except BookingNotFound:
        logger.error("Booking not found for payment webhook: %s", booking_id)
        return JSONResponse({"received": True, "ignored": "unknown_booking"})
    except StorageFailure as exc:
        return _error_response(exc, "storage_unavailable")
    except BookingError as exc:
        logger.warning("Payment webhook for booking %s not applied: %s", booking_id, exc.message)
        return JSONResponse({"received": True, "ignored": exc.code})

    return JSONResponse({"received": True})


@app.get("/api/admin/bookings", response_model=BookingListResponse, dependencies=[Depends(require_admin)])
@booking_error_handler("booking_list_failed")
async def admin_list_bookings(
    booking_date: Optional[date] = Query(default=None, alias="date"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
) -> BookingListResponse:
    bookings = await booking_services.list_bookings(booking_date, status_filter)
    return BookingListResponse(ok=True, bookings=[_booking_out(b) for b in bookings], count=len(bookings))


@app.post("/api/admin/bookings/{booking_id}/confirm", response_model=BookingResponse, dependencies=[Depends(require_admin)])
@booking_error_handler("confirm_failed")
async def admin_confirm_booking(booking_id: int, background_tasks: BackgroundTasks) -> BookingResponse:
    booking = await booking_services.confirm_booking(booking_id)
    background_tasks.add_task(
        notify_admins,
        f"BOOKING CONFIRMED\n{booking.booking_reference} on {booking.booking_date} at {booking.start_time:%H:%M}",
    )
    return BookingResponse(ok=True, booking=_booking_out(booking))


@app.post("/api/admin/bookings/{booking_id}/check-in", response_model=BookingResponse, dependencies=[Depends(require_admin)])
@booking_error_handler("check_in_failed")
async def admin_check_in_booking(booking_id: int) -> BookingResponse:
    booking = await booking_services.check_in_booking(booking_id)
    return BookingResponse(ok=True, booking=_booking_out(booking))


@app.post("/api/admin/bookings/{booking_id}/complete", response_model=BookingResponse, dependencies=[Depends(require_admin)])
@booking_error_handler("complete_failed")
async def admin_complete_booking(booking_id: int) -> BookingResponse:
    booking = await booking_services.complete_booking(booking_id)
    return BookingResponse(ok=True, booking=_booking_out(booking))


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


def get_app() -> FastAPI:
    """Return the FastAPI instance (for uvicorn factories)."""
    return app
