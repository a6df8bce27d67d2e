from __future__ import annotations

import logging
import os
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from studio.app.core.constants import (
    DEFAULT_CLOSE_HOUR,
    DEFAULT_CURRENCY,
    DEFAULT_GRID_CLOSE_HOUR,
    DEFAULT_GRID_OPEN_HOUR,
    DEFAULT_GRID_STEP_MINUTES,
    DEFAULT_MAX_DURATION_MINUTES,
    DEFAULT_MIN_DURATION_MINUTES,
    DEFAULT_OPEN_HOUR,
    DEFAULT_RESCHEDULE_CUTOFF_HOURS,
    DEFAULT_SLOT_STEP_MINUTES,
    DEFAULT_TIMEZONE,
    _env_bool,
)

logger = logging.getLogger(__name__)

# Load variables from .env
load_dotenv()

# Runtime settings; tests patch individual keys
SETTINGS: Dict[str, Any] = {
    "open_hour": DEFAULT_OPEN_HOUR,
    "close_hour": DEFAULT_CLOSE_HOUR,
    "slot_step_minutes": DEFAULT_SLOT_STEP_MINUTES,
    "grid_open_hour": DEFAULT_GRID_OPEN_HOUR,
    "grid_close_hour": DEFAULT_GRID_CLOSE_HOUR,
    "grid_step_minutes": DEFAULT_GRID_STEP_MINUTES,
    "min_duration_minutes": DEFAULT_MIN_DURATION_MINUTES,
    "max_duration_minutes": DEFAULT_MAX_DURATION_MINUTES,
    "reschedule_cutoff_hours": DEFAULT_RESCHEDULE_CUTOFF_HOURS,
    "timezone": DEFAULT_TIMEZONE,
    "currency": DEFAULT_CURRENCY,
    # Shared secret the payment gateway sends in `x-callback-token`
    "payment_webhook_token": os.getenv("PAYMENT_WEBHOOK_TOKEN", ""),
    # Static secret for staff transitions (X-Admin-Token)
    "admin_api_token": os.getenv("ADMIN_API_TOKEN", ""),
    # Create tables from the models at API startup (dev only; prod uses Alembic)
    "auto_create_schema": _env_bool("AUTO_CREATE_SCHEMA", False),
}

# Every service maps onto exactly one exclusive room. Services that share a
# room (recording and voiceover) block each other.
_DEFAULT_SERVICE_ROOMS: Dict[str, str] = {
    "music_lesson": "lesson_room",
    "recording": "recording_booth",
    "voiceover": "recording_booth",
    "rehearsal": "rehearsal_hall",
    "dance": "dance_studio",
    "arrangement": "production_suite",
}


def _load_service_rooms() -> Dict[str, str]:
    rooms = dict(_DEFAULT_SERVICE_ROOMS)
    for service in rooms:
        override = os.getenv(f"ROOM_{service.upper()}")
        if override and override.strip():
            rooms[service] = override.strip().lower()
    return rooms


SERVICE_ROOMS: Dict[str, str] = _load_service_rooms()


def _int_setting(key: str, default: int, minimum: int = 0) -> int:
    try:
        val = SETTINGS.get(key, default)
        return max(minimum, int(val)) if val is not None else default
    except (TypeError, ValueError):
        return default


def get_setting(key: str, default: Any = None) -> Any:
    """Return a runtime setting by key, or ``default`` when unset."""
    value = SETTINGS.get(key, default)
    logger.debug("setting lookup: key=%s, value=%s", key, value)
    return value


def get_operating_hours() -> tuple[int, int]:
    """Bookable window ``(open_hour, close_hour)`` for the customer slot list."""
    return (
        _int_setting("open_hour", DEFAULT_OPEN_HOUR),
        _int_setting("close_hour", DEFAULT_CLOSE_HOUR),
    )


def get_slot_step_minutes() -> int:
    return _int_setting("slot_step_minutes", DEFAULT_SLOT_STEP_MINUTES, minimum=1)


def get_grid_window() -> tuple[int, int, int]:
    """Staff tick grid as ``(open_hour, close_hour, step_minutes)``."""
    return (
        _int_setting("grid_open_hour", DEFAULT_GRID_OPEN_HOUR),
        _int_setting("grid_close_hour", DEFAULT_GRID_CLOSE_HOUR),
        _int_setting("grid_step_minutes", DEFAULT_GRID_STEP_MINUTES, minimum=1),
    )


def get_duration_bounds() -> tuple[int, int]:
    return (
        _int_setting("min_duration_minutes", DEFAULT_MIN_DURATION_MINUTES, minimum=1),
        _int_setting("max_duration_minutes", DEFAULT_MAX_DURATION_MINUTES, minimum=1),
    )


def get_reschedule_cutoff_hours() -> int:
    """Rescheduling is refused when fewer hours than this remain before start."""
    return _int_setting("reschedule_cutoff_hours", DEFAULT_RESCHEDULE_CUTOFF_HOURS)


def get_local_tz() -> ZoneInfo:
    """Studio timezone from SETTINGS with a fallback to the default zone."""
    tz_name = str(SETTINGS.get("timezone") or DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to %s", tz_name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def get_currency() -> str:
    return str(SETTINGS.get("currency") or DEFAULT_CURRENCY)


def get_service_room(service_type: str) -> str | None:
    """Room a service occupies, or None for an unknown service."""
    key = getattr(service_type, "value", service_type)
    return SERVICE_ROOMS.get(str(key).strip().lower())


def get_webhook_token() -> str:
    return str(SETTINGS.get("payment_webhook_token") or "")


def get_admin_api_token() -> str:
    return str(SETTINGS.get("admin_api_token") or "")
