from __future__ import annotations

import os


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_int_list(name: str) -> list[int]:
    raw = os.getenv(name, "")
    vals: list[int] = []
    for token in raw.replace(";", ",").split(","):
        tok = token.strip()
        if not tok:
            continue
        try:
            vals.append(int(tok))
        except ValueError:
            continue
    return vals


def _normalize_currency(code: str | None) -> str | None:
    if not code:
        return None
    cleaned = str(code).strip().upper()
    if len(cleaned) == 3 and cleaned.isalpha():
        return cleaned
    return None


# Operating hours for the bookable slot list (whole hours, 24h clock)
DEFAULT_OPEN_HOUR: int = _env_int("STUDIO_OPEN_HOUR", 8)
DEFAULT_CLOSE_HOUR: int = _env_int("STUDIO_CLOSE_HOUR", 19)
DEFAULT_SLOT_STEP_MINUTES: int = _env_int("SLOT_STEP_MINUTES", 60)

# Staff tick grid
DEFAULT_GRID_OPEN_HOUR: int = _env_int("GRID_OPEN_HOUR", 10)
DEFAULT_GRID_CLOSE_HOUR: int = _env_int("GRID_CLOSE_HOUR", 20)
DEFAULT_GRID_STEP_MINUTES: int = _env_int("GRID_STEP_MINUTES", 30)

# Allowed booking length
DEFAULT_MIN_DURATION_MINUTES: int = _env_int("MIN_DURATION_MINUTES", 60)
DEFAULT_MAX_DURATION_MINUTES: int = _env_int("MAX_DURATION_MINUTES", 480)

# Rescheduling is refused inside this many hours before start
DEFAULT_RESCHEDULE_CUTOFF_HOURS: int = _env_int("RESCHEDULE_CUTOFF_HOURS", 8)

DEFAULT_TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Manila")
DEFAULT_CURRENCY: str = _normalize_currency(os.getenv("CURRENCY")) or "PHP"

ADMIN_IDS_LIST: list[int] = _env_int_list("ADMIN_IDS")

LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
DB_ECHO: bool = _env_bool("DB_ECHO", False)

BOT_TOKEN: str = os.getenv("BOT_TOKEN", "")

__all__ = [
    "DEFAULT_OPEN_HOUR",
    "DEFAULT_CLOSE_HOUR",
    "DEFAULT_SLOT_STEP_MINUTES",
    "DEFAULT_GRID_OPEN_HOUR",
    "DEFAULT_GRID_CLOSE_HOUR",
    "DEFAULT_GRID_STEP_MINUTES",
    "DEFAULT_MIN_DURATION_MINUTES",
    "DEFAULT_MAX_DURATION_MINUTES",
    "DEFAULT_RESCHEDULE_CUTOFF_HOURS",
    "DEFAULT_TIMEZONE",
    "DEFAULT_CURRENCY",
    "ADMIN_IDS_LIST",
    "LOG_LEVEL_NAME",
    "DB_ECHO",
    "BOT_TOKEN",
]
