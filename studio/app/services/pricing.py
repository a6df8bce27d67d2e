from __future__ import annotations

import logging
import secrets
import time
from decimal import ROUND_HALF_UP, Decimal

from studio.app.domain.models import ServiceType, normalize_service_type

logger = logging.getLogger(__name__)

__all__ = [
    "HOURLY_RATES",
    "hourly_rate",
    "calculate_amount",
    "format_money",
    "generate_booking_reference",
    "rescheduled_reference",
]

# Hourly rates in the studio currency
HOURLY_RATES: dict[ServiceType, Decimal] = {
    ServiceType.MUSIC_LESSON: Decimal("500"),
    ServiceType.RECORDING: Decimal("1500"),
    ServiceType.REHEARSAL: Decimal("800"),
    ServiceType.DANCE: Decimal("600"),
    ServiceType.ARRANGEMENT: Decimal("2000"),
    ServiceType.VOICEOVER: Decimal("1000"),
}

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def hourly_rate(service_type: str | ServiceType | None) -> Decimal:
    """Rate for ``service_type``; unknown services are billed as rehearsal."""
    svc = normalize_service_type(service_type)
    if svc is None:
        logger.debug("No rate for service %r, using rehearsal rate", service_type)
        return HOURLY_RATES[ServiceType.REHEARSAL]
    return HOURLY_RATES[svc]


def calculate_amount(service_type: str | ServiceType | None, duration_minutes: int) -> Decimal:
    rate = hourly_rate(service_type)
    amount = rate * Decimal(int(duration_minutes)) / Decimal(60)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_money(amount: Decimal | float | int | None, currency: str = "PHP") -> str:
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{value:,.2f} {currency}"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_booking_reference() -> str:
    """Human-facing reference like ``MIX-LZ3K9Q1A-3F9A0C1B``."""
    stamp = _to_base36(time.time_ns() // 1_000_000)
    return f"MIX-{stamp}-{secrets.token_hex(4).upper()}"


_RESCH_PREFIX = "RESCH-"
# keeps RESCH- + root + suffix inside the 64-char reference column
_MAX_ROOT_LENGTH = 48


def rescheduled_reference(reference: str) -> str:
    """Reference for the row replacing ``reference``.

    Built from the root of the reschedule chain, so it does not grow with
    every move: ``MIX-A-1F`` becomes ``RESCH-MIX-A-1F-0C3A9E`` and moving that
    again yields ``RESCH-MIX-A-1F-<new suffix>``.
    """
    root = reference
    moved = False
    while root.startswith(_RESCH_PREFIX):
        root = root[len(_RESCH_PREFIX):]
        moved = True
    if moved and "-" in root:
        root = root.rsplit("-", 1)[0]
    return f"{_RESCH_PREFIX}{root[:_MAX_ROOT_LENGTH]}-{secrets.token_hex(3).upper()}"
