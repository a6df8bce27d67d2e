"""Policy Engine: lead time → policy tier → refund or rescheduling fee.

Pure functions over already-loaded policy rows. A policy tier applies when
``hours_before_booking <= hours until start``; the tier with the largest such
threshold wins. Percentages are stored as 0..100.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from studio.app.domain.models import PolicyType

logger = logging.getLogger(__name__)

__all__ = [
    "PolicyOutcome",
    "PolicyEvaluation",
    "hours_until",
    "select_policy",
    "evaluate_cancellation",
    "evaluate_rescheduling",
    "apply_percentage",
]

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


class PolicyOutcome(str, Enum):
    ALLOWED = "allowed"
    NOT_ALLOWED = "not_allowed"
    NO_POLICY = "no_policy"


@dataclass(frozen=True)
class PolicyEvaluation:
    outcome: PolicyOutcome
    policy_type: PolicyType
    percentage: Decimal
    amount: Decimal
    policy_description: str
    hours_until_booking: float

    @property
    def allowed(self) -> bool:
        return self.outcome is PolicyOutcome.ALLOWED

    def to_payload(self) -> dict[str, object]:
        amount_key = "refund_amount" if self.policy_type is PolicyType.CANCELLATION else "fee_amount"
        return {
            amount_key: float(self.amount),
            "percentage": float(self.percentage),
            "hours_until_booking": round(self.hours_until_booking, 2),
            "policy_description": self.policy_description,
            "allowed": self.allowed,
            "outcome": self.outcome.value,
        }


def hours_until(booking_date: date, start_time: time, now: datetime, tz: ZoneInfo) -> float:
    """Fractional hours from ``now`` until the booking starts, never negative.

    The booking's wall-clock date/time is interpreted in ``tz``; a naive
    ``now`` is taken to be in the same zone.
    """
    starts_at = datetime.combine(booking_date, start_time, tzinfo=tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    delta = (starts_at - now).total_seconds() / 3600.0
    return max(0.0, delta)


def _policy_type_of(row: Any) -> PolicyType | None:
    raw = getattr(row, "policy_type", None)
    if isinstance(raw, PolicyType):
        return raw
    try:
        return PolicyType(str(raw).strip().lower())
    except ValueError:
        return None


def select_policy(policies: Iterable[Any], policy_type: PolicyType, hours: float) -> Any | None:
    """Active tier of ``policy_type`` with the largest threshold ``<= hours``."""
    candidates = [
        p
        for p in policies
        if getattr(p, "is_active", True)
        and _policy_type_of(p) is policy_type
        and p.hours_before_booking <= hours
    ]
    if not candidates:
        return None
    best = max(p.hours_before_booking for p in candidates)
    tied = [p for p in candidates if p.hours_before_booking == best]
    if len(tied) > 1:
        logger.warning(
            "Ambiguous %s policy: %d active tiers at %s hours; using policy %s",
            policy_type.value, len(tied), best, getattr(tied[0], "policy_id", None),
        )
    return tied[0]


def apply_percentage(total_amount: Decimal | float | int | None, percentage: Decimal | float | int | None) -> Decimal:
    """``total * percentage / 100`` rounded half-up to cents; 0 for empty totals."""
    if not total_amount or percentage is None:
        return ZERO
    total = Decimal(str(total_amount))
    pct = Decimal(str(percentage))
    return (total * pct / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _no_policy(policy_type: PolicyType, hours: float) -> PolicyEvaluation:
    logger.warning("No active %s policy covers %.2f hours before booking", policy_type.value, hours)
    return PolicyEvaluation(
        outcome=PolicyOutcome.NO_POLICY,
        policy_type=policy_type,
        percentage=ZERO,
        amount=ZERO,
        policy_description=f"No {policy_type.value} policy applies {hours:.1f} hours before the booking",
        hours_until_booking=hours,
    )


def evaluate_cancellation(total_amount: Decimal | None, hours: float, policies: Iterable[Any]) -> PolicyEvaluation:
    """Refund owed when cancelling ``hours`` before start."""
    policy = select_policy(policies, PolicyType.CANCELLATION, hours)
    if policy is None:
        if not total_amount:
            return PolicyEvaluation(
                PolicyOutcome.ALLOWED, PolicyType.CANCELLATION, ZERO, ZERO, "Nothing to refund", hours
            )
        return _no_policy(PolicyType.CANCELLATION, hours)

    percentage = Decimal(str(policy.refund_percentage or 0))
    return PolicyEvaluation(
        outcome=PolicyOutcome.ALLOWED,
        policy_type=PolicyType.CANCELLATION,
        percentage=percentage,
        amount=apply_percentage(total_amount, percentage),
        policy_description=str(policy.description or ""),
        hours_until_booking=hours,
    )


def evaluate_rescheduling(
    total_amount: Decimal | None,
    hours: float,
    policies: Iterable[Any],
    cutoff_hours: int = 8,
) -> PolicyEvaluation:
    """Fee owed for moving a booking ``hours`` before start.

    Inside ``cutoff_hours`` rescheduling is refused outright.
    """
    if hours < cutoff_hours:
        return PolicyEvaluation(
            outcome=PolicyOutcome.NOT_ALLOWED,
            policy_type=PolicyType.RESCHEDULING,
            percentage=ZERO,
            amount=ZERO,
            policy_description=f"Rescheduling not allowed within {cutoff_hours} hours of booking time",
            hours_until_booking=hours,
        )

    policy = select_policy(policies, PolicyType.RESCHEDULING, hours)
    if policy is None:
        if not total_amount:
            return PolicyEvaluation(
                PolicyOutcome.ALLOWED, PolicyType.RESCHEDULING, ZERO, ZERO, "No fee on a free booking", hours
            )
        return _no_policy(PolicyType.RESCHEDULING, hours)

    percentage = Decimal(str(policy.fee_percentage or 0))
    return PolicyEvaluation(
        outcome=PolicyOutcome.ALLOWED,
        policy_type=PolicyType.RESCHEDULING,
        percentage=percentage,
        amount=apply_percentage(total_amount, percentage),
        policy_description=str(policy.description or ""),
        hours_until_booking=hours,
    )
