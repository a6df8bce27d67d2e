"""Test configuration and in-memory database fakes.

Adds the repository root to sys.path so `import studio` works in CI where
the checkout directory may not be on PYTHONPATH by default.
"""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest


ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy.exc import IntegrityError, OperationalError  # noqa: E402
from sqlalchemy.sql import operators  # noqa: E402
from sqlalchemy.sql.elements import (  # noqa: E402
    BinaryExpression,
    BindParameter,
    BooleanClauseList,
    False_,
    Grouping,
    True_,
    UnaryExpression,
)

from studio import config  # noqa: E402
from studio.app.domain.models import (  # noqa: E402
    Booking,
    BookingStatus,
    CancellationPolicy,
    Instructor,
    PaymentStatus,
    PolicyType,
    ServiceType,
)

MANILA = ZoneInfo("Asia/Manila")
BOOKING_DAY = date(2030, 1, 10)


class FakeResult:
    def __init__(self, rows):
        self._rows = list(rows)

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)

    def first(self):
        return self._rows[0] if self._rows else None


class FakeStore:
    """Rows shared by every FakeSession opened during one test."""

    def __init__(self):
        self.rows: list = []
        self.fail_execute = False
        self.fail_flush_integrity = False
        self.executed: list = []
        self._next_id = 1000

    def add(self, obj):
        self.rows.append(obj)
        return obj

    def of(self, cls):
        return [r for r in self.rows if isinstance(r, cls)]

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id


def _literal(element):
    if isinstance(element, BindParameter):
        return element.value
    if isinstance(element, True_):
        return True
    if isinstance(element, False_):
        return False
    return None


def _matches(row, clause) -> bool:
    """Evaluate the WHERE clauses the services build (and/or, ==, !=, IN, IS)."""
    if clause is None:
        return True
    if isinstance(clause, Grouping):
        return _matches(row, clause.element)
    if isinstance(clause, BooleanClauseList):
        results = [_matches(row, c) for c in clause.clauses]
        return any(results) if clause.operator is operators.or_ else all(results)
    if isinstance(clause, BinaryExpression):
        value = getattr(row, clause.left.key)
        expected = _literal(clause.right)
        if clause.operator is operators.eq:
            return value == expected
        if clause.operator is operators.ne:
            return value != expected
        if clause.operator is operators.in_op:
            return value in expected
        if clause.operator is operators.is_:
            return value is expected
    raise NotImplementedError(f"FakeSession cannot evaluate {clause!r}")


def _ordered(rows, clauses):
    """Apply ORDER BY as a chain of stable sorts, last key first."""
    rows = list(rows)
    for clause in reversed(clauses):
        if isinstance(clause, UnaryExpression):
            key, reverse = clause.element.key, clause.modifier is operators.desc_op
        else:
            key, reverse = clause.key, False
        rows.sort(key=lambda r: getattr(r, key), reverse=reverse)
    return rows


def _pk(obj):
    if isinstance(obj, Booking):
        return obj.booking_id
    if isinstance(obj, CancellationPolicy):
        return obj.policy_id
    return getattr(obj, "id", None)


class FakeSession:
    bind = None

    def __init__(self, store: FakeStore):
        self.store = store

    @asynccontextmanager
    async def begin(self):
        yield self

    async def execute(self, stmt, params=None):
        self.store.executed.append(stmt)
        if self.store.fail_execute:
            raise OperationalError("SELECT", {}, Exception("database is down"))
        entity = stmt.column_descriptions[0]["entity"]
        where = stmt.whereclause
        rows = [r for r in self.store.rows if isinstance(r, entity) and _matches(r, where)]
        return FakeResult(_ordered(rows, stmt._order_by_clauses))

    async def get(self, entity, ident, **kwargs):
        if self.store.fail_execute:
            raise OperationalError("SELECT", {}, Exception("database is down"))
        for row in self.store.rows:
            if isinstance(row, entity) and _pk(row) == ident:
                return row
        return None

    def add(self, obj):
        self.store.add(obj)

    async def flush(self):
        if self.store.fail_flush_integrity:
            raise IntegrityError("INSERT", {}, Exception("conflicting key value violates exclusion constraint"))
        for row in self.store.rows:
            if isinstance(row, Booking) and row.booking_id is None:
                row.booking_id = self.store.next_id()

    async def close(self):
        pass


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    """Route booking_services sessions to an in-memory store."""
    from studio.app.services import booking_services

    fake = FakeStore()

    @asynccontextmanager
    async def fake_get_session():
        yield FakeSession(fake)

    monkeypatch.setattr(booking_services, "get_session", fake_get_session)
    return fake


@pytest.fixture(autouse=True)
def studio_settings(monkeypatch):
    """Pin runtime settings to the studio defaults regardless of the environment."""
    for key, value in {
        "open_hour": 8,
        "close_hour": 19,
        "slot_step_minutes": 60,
        "grid_open_hour": 10,
        "grid_close_hour": 20,
        "grid_step_minutes": 30,
        "min_duration_minutes": 60,
        "max_duration_minutes": 480,
        "reschedule_cutoff_hours": 8,
        "timezone": "Asia/Manila",
        "currency": "PHP",
    }.items():
        monkeypatch.setitem(config.SETTINGS, key, value)
    return config.SETTINGS


def at(day: date, hh: int, mm: int = 0) -> datetime:
    return datetime.combine(day, time(hh, mm), tzinfo=MANILA)


def make_booking(
    booking_id: int,
    start: time,
    end: time,
    *,
    day: date = BOOKING_DAY,
    room: str = "rehearsal_hall",
    service: ServiceType = ServiceType.REHEARSAL,
    instructor_id: int | None = None,
    status: BookingStatus = BookingStatus.CONFIRMED,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    total: str = "1600.00",
) -> Booking:
    duration = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
    return Booking(
        booking_id=booking_id,
        booking_reference=f"MIX-TEST-{booking_id}",
        service_type=service,
        room=room,
        instructor_id=instructor_id,
        booking_date=day,
        start_time=start,
        end_time=end,
        duration_minutes=duration,
        status=status,
        payment_status=payment_status,
        total_amount=Decimal(total),
        customer_name="Ana Reyes",
        customer_email="ana@example.com",
    )


def make_policy(policy_id: int, policy_type: PolicyType, hours: int, pct: int, description: str = "") -> CancellationPolicy:
    is_cancel = policy_type is PolicyType.CANCELLATION
    return CancellationPolicy(
        policy_id=policy_id,
        policy_type=policy_type,
        hours_before_booking=hours,
        refund_percentage=Decimal(pct) if is_cancel else None,
        fee_percentage=None if is_cancel else Decimal(pct),
        description=description or f"{policy_type.value} {hours}h {pct}%",
        is_active=True,
    )


def default_policies() -> list[CancellationPolicy]:
    return [
        make_policy(1, PolicyType.CANCELLATION, 48, 100),
        make_policy(2, PolicyType.CANCELLATION, 24, 50),
        make_policy(3, PolicyType.CANCELLATION, 0, 0),
        make_policy(4, PolicyType.RESCHEDULING, 48, 0),
        make_policy(5, PolicyType.RESCHEDULING, 24, 10),
        make_policy(6, PolicyType.RESCHEDULING, 8, 25),
    ]


def make_instructor(instructor_id: int, active: bool = True) -> Instructor:
    return Instructor(id=instructor_id, name=f"Instructor {instructor_id}", is_active=active)
