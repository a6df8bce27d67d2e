import asyncio
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import (
    BOOKING_DAY,
    at,
    default_policies,
    make_booking,
    make_instructor,
)
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
    PaymentStatus,
    ServiceType,
)
from studio.app.services import booking_services as svc
from studio.app.services.policy import PolicyOutcome

# three days ahead of BOOKING_DAY 10:00, well outside every policy window
NOW = at(BOOKING_DAY - timedelta(days=3), 9)


def _request(service="rehearsal", start=time(10), duration=120, **kwargs):
    return svc.BookingRequest(
        service_type=service,
        booking_date=kwargs.pop("day", BOOKING_DAY),
        start_time=start,
        duration_minutes=duration,
        customer_name="Ana Reyes",
        customer_email="ana@example.com",
        **kwargs,
    )


def _create(request, now=NOW):
    return asyncio.run(svc.create_booking(request, now=now))


def _actions(store):
    return [entry.action for entry in store.of(ActivityLog)]


# ---------------------------------------------------------------------------
# create_booking
# ---------------------------------------------------------------------------


def test_create_booking_inserts_pending_row(store):
    booking = _create(_request(user_id=42))

    assert booking.booking_id == 1001
    assert booking.status is BookingStatus.PENDING
    assert booking.payment_status is PaymentStatus.PENDING
    assert booking.room == "rehearsal_hall"
    assert booking.end_time == time(12)
    assert booking.duration_minutes == 120
    assert booking.total_amount == Decimal("1600.00")
    assert booking.booking_reference.startswith("MIX-")
    assert store.of(Booking) == [booking]

    (entry,) = store.of(ActivityLog)
    assert entry.action == "booking_created"
    assert entry.entity_id == 1001
    assert entry.user_id == 42


def test_overlapping_request_in_same_room_is_rejected(store):
    store.add(make_booking(1, time(10), time(12)))

    with pytest.raises(ConflictError) as exc_info:
        _create(_request(start=time(11), duration=60))

    assert exc_info.value.conflicting_ids == [1]
    assert len(store.of(Booking)) == 1


def test_overlap_into_existing_afternoon_booking(store):
    store.add(make_booking(1, time(14), time(16)))

    with pytest.raises(ConflictError) as exc_info:
        _create(_request(start=time(13), duration=90))
    assert exc_info.value.conflicting_ids == [1]

    after = _create(_request(start=time(16), duration=60))
    assert (after.start_time, after.end_time) == (time(16), time(17))


def test_touching_bookings_do_not_conflict(store):
    store.add(make_booking(1, time(10), time(12)))

    after = _create(_request(start=time(12), duration=60))
    before = _create(_request(start=time(8), duration=120))

    assert after.start_time == time(12)
    assert before.end_time == time(10)


def test_recording_and_voiceover_share_the_booth(store):
    store.add(make_booking(1, time(14), time(16), room="recording_booth", service=ServiceType.RECORDING))

    with pytest.raises(ConflictError):
        _create(_request(service="voiceover", start=time(15), duration=60))

    lesson = _create(_request(service="music_lesson", start=time(15), duration=60))
    assert lesson.room == "lesson_room"


def test_instructor_cannot_be_in_two_rooms(store):
    store.add(make_instructor(7))
    store.add(make_booking(1, time(10), time(11), room="lesson_room", service=ServiceType.MUSIC_LESSON, instructor_id=7))

    with pytest.raises(ConflictError) as exc_info:
        _create(_request(service="dance", start=time(10), duration=60, instructor_id=7))
    assert exc_info.value.conflicting_ids == [1]

    other_day = _create(_request(service="dance", start=time(10), duration=60, instructor_id=7, day=BOOKING_DAY + timedelta(days=1)))
    assert other_day.instructor_id == 7


def test_unknown_or_inactive_instructor_is_rejected(store):
    store.add(make_instructor(8, active=False))

    for instructor_id in (8, 99):
        with pytest.raises(ValidationError) as exc_info:
            _create(_request(instructor_id=instructor_id))
        assert exc_info.value.code == "invalid_instructor"


def test_freed_bookings_do_not_block(store):
    store.add(make_booking(1, time(10), time(12), status=BookingStatus.CANCELLED))
    store.add(make_booking(2, time(10), time(12), status=BookingStatus.RESCHEDULED))

    booking = _create(_request())
    assert booking.booking_id == 1001


def test_other_days_and_rooms_do_not_block(store):
    store.add(make_booking(1, time(10), time(12), day=BOOKING_DAY + timedelta(days=1)))
    store.add(make_booking(2, time(10), time(12), room="dance_studio", service=ServiceType.DANCE))

    assert _create(_request()).start_time == time(10)


@pytest.mark.parametrize(
    "request_kwargs, code",
    [
        ({"service": "karaoke"}, "invalid_service"),
        ({"start": time(18), "duration": 120}, "outside_operating_hours"),
        ({"start": time(7), "duration": 60}, "outside_operating_hours"),
        ({"start": time(23), "duration": 120}, "crosses_midnight"),
    ],
)
def test_invalid_requests_are_rejected(store, request_kwargs, code):
    with pytest.raises(ValidationError) as exc_info:
        _create(_request(**request_kwargs))
    assert exc_info.value.code == code
    assert store.of(Booking) == []


def test_duration_out_of_bounds_is_rejected(store):
    with pytest.raises(ValidationError):
        _create(_request(duration=30))
    with pytest.raises(ValidationError):
        _create(_request(duration=540))


def test_booking_in_the_past_is_rejected(store):
    with pytest.raises(ValidationError) as exc_info:
        _create(_request(start=time(10)), now=at(BOOKING_DAY, 10, 30))
    assert exc_info.value.code == "booking_in_past"


def test_storage_failure_is_not_read_as_available(store):
    store.fail_execute = True
    with pytest.raises(StorageFailure):
        _create(_request())
    assert store.of(Booking) == []


def test_exclusion_constraint_violation_becomes_conflict(store):
    store.fail_flush_integrity = True
    with pytest.raises(ConflictError):
        _create(_request())


def test_cash_payment_is_recorded_as_paid(store):
    booking = _create(_request(payment_method="Cash"))
    assert booking.payment_status is PaymentStatus.PAID
    assert booking.paid_at == NOW
    assert booking.status is BookingStatus.PENDING


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


def test_list_available_slots_drops_busy_starts(store):
    store.add(make_booking(1, time(10), time(12)))
    store.add(make_booking(2, time(13), time(15), room="recording_booth", service=ServiceType.RECORDING))

    slots = asyncio.run(svc.list_available_slots(BOOKING_DAY, "rehearsal", 60))
    starts = [s.start_time for s in slots]

    assert starts == ["08:00", "09:00", "12:00", "13:00", "14:00", "15:00", "16:00", "17:00"]


def test_list_available_slots_respects_instructor(store):
    store.add(make_booking(1, time(13), time(14), room="lesson_room", service=ServiceType.MUSIC_LESSON, instructor_id=7))

    slots = asyncio.run(svc.list_available_slots(BOOKING_DAY, "rehearsal", 60, instructor_id=7))
    assert "13:00" not in [s.start_time for s in slots]

    slots = asyncio.run(svc.list_available_slots(BOOKING_DAY, "rehearsal", 60))
    assert "13:00" in [s.start_time for s in slots]


def test_list_available_slots_surfaces_storage_failure(store):
    store.fail_execute = True
    with pytest.raises(StorageFailure):
        asyncio.run(svc.list_available_slots(BOOKING_DAY, "rehearsal", 60))


def test_tick_grid_covers_every_room_or_one_instructor(store):
    store.add(make_booking(1, time(12), time(13)))
    store.add(make_booking(2, time(15), time(16), room="lesson_room", service=ServiceType.MUSIC_LESSON, instructor_id=7))
    store.add(make_booking(3, time(17), time(18), status=BookingStatus.CANCELLED))

    grid = asyncio.run(svc.get_tick_grid(BOOKING_DAY, 60))
    assert grid.occupied == [720, 750, 900, 930]

    grid = asyncio.run(svc.get_tick_grid(BOOKING_DAY, 60, instructor_id=7))
    assert grid.occupied == [900, 930]


def test_is_instructor_available(store):
    store.add(make_booking(5, time(10), time(11), room="lesson_room", service=ServiceType.MUSIC_LESSON, instructor_id=7))

    assert asyncio.run(svc.is_instructor_available(BOOKING_DAY, time(10, 30), 60, 7)) is False
    assert asyncio.run(svc.is_instructor_available(BOOKING_DAY, time(11), 60, 7)) is True
    assert asyncio.run(svc.is_instructor_available(BOOKING_DAY, time(10), 60, 8)) is True
    assert asyncio.run(svc.is_instructor_available(BOOKING_DAY, time(10), 60, 7, exclude_booking_id=5)) is True


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


def _seed_booking(store, **kwargs):
    for policy_row in default_policies():
        store.add(policy_row)
    return store.add(make_booking(1, time(10), time(12), **kwargs))


@pytest.mark.parametrize(
    "now, refund",
    [
        (NOW, Decimal("1600.00")),
        (at(BOOKING_DAY - timedelta(days=1), 4), Decimal("800.00")),
    ],
)
def test_cancel_refunds_by_lead_time(store, now, refund):
    _seed_booking(store)

    booking, evaluation = asyncio.run(svc.cancel_booking(1, reason="band split", cancelled_by=42, now=now))

    assert booking.status is BookingStatus.CANCELLED
    assert booking.refund_amount == refund
    assert booking.cancelled_at == now
    assert booking.cancelled_by == 42
    assert booking.cancellation_reason == "band split"
    assert evaluation.amount == refund

    (ledger,) = store.of(BookingRefund)
    assert ledger.booking_id == 1
    assert ledger.refund_amount == refund
    assert ledger.refund_reason == "cancellation"
    assert _actions(store) == ["booking_cancelled"]


def test_late_cancel_has_no_refund_row(store):
    _seed_booking(store)

    booking, evaluation = asyncio.run(svc.cancel_booking(1, now=at(BOOKING_DAY, 8)))

    assert booking.status is BookingStatus.CANCELLED
    assert evaluation.amount == Decimal("0.00")
    assert store.of(BookingRefund) == []


def test_cancelled_slot_can_be_booked_again(store):
    _seed_booking(store)
    asyncio.run(svc.cancel_booking(1, now=NOW))

    assert _create(_request()).start_time == time(10)


def test_cancel_terminal_booking_is_invalid(store):
    _seed_booking(store, status=BookingStatus.COMPLETED)
    with pytest.raises(InvalidTransition):
        asyncio.run(svc.cancel_booking(1, now=NOW))


def test_cancel_without_matching_policy_fails_loudly(store):
    store.add(make_booking(1, time(10), time(12)))

    with pytest.raises(PolicyNotFoundError):
        asyncio.run(svc.cancel_booking(1, now=NOW))
    assert store.of(Booking)[0].status is BookingStatus.CONFIRMED


def test_cancel_unknown_booking(store):
    with pytest.raises(BookingNotFound) as exc_info:
        asyncio.run(svc.cancel_booking(404, now=NOW))
    assert exc_info.value.booking_id == 404


def test_quotes_have_no_side_effects(store):
    booking = _seed_booking(store)

    quote = asyncio.run(svc.quote_cancellation(1, now=NOW))
    assert quote.amount == Decimal("1600.00")
    assert booking.status is BookingStatus.CONFIRMED

    quote = asyncio.run(svc.quote_rescheduling(1, now=at(BOOKING_DAY, 5)))
    assert quote.outcome is PolicyOutcome.NOT_ALLOWED
    assert store.of(BookingRefund) == [] and store.of(ActivityLog) == []


# ---------------------------------------------------------------------------
# Rescheduling
# ---------------------------------------------------------------------------


def test_reschedule_supersedes_old_row_and_charges_fee(store):
    old = _seed_booking(store)
    new_day = BOOKING_DAY + timedelta(days=1)
    now = at(BOOKING_DAY - timedelta(days=1), 4)  # 30 hours ahead

    new, evaluation = asyncio.run(svc.reschedule_booking(1, new_day, time(14), rescheduled_by=42, now=now))

    assert old.status is BookingStatus.RESCHEDULED
    assert old.rescheduling_fee == Decimal("160.00")
    assert new.booking_id == 1001
    assert new.status is BookingStatus.CONFIRMED
    assert re.fullmatch(r"RESCH-MIX-TEST-1-[0-9A-F]{6}", new.booking_reference)
    assert new.rescheduled_from == 1
    assert old.rescheduled_to == new.booking_id
    assert new.booking_date == new_day
    assert (new.start_time, new.end_time) == (time(14), time(16))
    assert new.room == old.room
    assert new.total_amount == old.total_amount
    assert evaluation.amount == Decimal("160.00")

    (ledger,) = store.of(BookingRefund)
    assert ledger.booking_id == 1
    assert ledger.refund_amount == Decimal("-160.00")
    assert ledger.refund_reason == "rescheduling_fee"
    assert _actions(store) == ["booking_rescheduled"]


def test_free_reschedule_writes_no_fee_row(store):
    _seed_booking(store)
    new, evaluation = asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(15), now=NOW))
    assert evaluation.amount == Decimal("0.00")
    assert new.rescheduling_fee == Decimal("0.00")
    assert store.of(BookingRefund) == []


def test_reschedule_inside_cutoff_is_refused(store):
    old = _seed_booking(store)
    with pytest.raises(ReschedulingNotAllowed):
        asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(15), now=at(BOOKING_DAY, 5)))
    assert old.status is BookingStatus.CONFIRMED
    assert len(store.of(Booking)) == 1


def test_reschedule_into_taken_slot_conflicts(store):
    old = _seed_booking(store)
    store.add(make_booking(2, time(15), time(17)))

    with pytest.raises(ConflictError) as exc_info:
        asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(16), now=NOW))
    assert exc_info.value.conflicting_ids == [2]
    assert old.status is BookingStatus.CONFIRMED


def test_reschedule_may_overlap_its_own_slot(store):
    _seed_booking(store)
    new, _ = asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(11), now=NOW))
    assert (new.start_time, new.end_time) == (time(11), time(13))


def test_rescheduled_slot_is_released(store):
    _seed_booking(store)
    asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(14), now=NOW))

    assert _create(_request(start=time(10), duration=120)).start_time == time(10)


def test_repeated_reschedules_keep_reference_short_and_unique(store):
    first = _seed_booking(store)
    first.booking_reference = "MIX-LZ3K9Q1A-3F9A0C1B"

    current, references = first, {first.booking_reference}
    for _ in range(10):
        current, _ = asyncio.run(svc.reschedule_booking(current.booking_id, BOOKING_DAY, time(10), now=NOW))
        assert len(current.booking_reference) <= 64
        assert current.booking_reference.startswith("RESCH-MIX-LZ3K9Q1A-3F9A0C1B-")
        references.add(current.booking_reference)

    assert len(references) == 11
    live = [b for b in store.of(Booking) if b.status is not BookingStatus.RESCHEDULED]
    assert live == [current]
    assert first.rescheduled_to == 1001


def test_in_progress_booking_cannot_be_rescheduled(store):
    _seed_booking(store, status=BookingStatus.IN_PROGRESS)
    with pytest.raises(InvalidTransition):
        asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(15), now=NOW))


# ---------------------------------------------------------------------------
# Payment and staff transitions
# ---------------------------------------------------------------------------


def test_payment_paid_confirms_pending_booking_once(store):
    store.add(make_booking(1, time(10), time(12), status=BookingStatus.PENDING))

    booking = asyncio.run(svc.mark_payment_paid(1, payment_reference="pay_123", invoice_id="inv_9", now=NOW))
    assert booking.payment_status is PaymentStatus.PAID
    assert booking.status is BookingStatus.CONFIRMED
    assert booking.paid_at == NOW
    assert (booking.payment_reference, booking.invoice_id) == ("pay_123", "inv_9")

    again = asyncio.run(svc.mark_payment_paid(1, payment_reference="pay_456", now=NOW + timedelta(hours=1)))
    assert again.paid_at == NOW
    assert again.payment_reference == "pay_123"
    assert _actions(store) == ["payment_received"]


def test_payment_expired_and_failed_only_touch_pending_payments(store):
    store.add(make_booking(1, time(10), time(12), status=BookingStatus.PENDING))
    store.add(make_booking(2, time(13), time(15), payment_status=PaymentStatus.PAID))

    assert asyncio.run(svc.mark_payment_expired(1)).payment_status is PaymentStatus.EXPIRED
    assert asyncio.run(svc.mark_payment_failed(2)).payment_status is PaymentStatus.PAID
    assert _actions(store) == ["payment_expired"]


def test_payment_for_rescheduled_booking_lands_on_live_row(store):
    old = _seed_booking(store, status=BookingStatus.PENDING)
    new, _ = asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(15), now=NOW))
    assert new.payment_status is PaymentStatus.PENDING

    # the invoice was issued for booking 1
    paid = asyncio.run(svc.mark_payment_paid(1, payment_reference="pay_777", now=NOW))

    assert paid is new
    assert new.payment_status is PaymentStatus.PAID
    assert new.payment_reference == "pay_777"
    assert new.paid_at == NOW
    assert old.payment_status is PaymentStatus.PAID
    assert old.status is BookingStatus.RESCHEDULED

    again = asyncio.run(svc.mark_payment_paid(1, payment_reference="pay_888", now=NOW))
    assert again is new and new.payment_reference == "pay_777"
    assert _actions(store).count("payment_received") == 1


def test_expired_payment_follows_reschedule_chain(store):
    old = _seed_booking(store, status=BookingStatus.PENDING)
    middle, _ = asyncio.run(svc.reschedule_booking(1, BOOKING_DAY, time(14), now=NOW))
    live, _ = asyncio.run(svc.reschedule_booking(middle.booking_id, BOOKING_DAY, time(16), now=NOW))

    result = asyncio.run(svc.mark_payment_expired(1))

    assert result is live
    assert [b.payment_status for b in (old, middle, live)] == [PaymentStatus.EXPIRED] * 3


def test_staff_transitions_follow_lifecycle(store):
    store.add(make_booking(1, time(10), time(12), status=BookingStatus.PENDING))
    on_the_day = at(BOOKING_DAY, 9, 50)

    assert asyncio.run(svc.confirm_booking(1, staff_id=3)).status is BookingStatus.CONFIRMED
    checked_in = asyncio.run(svc.check_in_booking(1, staff_id=3, now=on_the_day))
    assert checked_in.status is BookingStatus.IN_PROGRESS
    assert checked_in.checked_in_at == on_the_day
    assert asyncio.run(svc.complete_booking(1, staff_id=3)).status is BookingStatus.COMPLETED

    with pytest.raises(InvalidTransition):
        asyncio.run(svc.confirm_booking(1))
    assert _actions(store) == ["booking_confirmed", "booking_checked_in", "booking_completed"]


def test_check_in_only_on_booking_day(store):
    store.add(make_booking(1, time(10), time(12)))
    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(svc.check_in_booking(1, now=NOW))
    assert exc_info.value.code == "not_booking_day"


def test_check_in_uses_studio_local_date(store):
    store.add(make_booking(1, time(10), time(12), day=date(2030, 1, 10)))
    # 17:00 UTC on the 9th is already 01:00 on the 10th in Manila
    late_utc = datetime(2030, 1, 9, 17, 0, tzinfo=timezone.utc)
    assert asyncio.run(svc.check_in_booking(1, now=late_utc)).status is BookingStatus.IN_PROGRESS


# ---------------------------------------------------------------------------
# Listing and lookup
# ---------------------------------------------------------------------------


def _owned(store, booking_id, start, user_id, **kwargs):
    booking = store.add(make_booking(booking_id, start, time(start.hour + 1), **kwargs))
    booking.user_id = user_id
    return booking


def test_list_user_bookings_latest_first(store):
    early = _owned(store, 1, time(9), 42)
    late = _owned(store, 2, time(15), 42)
    next_day = _owned(store, 3, time(8), 42, day=BOOKING_DAY + timedelta(days=1))
    _owned(store, 4, time(11), 7)

    bookings = asyncio.run(svc.list_user_bookings(42))

    assert [b.booking_id for b in bookings] == [next_day.booking_id, late.booking_id, early.booking_id]
    assert asyncio.run(svc.list_user_bookings(99)) == []


def test_list_bookings_filters_by_date_and_status(store):
    _owned(store, 1, time(9), 42)
    _owned(store, 2, time(12), 42, status=BookingStatus.PENDING)
    _owned(store, 3, time(9), 42, day=BOOKING_DAY + timedelta(days=1))

    on_day = asyncio.run(svc.list_bookings(booking_date=BOOKING_DAY))
    assert [b.booking_id for b in on_day] == [2, 1]

    pending = asyncio.run(svc.list_bookings(status="Pending"))
    assert [b.booking_id for b in pending] == [2]

    assert len(asyncio.run(svc.list_bookings())) == 3


def test_list_bookings_rejects_unknown_status(store):
    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(svc.list_bookings(status="lost"))
    assert exc_info.value.code == "invalid_status"


def test_get_booking_by_reference(store):
    store.add(make_booking(1, time(10), time(12)))

    assert asyncio.run(svc.get_booking_by_reference(" mix-test-1 ")).booking_id == 1
    with pytest.raises(BookingNotFound) as exc_info:
        asyncio.run(svc.get_booking_by_reference("MIX-NOPE"))
    assert exc_info.value.booking_id == "MIX-NOPE"
