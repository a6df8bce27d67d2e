import re
from decimal import Decimal

import pytest

from studio.app.services import pricing


@pytest.mark.parametrize(
    "service, minutes, expected",
    [
        ("rehearsal", 120, "1600.00"),
        ("recording", 90, "2250.00"),
        ("music_lesson", 60, "500.00"),
        ("arrangement", 180, "6000.00"),
        ("voiceover", 100, "1666.67"),
    ],
)
def test_calculate_amount(service, minutes, expected):
    assert pricing.calculate_amount(service, minutes) == Decimal(expected)


def test_unknown_service_is_billed_as_rehearsal():
    assert pricing.hourly_rate("karaoke") == pricing.HOURLY_RATES[pricing.ServiceType.REHEARSAL]


def test_format_money():
    assert pricing.format_money(Decimal("1234.5")) == "1,234.50 PHP"
    assert pricing.format_money(None, "USD") == "0.00 USD"


def test_booking_reference_shape_and_uniqueness():
    refs = {pricing.generate_booking_reference() for _ in range(50)}
    assert len(refs) == 50
    for ref in refs:
        assert re.fullmatch(r"MIX-[0-9A-Z]+-[0-9A-F]{8}", ref)


def test_base36_and_rescheduled_reference():
    assert pricing._to_base36(0) == "0"
    assert pricing._to_base36(35) == "Z"
    assert pricing._to_base36(36) == "10"
    assert re.fullmatch(r"RESCH-MIX-ABC-0011AAFF-[0-9A-F]{6}", pricing.rescheduled_reference("MIX-ABC-0011AAFF"))


def test_rescheduled_reference_is_rebuilt_from_the_root():
    ref = "MIX-ABC-0011AAFF"
    seen = set()
    for _ in range(20):
        ref = pricing.rescheduled_reference(ref)
        assert ref.startswith("RESCH-MIX-ABC-0011AAFF-")
        assert ref.count("RESCH-") == 1
        assert len(ref) <= 64
        seen.add(ref)
    assert len(seen) == 20


def test_rescheduled_reference_truncates_long_roots():
    ref = pricing.rescheduled_reference("X" * 80)
    assert len(ref) <= 64
    assert ref.startswith("RESCH-" + "X" * 48 + "-")
