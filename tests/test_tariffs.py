from decimal import Decimal

import pytest

from errors import InvalidDuration
from tariffs import DAILY_CAP, compute_amount


def test_first_hour():
    assert compute_amount(1, 0) == Decimal("20.00")


def test_standard_hours():
    assert compute_amount(3, 0) == Decimal("50.00")


def test_extra_minutes_billed_in_blocks():
    # started quarter hour at the standard rate
    assert compute_amount(1, 1) == Decimal("23.75")
    assert compute_amount(1, 15) == Decimal("23.75")
    assert compute_amount(1, 16) == Decimal("27.50")


def test_two_decimal_places():
    assert compute_amount(5, 7).as_tuple().exponent == -2


def test_daily_cap():
    assert compute_amount(24, 0) == DAILY_CAP
    assert compute_amount(48, 0) == DAILY_CAP * 2


def test_monotonic_in_duration():
    amounts = [compute_amount(h, 0) for h in range(1, 73)]
    assert amounts == sorted(amounts)


def test_monotonic_with_minutes():
    previous = Decimal("0")
    for hours in range(1, 50):
        for minutes in (0, 15, 30, 59):
            amount = compute_amount(hours, minutes)
            assert amount >= previous
            previous = amount


def test_deterministic():
    assert compute_amount(7, 20) == compute_amount(7, 20)


@pytest.mark.parametrize("hours, minutes", [(0, 0), (-1, 0), (1, -5), (1, 60)])
def test_invalid_duration(hours, minutes):
    with pytest.raises(InvalidDuration):
        compute_amount(hours, minutes)
