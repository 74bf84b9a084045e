from decimal import Decimal, ROUND_HALF_UP, ROUND_CEILING

from errors import InvalidDuration

CENT = Decimal("0.01")

# ================== TARIFFS ==================
TARIFF_BANDS = {
    "first_hour": {
        "name": "First hour",
        "from_hour": 1,
        "to_hour": 1,
        "rate": Decimal("20.00"),
    },
    "standard": {
        "name": "Standard",
        "from_hour": 2,
        "to_hour": 12,
        "rate": Decimal("15.00"),
    },
    "extended": {
        "name": "Extended stay",
        "from_hour": 13,
        "to_hour": 24,
        "rate": Decimal("10.00"),
    },
}

# charged at most once per started day
DAILY_CAP = Decimal("200.00")
MINUTE_BLOCK = 15


def hourly_rate(hour: int) -> Decimal:
    """Rate for the given hour of the day, counted from 1."""
    for band in TARIFF_BANDS.values():
        if band["from_hour"] <= hour <= band["to_hour"]:
            return band["rate"]
    raise InvalidDuration(f"No tariff band covers hour {hour}")


def _day_amount(hours: int, extra_minutes: int) -> Decimal:
    total = sum((hourly_rate(h) for h in range(1, hours + 1)), Decimal("0"))
    if extra_minutes:
        blocks = (Decimal(extra_minutes) / MINUTE_BLOCK).to_integral_value(rounding=ROUND_CEILING)
        total += blocks * hourly_rate(hours + 1) * MINUTE_BLOCK / 60
    return min(total, DAILY_CAP)


def compute_amount(duration_hours: int, extra_minutes: int = 0) -> Decimal:
    if duration_hours < 1:
        raise InvalidDuration(f"Duration must be at least 1 hour, got {duration_hours}")
    if not 0 <= extra_minutes < 60:
        raise InvalidDuration(f"Extra minutes must be within 0..59, got {extra_minutes}")

    full_days, hours = divmod(duration_hours, 24)
    amount = full_days * DAILY_CAP + _day_amount(hours, extra_minutes)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)
