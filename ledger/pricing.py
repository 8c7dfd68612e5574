"""Date math and price quoting for stays."""
from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from .errors import InvalidDateRange

CENT = Decimal("0.01")

DateLike = Union[date, str]


def parse_date(value: DateLike, field: str = "date") -> date:
    """Coerce an ISO ``YYYY-MM-DD`` string or a date into a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidDateRange(f"{field} must be a valid date", value=value) from exc
    raise InvalidDateRange(f"{field} must be a valid date", value=repr(value))


def stays_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open intervals overlap iff each starts before the other ends.

    A checkout on the same day as the next check-in does not overlap.
    """
    return start_a < end_b and start_b < end_a


def nights_between(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


def quote_total(price_per_night: Decimal, check_in: date, check_out: date, units: int) -> Decimal:
    total = Decimal(price_per_night) * nights_between(check_in, check_out) * units
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: object) -> Decimal:
    """Normalise a database aggregate (Decimal, float or None) to cents."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
