"""
Rental billing arithmetic.

Pure functions only: no ORM access, no settings lookups. Everything that
deals in money takes and returns ``Decimal`` quantized to two places.
"""
import math
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from backoffice import errors

CENT = Decimal("0.01")

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
RATE_TYPES = (DAILY, WEEKLY, MONTHLY)

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30  # fixed approximation, not calendar-aware


def money(v) -> Decimal:
    return Decimal(v or 0).quantize(CENT, rounding=ROUND_HALF_UP)


def elapsed_days(start_date: date, end_date: date) -> int:
    """Whole days between two dates, ignoring order."""
    return abs((end_date - start_date).days)


def period_count(start_date: date, end_date: date, rate_type: str) -> int:
    days = elapsed_days(start_date, end_date)
    if rate_type == DAILY:
        return days
    if rate_type == WEEKLY:
        return math.ceil(days / DAYS_PER_WEEK)
    if rate_type == MONTHLY:
        return math.ceil(days / DAYS_PER_MONTH)
    raise errors.ValidationError(f"Unknown rate type: {rate_type!r}", field="rate_type")


def line_total(rate_amount, periods: int, quantity: int) -> Decimal:
    return money(Decimal(rate_amount) * periods * quantity)


def subtotal(line_totals: Iterable[Decimal]) -> Decimal:
    # each line is already rounded; summing rounded lines keeps totals reconcilable
    return money(sum((money(t) for t in line_totals), Decimal("0.00")))


def suggested_late_fee(start_date: date, expected_return_date: date, return_date: date,
                       per_day=Decimal("100.00")) -> Decimal:
    """
    Late fee proposed for a return after the expected date:
    one ``per_day`` charge for every day beyond the booked duration.
    """
    extra_days = elapsed_days(start_date, return_date) - elapsed_days(start_date, expected_return_date)
    if extra_days <= 0:
        return Decimal("0.00")
    return money(Decimal(per_day) * extra_days)
