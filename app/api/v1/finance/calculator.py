"""
Tuition arithmetic: lesson calendar, prorated charge amount, ledger rounding, charge status.
Pure functions, no database access.

ODD groups meet Mon / Wed / Fri, EVEN groups meet Tue / Thu / Sat.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import List, Optional, Union

from app.core.enums import DaysPattern, TuitionChargeStatus
from app.core.exceptions import InvalidInputError

# Python weekday(): Monday=0 ... Sunday=6
_PATTERN_WEEKDAYS = {
    DaysPattern.ODD: (0, 2, 4),
    DaysPattern.EVEN: (1, 3, 5),
}

ROUNDING_UNIT = Decimal("1000")

Number = Union[int, Decimal]


@dataclass(frozen=True)
class LessonCounts:
    planned: int
    charged: int


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def _weekdays_for(pattern: Union[DaysPattern, str]) -> tuple:
    try:
        return _PATTERN_WEEKDAYS[DaysPattern(pattern)]
    except ValueError:
        raise InvalidInputError(f"Unknown lesson-day pattern: {pattern}")


def to_date(value: Union[date, datetime]) -> date:
    # Join moments are compared by calendar day only
    return value.date() if isinstance(value, datetime) else value


def lesson_dates(year: int, month: int, pattern: Union[DaysPattern, str]) -> List[date]:
    """All lesson days of the pattern in the given calendar month, in order."""
    if not 1 <= month <= 12:
        raise InvalidInputError(f"Invalid month: {month}")
    weekdays = _weekdays_for(pattern)
    days_in_month = calendar.monthrange(year, month)[1]
    first = date(year, month, 1)
    out = []
    for offset in range(days_in_month):
        day = first + timedelta(days=offset)
        if day.weekday() in weekdays:
            out.append(day)
    return out


def count_lessons(
    pattern: Union[DaysPattern, str],
    join_date: Union[date, datetime],
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> LessonCounts:
    """
    planned = lesson days in the whole month, charged = lesson days on/after join_date.
    The month defaults to the join date's month.
    """
    join = to_date(join_date)
    year = year if year is not None else join.year
    month = month if month is not None else join.month
    days = lesson_dates(year, month, pattern)
    return LessonCounts(planned=len(days), charged=sum(1 for d in days if d >= join))


def compute_amount_due(monthly_fee: Number, planned_lessons: int, charged_lessons: int) -> Decimal:
    """
    Prorated fee for a partial month, in whole currency units.

    The per-lesson price is floored and the remainder of the division is added to
    the charged amount, so a month with every lesson charged costs exactly the fee.
    A month without any lesson day is charged in full.
    """
    fee = to_decimal(monthly_fee)
    if planned_lessons <= 0:
        return fee.to_integral_value(rounding=ROUND_HALF_UP)
    if charged_lessons <= 0:
        return Decimal("0")

    per_lesson = (fee / planned_lessons).to_integral_value(rounding=ROUND_FLOOR)
    remainder = fee - per_lesson * planned_lessons
    amount = per_lesson * charged_lessons + remainder
    return amount.to_integral_value(rounding=ROUND_HALF_UP)


def round_to_thousand(amount: Number) -> Decimal:
    """Nearest multiple of 1000; halves round up (49500 -> 50000, -49500 -> -49000)."""
    value = to_decimal(amount)
    units = (value / ROUNDING_UNIT + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR)
    return units * ROUNDING_UNIT


def round_down_to_thousand(amount: Number) -> Decimal:
    """Largest multiple of 1000 not above amount (45500 -> 45000)."""
    value = to_decimal(amount)
    return (value / ROUNDING_UNIT).to_integral_value(rounding=ROUND_FLOOR) * ROUNDING_UNIT


def resolve_charge_status(effective: Number, paid: Number) -> TuitionChargeStatus:
    """Charge status from its effective amount and allocated total."""
    effective = to_decimal(effective)
    paid = to_decimal(paid)
    if paid >= effective:
        return TuitionChargeStatus.PAID
    if paid > 0:
        return TuitionChargeStatus.PARTIALLY_PAID
    return TuitionChargeStatus.PENDING
