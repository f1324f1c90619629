from datetime import date, datetime
from decimal import Decimal

import pytest

from app.api.v1.finance.calculator import (
    compute_amount_due,
    count_lessons,
    lesson_dates,
    resolve_charge_status,
    round_down_to_thousand,
    round_to_thousand,
)
from app.core.enums import DaysPattern, TuitionChargeStatus
from app.core.exceptions import InvalidInputError


# --- Lesson calendar ---
def test_odd_pattern_january_2025():
    days = lesson_dates(2025, 1, DaysPattern.ODD)
    assert len(days) == 14
    assert days[0] == date(2025, 1, 1)
    assert days[-1] == date(2025, 1, 31)
    assert all(d.weekday() in (0, 2, 4) for d in days)
    assert days == sorted(days)


def test_even_pattern_january_2025():
    days = lesson_dates(2025, 1, "EVEN")
    assert len(days) == 13
    assert days[0] == date(2025, 1, 2)
    assert all(d.weekday() in (1, 3, 5) for d in days)


def test_february_2025_has_four_weeks_of_each_weekday():
    assert len(lesson_dates(2025, 2, DaysPattern.ODD)) == 12
    assert len(lesson_dates(2025, 2, DaysPattern.EVEN)) == 12


def test_count_lessons_from_mid_month_join():
    counts = count_lessons(DaysPattern.ODD, date(2025, 1, 15))
    assert counts.planned == 14
    assert counts.charged == 8

    counts = count_lessons(DaysPattern.EVEN, date(2025, 1, 15))
    assert counts.planned == 13
    assert counts.charged == 7


def test_count_lessons_join_day_is_a_lesson_day_and_counts():
    # Jan 1 2025 is a Wednesday
    counts = count_lessons(DaysPattern.ODD, date(2025, 1, 1))
    assert counts.charged == counts.planned == 14


def test_count_lessons_ignores_time_of_day():
    counts = count_lessons(DaysPattern.ODD, datetime(2025, 1, 15, 23, 59))
    assert counts.charged == 8


def test_count_lessons_join_after_last_lesson():
    # last EVEN lesson of January 2025 is Thursday the 30th
    counts = count_lessons(DaysPattern.EVEN, date(2025, 1, 31))
    assert counts.planned == 13
    assert counts.charged == 0


def test_unknown_pattern_rejected():
    with pytest.raises(InvalidInputError):
        lesson_dates(2025, 1, "WEEKEND")


def test_invalid_month_rejected():
    with pytest.raises(InvalidInputError):
        lesson_dates(2025, 13, DaysPattern.ODD)


# --- Amount ---
def test_full_month_keeps_remainder():
    # 100000 / 7 -> 14285 per lesson, remainder 5
    assert compute_amount_due(100000, 7, 7) == Decimal("100000")


def test_partial_month_adds_remainder_once():
    assert compute_amount_due(100000, 7, 3) == Decimal("42860")
    assert compute_amount_due(100000, 14, 8) == Decimal("57148")


def test_no_charged_lessons_is_free():
    assert compute_amount_due(100000, 14, 0) == Decimal("0")


def test_zero_lesson_month_charges_full_fee():
    assert compute_amount_due(100000, 0, 0) == Decimal("100000")


def test_exact_division_has_no_remainder():
    assert compute_amount_due(130000, 13, 7) == Decimal("70000")


# --- Rounding ---
@pytest.mark.parametrize(
    "raw, expected",
    [
        (49499, 49000),
        (49500, 50000),
        (57148, 57000),
        (0, 0),
        (Decimal("999.99"), 1000),
        (-49500, -49000),
    ],
)
def test_round_to_thousand(raw, expected):
    assert round_to_thousand(raw) == Decimal(expected)


def test_round_down_to_thousand():
    assert round_down_to_thousand(4500) == Decimal("4000")
    assert round_down_to_thousand(Decimal("999.99")) == Decimal("0")
    assert round_down_to_thousand(45000) == Decimal("45000")


# --- Status ---
def test_status_from_paid_total():
    assert resolve_charge_status(50000, 0) == TuitionChargeStatus.PENDING
    assert resolve_charge_status(50000, 10000) == TuitionChargeStatus.PARTIALLY_PAID
    assert resolve_charge_status(50000, 50000) == TuitionChargeStatus.PAID
    assert resolve_charge_status(50000, 60000) == TuitionChargeStatus.PAID


def test_zero_effective_amount_is_paid():
    assert resolve_charge_status(0, 0) == TuitionChargeStatus.PAID
