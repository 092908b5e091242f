from datetime import date, datetime

from models import Frequency, ProjectionMethod, Schedule, Transaction, TransactionStatus, TransactionType
from recurrence import (
    generate_occurrences,
    next_occurrence,
    occurrences_for,
    occurrences_in_month,
)


def _schedule(frequency, anchor, first=None, second=None) -> Schedule:
    return Schedule(
        frequency=frequency,
        anchor_date=anchor,
        first_monthly_day=first,
        second_monthly_day=second,
    )


def test_weekly_every_seven_days_from_anchor():
    schedule = _schedule(Frequency.weekly, date(2024, 1, 1))
    assert generate_occurrences(schedule, date(2024, 1, 1), date(2024, 1, 22)) == [
        date(2024, 1, 1),
        date(2024, 1, 8),
        date(2024, 1, 15),
        date(2024, 1, 22),
    ]


def test_weekly_window_starting_after_anchor_keeps_phase():
    schedule = _schedule(Frequency.weekly, date(2024, 1, 1))
    assert generate_occurrences(schedule, date(2024, 1, 10), date(2024, 1, 31)) == [
        date(2024, 1, 15),
        date(2024, 1, 22),
        date(2024, 1, 29),
    ]


def test_biweekly_every_fourteen_days():
    schedule = _schedule(Frequency.biweekly, date(2024, 1, 5))
    assert generate_occurrences(schedule, date(2024, 1, 1), date(2024, 2, 29)) == [
        date(2024, 1, 5),
        date(2024, 1, 19),
        date(2024, 2, 2),
        date(2024, 2, 16),
    ]


def test_monthly_clamps_to_month_end():
    schedule = _schedule(Frequency.monthly, date(2023, 1, 31))
    dates = generate_occurrences(schedule, date(2023, 1, 1), date(2023, 4, 30))
    assert dates == [
        date(2023, 1, 31),
        date(2023, 2, 28),
        date(2023, 3, 31),
        date(2023, 4, 30),
    ]


def test_monthly_clamps_to_leap_day():
    schedule = _schedule(Frequency.monthly, date(2024, 1, 31))
    dates = generate_occurrences(schedule, date(2024, 2, 1), date(2024, 2, 29))
    assert dates == [date(2024, 2, 29)]


def test_monthly_does_not_drift_after_short_month():
    schedule = _schedule(Frequency.monthly, date(2024, 1, 31))
    dates = generate_occurrences(schedule, date(2024, 2, 1), date(2024, 12, 31))
    assert date(2024, 3, 31) in dates
    assert date(2024, 5, 31) in dates
    assert all(d.day >= 29 for d in dates)


def test_twice_monthly_sorted_and_clamped():
    schedule = _schedule(Frequency.twice_monthly, date(2024, 1, 1), first=31, second=15)
    dates = generate_occurrences(schedule, date(2024, 2, 1), date(2024, 3, 31))
    assert dates == [
        date(2024, 2, 15),
        date(2024, 2, 29),
        date(2024, 3, 15),
        date(2024, 3, 31),
    ]


def test_twice_monthly_collapses_duplicate_clamped_days():
    schedule = _schedule(Frequency.twice_monthly, date(2023, 1, 1), first=30, second=31)
    dates = generate_occurrences(schedule, date(2023, 2, 1), date(2023, 2, 28))
    assert dates == [date(2023, 2, 28)]


def test_twice_monthly_without_days_is_malformed():
    schedule = _schedule(Frequency.twice_monthly, date(2024, 1, 1), first=1)
    assert generate_occurrences(schedule, date(2024, 1, 1), date(2024, 12, 31)) == []
    assert next_occurrence(schedule, date(2024, 1, 1)) is None


def test_annual_leap_day_clamps_then_recovers():
    schedule = _schedule(Frequency.annual, date(2024, 2, 29))
    dates = generate_occurrences(schedule, date(2024, 1, 1), date(2028, 12, 31))
    assert dates == [
        date(2024, 2, 29),
        date(2025, 2, 28),
        date(2026, 2, 28),
        date(2027, 2, 28),
        date(2028, 2, 29),
    ]


def test_once_only_on_anchor():
    schedule = _schedule(Frequency.once, date(2024, 6, 1))
    assert generate_occurrences(schedule, date(2024, 1, 1), date(2024, 12, 31)) == [
        date(2024, 6, 1)
    ]
    assert generate_occurrences(schedule, date(2024, 6, 2), date(2024, 12, 31)) == []


def test_reversed_window_is_empty():
    schedule = _schedule(Frequency.weekly, date(2024, 1, 1))
    assert generate_occurrences(schedule, date(2024, 2, 1), date(2024, 1, 1)) == []


def test_window_bounds_are_day_granular():
    schedule = _schedule(Frequency.weekly, date(2024, 1, 1))
    dates = generate_occurrences(
        schedule, datetime(2024, 1, 8, 18, 30), datetime(2024, 1, 15, 0, 1)
    )
    assert dates == [date(2024, 1, 8), date(2024, 1, 15)]


def test_generation_is_ascending_unique_and_repeatable():
    schedule = _schedule(Frequency.twice_monthly, date(2024, 1, 1), first=1, second=15)
    start, end = date(2024, 1, 1), date(2024, 12, 31)
    first = generate_occurrences(schedule, start, end)
    assert first == generate_occurrences(schedule, start, end)
    assert first == sorted(set(first))
    assert all(start <= d <= end for d in first)
    assert len(first) == 24


def test_frequency_aliases():
    assert Frequency("oneTime") is Frequency.once
    assert Frequency("twiceMonthly") is Frequency.twice_monthly
    assert Frequency("yearly") is Frequency.annual
    assert Frequency.biweekly.label == "Bi-Weekly"


def test_next_occurrence_once():
    schedule = _schedule(Frequency.once, date(2024, 6, 1))
    assert next_occurrence(schedule, date(2024, 5, 31)) == date(2024, 6, 1)
    assert next_occurrence(schedule, date(2024, 6, 1)) is None


def test_next_occurrence_is_strictly_after():
    weekly = _schedule(Frequency.weekly, date(2024, 1, 1))
    assert next_occurrence(weekly, date(2024, 1, 8)) == date(2024, 1, 15)
    assert next_occurrence(weekly, date(2023, 12, 1)) == date(2024, 1, 1)

    monthly = _schedule(Frequency.monthly, date(2024, 1, 31))
    assert next_occurrence(monthly, date(2024, 2, 10)) == date(2024, 2, 29)
    assert next_occurrence(monthly, date(2024, 2, 29)) == date(2024, 3, 31)


def test_next_occurrence_twice_monthly_rolls_into_next_month():
    schedule = _schedule(Frequency.twice_monthly, date(2024, 1, 1), first=1, second=15)
    assert next_occurrence(schedule, date(2024, 1, 10)) == date(2024, 1, 15)
    assert next_occurrence(schedule, date(2024, 1, 20)) == date(2024, 2, 1)


def test_occurrences_for_flags_completed_dates():
    txn = Transaction(
        id=1,
        title="Rent",
        amount=1000,
        type=TransactionType.expense,
        status=TransactionStatus.pending,
        date=date(2024, 1, 1),
        schedule=_schedule(Frequency.monthly, date(2024, 1, 1)),
    )
    txn.mark_occurrence_completed(date(2024, 1, 1))
    occurrences = occurrences_for(txn, date(2024, 1, 1), date(2024, 2, 29))
    assert [(o.due_date, o.is_completed) for o in occurrences] == [
        (date(2024, 1, 1), True),
        (date(2024, 2, 1), False),
    ]


def test_occurrences_in_month_exact_and_approximate():
    weekly = _schedule(Frequency.weekly, date(2024, 1, 1))
    month = date(2024, 1, 1)
    assert occurrences_in_month(weekly, month) == 5
    assert occurrences_in_month(weekly, month, completed=[date(2024, 1, 8)]) == 4
    assert occurrences_in_month(weekly, month, method=ProjectionMethod.approximate) == 4

    annual = _schedule(Frequency.annual, date(2023, 3, 10))
    assert occurrences_in_month(annual, date(2024, 3, 1), method=ProjectionMethod.approximate) == 1
    assert occurrences_in_month(annual, date(2024, 4, 1), method=ProjectionMethod.approximate) == 0

    once = _schedule(Frequency.once, date(2024, 6, 1))
    assert occurrences_in_month(once, date(2024, 6, 1), method=ProjectionMethod.approximate) == 1
    assert occurrences_in_month(once, date(2025, 6, 1), method=ProjectionMethod.approximate) == 0
