"""Occurrence engine for recurring schedules.

Everything in this module is a pure function of its arguments: schedules and
transactions are only read, never mutated, and no state is kept between calls.
Degenerate input (malformed schedules, impossible calendar days, inverted
windows) degrades to empty results or clamped dates instead of raising.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

from models import Frequency, ProjectionMethod, TransactionStatus
from money import safe_amount
from periods import add_months, as_date, clamped_date, month_end, month_start, months_between

DateLike = Union[date, datetime]

STRIDE_DAYS = {
    Frequency.weekly: 7,
    Frequency.biweekly: 14,
}

APPROXIMATE_MONTHLY_MULTIPLIER = {
    Frequency.weekly: 4,
    Frequency.biweekly: 2,
    Frequency.monthly: 1,
    Frequency.twice_monthly: 2,
}


@dataclass(frozen=True)
class Occurrence:
    transaction: Any
    due_date: date
    amount: Decimal
    is_completed: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", safe_amount(self.amount))


def _frequency(schedule) -> Optional[Frequency]:
    raw = getattr(schedule, "frequency", None)
    if raw is None:
        return None
    try:
        return Frequency(raw)
    except ValueError:
        return None


def _monthly_days(schedule) -> Optional[tuple[int, int]]:
    first = getattr(schedule, "first_monthly_day", None)
    second = getattr(schedule, "second_monthly_day", None)
    if first is None or second is None:
        return None
    if not (1 <= first <= 31 and 1 <= second <= 31):
        return None
    return (first, second) if first <= second else (second, first)


def is_well_formed(schedule) -> bool:
    if schedule is None:
        return False
    frequency = _frequency(schedule)
    if frequency is None or getattr(schedule, "anchor_date", None) is None:
        return False
    if frequency == Frequency.twice_monthly:
        return _monthly_days(schedule) is not None
    return True


def _stride_dates(anchor: date, stride: int, start: date, end: date) -> list[date]:
    if anchor >= start:
        current = anchor
    else:
        periods = -(-(start - anchor).days // stride)
        current = anchor + timedelta(days=periods * stride)
    result = []
    while current <= end:
        result.append(current)
        current += timedelta(days=stride)
    return result


def _month_step_dates(anchor: date, step: int, start: date, end: date) -> list[date]:
    # Each candidate is derived from the anchor so a clamped month never
    # shortens the day used for later months.
    k = max(0, months_between(anchor, start) // step)
    result = []
    while True:
        current = add_months(anchor, k * step, desired_day=anchor.day)
        if current > end:
            break
        if current >= start:
            result.append(current)
        k += 1
    return result


def _twice_monthly_dates(days: tuple[int, int], start: date, end: date) -> list[date]:
    result: set[date] = set()
    cursor = month_start(start)
    # Always look at least three months ahead of the window start.
    last_month = max(month_start(end), add_months(month_start(start), 2))
    while cursor <= last_month:
        for day in days:
            candidate = clamped_date(cursor.year, cursor.month, day)
            if start <= candidate <= end:
                result.add(candidate)
        cursor = add_months(cursor, 1)
    return sorted(result)


def generate_occurrences(
    schedule, window_start: DateLike, window_end: DateLike
) -> list[date]:
    """Due dates of ``schedule`` inside ``[window_start, window_end]``.

    The result is ascending and free of duplicates. Both bounds are inclusive
    and compared at day granularity.
    """
    if not is_well_formed(schedule):
        return []
    start = as_date(window_start)
    end = as_date(window_end)
    if end < start:
        return []

    frequency = _frequency(schedule)
    anchor = as_date(schedule.anchor_date)

    if frequency == Frequency.once:
        return [anchor] if start <= anchor <= end else []
    if frequency in STRIDE_DAYS:
        return _stride_dates(anchor, STRIDE_DAYS[frequency], start, end)
    if frequency == Frequency.monthly:
        return _month_step_dates(anchor, 1, start, end)
    if frequency == Frequency.annual:
        return _month_step_dates(anchor, 12, start, end)
    if frequency == Frequency.twice_monthly:
        return _twice_monthly_dates(_monthly_days(schedule), start, end)
    return []


def next_occurrence(schedule, after: DateLike) -> Optional[date]:
    """First due date strictly after ``after``, or None when there is none."""
    if not is_well_formed(schedule):
        return None
    ref = as_date(after)
    frequency = _frequency(schedule)
    anchor = as_date(schedule.anchor_date)

    if frequency == Frequency.once:
        return anchor if anchor > ref else None

    if frequency == Frequency.twice_monthly:
        first, second = _monthly_days(schedule)
        this_month = month_start(ref)
        next_month = add_months(this_month, 1)
        candidates = [
            clamped_date(this_month.year, this_month.month, first),
            clamped_date(this_month.year, this_month.month, second),
            clamped_date(next_month.year, next_month.month, first),
            clamped_date(next_month.year, next_month.month, second),
        ]
        for candidate in candidates:
            if candidate > ref:
                return candidate
        return None

    if anchor > ref:
        return anchor
    if frequency in STRIDE_DAYS:
        stride = STRIDE_DAYS[frequency]
        periods = (ref - anchor).days // stride + 1
        return anchor + timedelta(days=periods * stride)
    step = 12 if frequency == Frequency.annual else 1
    k = months_between(anchor, ref) // step
    while True:
        candidate = add_months(anchor, k * step, desired_day=anchor.day)
        if candidate > ref:
            return candidate
        k += 1


def occurrences_for(
    transaction, window_start: DateLike, window_end: DateLike
) -> list[Occurrence]:
    schedule = getattr(transaction, "schedule", None)
    if schedule is None:
        return []
    completed = transaction.completed_occurrences
    return [
        Occurrence(
            transaction=transaction,
            due_date=due,
            amount=transaction.amount,
            is_completed=due in completed,
        )
        for due in generate_occurrences(schedule, window_start, window_end)
    ]


def is_scheduled_template(transaction) -> bool:
    return (
        transaction.status == TransactionStatus.pending
        and getattr(transaction, "schedule", None) is not None
    )


def scheduled_templates(transactions: Iterable) -> list:
    return [txn for txn in transactions if is_scheduled_template(txn)]


def occurrences_in_month(
    schedule,
    month: date,
    *,
    method: ProjectionMethod = ProjectionMethod.exact,
    completed: Iterable[date] = (),
) -> int:
    """How many times ``schedule`` falls due in the month containing ``month``.

    ``exact`` runs the generator over the month and ignores dates already
    completed. ``approximate`` uses fixed per-frequency multipliers for a quick
    estimate that ignores the calendar.
    """
    if not is_well_formed(schedule):
        return 0
    if method == ProjectionMethod.exact:
        done = set(completed)
        dates = generate_occurrences(schedule, month_start(month), month_end(month))
        return sum(1 for d in dates if d not in done)

    frequency = _frequency(schedule)
    if frequency in APPROXIMATE_MONTHLY_MULTIPLIER:
        return APPROXIMATE_MONTHLY_MULTIPLIER[frequency]
    anchor = as_date(schedule.anchor_date)
    if frequency == Frequency.annual:
        return 1 if anchor.month == month.month else 0
    # once
    return 1 if (anchor.year, anchor.month) == (month.year, month.month) else 0
