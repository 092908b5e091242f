from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def as_date(value: Union[date, datetime]) -> date:
    """Truncate to day granularity; due dates never carry a time of day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def clamped_date(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, days_in_month(year, month)))


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=days_in_month(d.year, d.month))


def add_months(base: date, months: int, *, desired_day: Optional[int] = None) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return clamped_date(year, month, desired_day or base.day)


def months_between(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def parse_month(value: Optional[str], *, today: Optional[date] = None) -> date:
    """Return the first day of a ``YYYY-MM`` month, defaulting to this month."""
    if not value:
        return month_start(today or local_today())
    try:
        parsed = datetime.strptime(value, "%Y-%m").date()
    except ValueError as exc:
        raise ValueError("Month must be formatted as YYYY-MM") from exc
    return parsed


def window(start: date, days: int) -> Period:
    return Period("window", start, start + timedelta(days=days - 1))
