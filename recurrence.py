from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from models import RecurrenceKind

MAX_OCCURRENCES = 365
DEFAULT_HORIZON = timedelta(days=365)


def local_now() -> datetime:
    """Current wall-clock time in the configured zone, as a naive datetime."""
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: Union[date, datetime], months: int) -> Union[date, datetime]:
    """Shift ``base`` by whole months, clamping to the last day of short months."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class Occurrence:
    start: datetime
    end: datetime


def _next_start(
    kind: RecurrenceKind, anchor: datetime, previous: datetime, index: int
) -> datetime:
    if kind == RecurrenceKind.daily:
        return previous + timedelta(days=1)
    if kind == RecurrenceKind.weekdays:
        candidate = previous + timedelta(days=1)
        while candidate.weekday() >= 5:
            candidate += timedelta(days=1)
        return candidate
    if kind == RecurrenceKind.weekly:
        return previous + timedelta(days=7)
    # Monthly and yearly steps are taken from the anchor so a clamped
    # month (31 -> 29 Feb) does not drag later occurrences to the 29th.
    if kind == RecurrenceKind.monthly:
        return add_months(anchor, index)
    return add_months(anchor, 12 * index)


def recurrence_end_instant(
    value: Optional[Union[date, datetime]]
) -> Optional[datetime]:
    """A bare date covers that whole day; a datetime is taken as the exact instant."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local_naive(value)
    return datetime.combine(value, time.max)


def recurrence_bound(
    start: datetime, recurrence_end: Optional[Union[date, datetime]]
) -> datetime:
    if recurrence_end is None:
        return start + DEFAULT_HORIZON
    return recurrence_end_instant(recurrence_end)


def expand_occurrences(
    start: datetime,
    end: datetime,
    kind: RecurrenceKind,
    recurrence_end: Optional[Union[date, datetime]] = None,
    *,
    limit: int = MAX_OCCURRENCES,
) -> list[Occurrence]:
    """Generate the concrete occurrences of a recurring event.

    The first occurrence is the template itself. Every occurrence keeps the
    template's duration. Generation stops once a start passes the recurrence
    end (inclusive through the whole end day when a date is given), or one
    year after the first start when no end is set, and never yields more
    than ``limit`` occurrences.
    """
    if end <= start:
        raise ValueError("End time must be after start time")

    duration = end - start
    final = recurrence_bound(start, recurrence_end)
    occurrences: list[Occurrence] = []
    current = start
    index = 0
    while current <= final and index < limit:
        occurrences.append(Occurrence(start=current, end=current + duration))
        index += 1
        current = _next_start(kind, start, current, index)
    return occurrences
