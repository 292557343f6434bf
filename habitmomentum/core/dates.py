"""
Calendar helpers.

All scoring happens on UTC calendar days stored as ``YYYY-MM-DD`` strings.
Weeks run Monday through Sunday.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Tuple, Union

from habitmomentum.core.errors import ValidationError

DayLike = Union[date, str]

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def parse_day(value: DayLike) -> date:
    """Return a ``date`` for a date object or a strict ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return aware.astimezone(timezone.utc).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DAY_RE.match(value):
        raise ValidationError(f"invalid date {value!r}: expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"invalid date {value!r}: expected YYYY-MM-DD")


def format_day(value: DayLike) -> str:
    return parse_day(value).isoformat()


def week_bounds(day: DayLike) -> Tuple[date, date]:
    """Monday and Sunday of the week containing ``day``."""
    d = parse_day(day)
    monday = d - timedelta(days=d.weekday())
    return monday, monday + timedelta(days=6)


def previous_week_bounds(day: DayLike) -> Tuple[date, date]:
    monday, _ = week_bounds(day)
    return week_bounds(monday - timedelta(days=1))


def last_completed_week(today: DayLike) -> Tuple[date, date]:
    """The most recent full week that ended before ``today``'s week."""
    return previous_week_bounds(today)


def iter_days(start: DayLike, end: DayLike) -> Iterator[date]:
    """Inclusive day range."""
    current = parse_day(start)
    stop = parse_day(end)
    while current <= stop:
        yield current
        current += timedelta(days=1)
