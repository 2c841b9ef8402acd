"""
Calendar date-key helpers.

Day buckets are keyed by fixed-width ``YYYY-MM-DD`` strings with no timezone
component, so lexical order equals calendar order.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Union

DateLike = Union[str, date, datetime]

DATE_KEY_LENGTH = 10


class InvalidDateKeyError(ValueError):
    """A value could not be read as a YYYY-MM-DD calendar date."""
    pass


def parse_date_key(value: DateLike) -> date:
    """
    Read a date key (or date/datetime) as a calendar date.

    Raises:
        InvalidDateKeyError: If a string is not a real YYYY-MM-DD date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateKeyError(f"Unsupported date value: {value!r}")

    text = value.strip()
    if len(text) != DATE_KEY_LENGTH or text[4] != "-" or text[7] != "-":
        raise InvalidDateKeyError(f"Malformed date key: {value!r} (expected YYYY-MM-DD)")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise InvalidDateKeyError(f"Not a calendar date: {value!r}")


def to_date_key(value: DateLike) -> str:
    """Normalize a date-like value to its YYYY-MM-DD key."""
    return parse_date_key(value).isoformat()


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def days_between(start: date, end: date) -> list[date]:
    """Every date from start to end inclusive."""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def sunday_based_weekday(day: date) -> int:
    """Weekday number with Sunday = 0 ... Saturday = 6."""
    return (day.weekday() + 1) % 7


def key_in_month(date_key: str, year: int, month: int) -> bool:
    """Whether a date key falls in the given year and month."""
    return date_key[:7] == f"{year:04d}-{month:02d}"


def key_in_year(date_key: str, year: int) -> bool:
    """Whether a date key falls in the given year."""
    return date_key[:4] == f"{year:04d}"
