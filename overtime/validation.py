"""Parsing helpers for the textual date, time and month formats."""
from __future__ import annotations

import re
from datetime import date as _date

from .errors import ValidationError

_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_TIME_RE = re.compile(r"[0-9]{2}:[0-9]{2}")
_MONTH_RE = re.compile(r"[0-9]{4}-[0-9]{2}")


def validate_date(value: object, *, field: str = "date") -> str:
    """Return ``value`` if it is a real calendar date in ``YYYY-MM-DD`` form."""

    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")
    try:
        _date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} is not a valid calendar date: {value}") from exc
    return value


def validate_time(value: object, *, field: str = "time") -> str:
    """Return ``value`` if it is a 24-hour ``HH:MM`` time of day."""

    if not isinstance(value, str) or not _TIME_RE.fullmatch(value):
        raise ValidationError(f"{field} must be a time in HH:MM format")
    hours, minutes = (int(part) for part in value.split(":"))
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValidationError(f"{field} is not a valid 24-hour time: {value}")
    return value


def validate_month(value: object, *, field: str = "month") -> str:
    if not isinstance(value, str) or not _MONTH_RE.fullmatch(value):
        raise ValidationError(f"{field} must be a month in YYYY-MM format")
    month = int(value[5:7])
    if not 1 <= month <= 12:
        raise ValidationError(f"{field} is not a valid month: {value}")
    return value


def validate_date_range(start_date: object, end_date: object) -> tuple[str, str]:
    start = validate_date(start_date, field="start_date")
    end = validate_date(end_date, field="end_date")
    if end < start:
        raise ValidationError("end_date must be on or after start_date")
    return start, end


def minutes_of_day(value: str) -> int:
    hours, minutes = (int(part) for part in validate_time(value).split(":"))
    return hours * 60 + minutes


def month_bounds(month: str) -> tuple[str, str]:
    """Return the inclusive text range used to select a month's entries.

    Day 31 is used for every month; lexical comparison keeps short months
    correct because no real date exceeds it.
    """

    validated = validate_month(month)
    return f"{validated}-01", f"{validated}-31"


def is_sunday(value: str) -> bool:
    return _date.fromisoformat(validate_date(value)).weekday() == 6


__all__ = [
    "is_sunday",
    "minutes_of_day",
    "month_bounds",
    "validate_date",
    "validate_date_range",
    "validate_month",
    "validate_time",
]
