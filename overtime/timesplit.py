"""Classification of shift minutes into the 150% and 200% premium tiers."""
from __future__ import annotations

from .errors import ValidationError
from .models import Split
from .validation import is_sunday, minutes_of_day, validate_date, validate_time

NIGHT_START = 21 * 60
NIGHT_END = 7 * 60
END_OF_DAY = 24 * 60

# The night premium window wraps midnight, so it is kept as two half-open pieces.
NIGHT_WINDOWS = ((NIGHT_START, END_OF_DAY), (0, NIGHT_END))


def _overlap(start: int, end: int, window_start: int, window_end: int) -> int:
    return max(0, min(end, window_end) - max(start, window_start))


def split(
    date: str,
    start_time: str,
    end_time: str,
    is_public_holiday: bool = False,
    is_designated_day_off: bool = False,
) -> Split:
    """Split a same-day shift into premium minutes.

    Public holidays, designated days off and Sundays are paid entirely at
    200%. On other days only the minutes inside the night window
    (21:00-07:00) are 200% and the remainder is 150%.

    Shifts must end strictly after they start on the same calendar day;
    shifts crossing midnight are rejected.
    """

    validate_date(date)
    validate_time(start_time, field="start_time")
    validate_time(end_time, field="end_time")

    start = minutes_of_day(start_time)
    end = minutes_of_day(end_time)
    if end <= start:
        raise ValidationError("end_time must be after start_time on the same day")

    total = end - start
    if is_public_holiday or is_designated_day_off or is_sunday(date):
        return Split(minutes_150=0, minutes_200=total, total_minutes=total)

    night = sum(_overlap(start, end, lower, upper) for lower, upper in NIGHT_WINDOWS)
    minutes_200 = min(total, night)
    return Split(minutes_150=total - minutes_200, minutes_200=minutes_200, total_minutes=total)


__all__ = ["NIGHT_END", "NIGHT_START", "NIGHT_WINDOWS", "split"]
