from __future__ import annotations

import pytest

from overtime.errors import ValidationError
from overtime.timesplit import split

TUESDAY = "2024-01-02"
SUNDAY = "2024-01-07"


def _hm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def test_evening_shift_on_ordinary_tuesday_is_all_150() -> None:
    result = split(TUESDAY, "18:00", "20:00")
    assert (result.minutes_150, result.minutes_200, result.total_minutes) == (120, 0, 120)


def test_shift_crossing_night_start_is_split() -> None:
    result = split(TUESDAY, "20:00", "22:00")
    assert (result.minutes_150, result.minutes_200) == (60, 60)


def test_early_morning_overlap_with_night_window() -> None:
    result = split(TUESDAY, "05:00", "08:00")
    assert (result.minutes_150, result.minutes_200) == (60, 120)


def test_whole_day_counts_both_night_pieces() -> None:
    result = split(TUESDAY, "00:00", "23:59")
    assert result.total_minutes == 1439
    assert result.minutes_200 == 7 * 60 + 179
    assert result.minutes_150 == 14 * 60


def test_designated_day_off_is_all_200() -> None:
    result = split(TUESDAY, "06:00", "10:00", is_designated_day_off=True)
    assert (result.minutes_150, result.minutes_200) == (0, 240)


def test_public_holiday_is_all_200() -> None:
    result = split(TUESDAY, "09:00", "12:30", is_public_holiday=True)
    assert (result.minutes_150, result.minutes_200) == (0, 210)


@pytest.mark.parametrize("start,end", [("08:00", "09:00"), ("10:15", "18:45"), ("00:30", "23:30")])
def test_sunday_is_all_200_regardless_of_time(start: str, end: str) -> None:
    result = split(SUNDAY, start, end)
    assert result.minutes_150 == 0
    assert result.minutes_200 == result.total_minutes


@pytest.mark.parametrize("start,end", [("07:00", "21:00"), ("07:00", "07:01"), ("12:00", "20:59"), ("09:30", "17:00")])
def test_daytime_shift_has_no_200_minutes(start: str, end: str) -> None:
    result = split(TUESDAY, start, end)
    assert result.minutes_200 == 0
    assert result.minutes_150 == result.total_minutes


def test_cross_midnight_shift_is_rejected() -> None:
    with pytest.raises(ValidationError):
        split(TUESDAY, "23:00", "01:00")


def test_zero_length_shift_is_rejected() -> None:
    with pytest.raises(ValidationError):
        split(TUESDAY, "10:00", "10:00")


@pytest.mark.parametrize(
    "date", ["2024/01/02", "2024-1-2", "2024-02-30", "", "not-a-date", "2024-01-02\n", "\u0662\u0660\u0662\u0664-01-02"]
)
def test_invalid_dates_are_rejected(date: str) -> None:
    with pytest.raises(ValidationError):
        split(date, "18:00", "20:00")


@pytest.mark.parametrize(
    "start,end",
    [
        ("24:00", "23:00"),
        ("7:00", "09:00"),
        ("10:60", "11:00"),
        ("10:00", "1100"),
        ("18:00\n", "20:00"),
        ("18:00", " 20:00"),
        ("\u0661\u0668:\u0660\u0660", "20:00"),
    ],
)
def test_invalid_times_are_rejected(start: str, end: str) -> None:
    with pytest.raises(ValidationError):
        split(TUESDAY, start, end)


def test_split_minutes_always_sum_to_shift_length() -> None:
    for start in range(0, 24 * 60, 37):
        for end in range(start + 1, 24 * 60, 53):
            result = split(TUESDAY, _hm(start), _hm(end))
            assert result.minutes_150 + result.minutes_200 == result.total_minutes == end - start
            assert result.minutes_150 >= 0 and result.minutes_200 >= 0
