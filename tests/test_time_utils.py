from datetime import date, datetime, time

import pytest

from work_time_tracker.errors import TimerValidationError
from work_time_tracker.time_utils import (
    from_ms,
    parse_date_param,
    parse_entry_time,
    same_calendar_day,
    to_ms,
)


def test_ms_round_trip_local() -> None:
    dt = datetime(2026, 3, 2, 13, 45, 12)
    assert from_ms(to_ms(dt)) == dt


def test_parse_entry_time() -> None:
    assert parse_entry_time(" 07:05 ") == time(7, 5)
    for bad in ("", "7", "24:00", "ab:cd"):
        with pytest.raises(TimerValidationError):
            parse_entry_time(bad)


def test_same_calendar_day_across_midnight() -> None:
    assert same_calendar_day(datetime(2026, 3, 2, 0, 1), datetime(2026, 3, 2, 23, 59)) is True
    assert same_calendar_day(datetime(2026, 3, 2, 23, 59), datetime(2026, 3, 3, 0, 1)) is False


def test_parse_date_param() -> None:
    assert parse_date_param("2026-03-02") == date(2026, 3, 2)
    assert parse_date_param("2026-03-02T10:00:00Z") == date(2026, 3, 2)
    assert parse_date_param("yesterday") is None
    assert parse_date_param(None) is None
