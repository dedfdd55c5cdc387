from __future__ import annotations

from datetime import date, datetime, time

from work_time_tracker.errors import TimerValidationError

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60_000
MS_PER_HOUR = 3_600_000


def now_ms() -> int:
    return to_ms(datetime.now())


def to_ms(dt: datetime) -> int:
    return round(dt.timestamp() * MS_PER_SECOND)


def from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / MS_PER_SECOND)


def parse_hhmm(value: str) -> time:
    hour_str, minute_str = value.split(":", maxsplit=1)
    hour = int(hour_str)
    minute = int(minute_str)
    return time(hour=hour, minute=minute)


def parse_entry_time(value: str) -> time:
    try:
        return parse_hhmm(value.strip())
    except (AttributeError, ValueError) as exc:
        raise TimerValidationError("Entry time must use HH:mm format.") from exc


def same_calendar_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()


def parse_date_param(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None
