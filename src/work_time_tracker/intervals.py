from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import Iterable

from work_time_tracker.models import (
    ROW_ACTIVE,
    ROW_COMPLETED,
    CalendarInterval,
    DaySummary,
    PeriodSummary,
    WorkLogRow,
)
from work_time_tracker.time_utils import MS_PER_HOUR, MS_PER_MINUTE, same_calendar_day

KIND_WORK = "work"
KIND_BREAK = "break"


def _prefer(existing: WorkLogRow, candidate: WorkLogRow) -> WorkLogRow:
    if existing.status == ROW_ACTIVE and candidate.status == ROW_COMPLETED:
        return candidate
    if existing.status == candidate.status and candidate.updated_at > existing.updated_at:
        return candidate
    return existing


def dedupe_rows(rows: Iterable[WorkLogRow]) -> list[WorkLogRow]:
    """Collapse rows sharing a punch-in, which come from client retries."""
    unique: dict[datetime, WorkLogRow] = {}
    for row in rows:
        existing = unique.get(row.punch_in)
        unique[row.punch_in] = row if existing is None else _prefer(existing, row)
    return sorted(unique.values(), key=lambda r: r.punch_in)


def work_duration_ms(row: WorkLogRow, now: datetime) -> int:
    if row.total_hours is not None:
        return round(row.total_hours * MS_PER_HOUR)
    return round((now - row.punch_in).total_seconds() * 1000)


def _work_interval(row: WorkLogRow, now: datetime) -> CalendarInterval:
    is_active = row.status == ROW_ACTIVE
    duration = work_duration_ms(row, now)
    title = f"Work: {duration / MS_PER_HOUR:.1f}h"
    if is_active:
        title += " (active)"
    return CalendarInterval(
        kind=KIND_WORK,
        start=row.punch_in,
        end=row.punch_out or now,
        duration_ms=duration,
        is_active=is_active,
        row_ids=(row.id,),
        title=title,
    )


def _break_interval(previous: WorkLogRow, following: WorkLogRow) -> CalendarInterval | None:
    if previous.punch_out is None:
        return None
    if not same_calendar_day(previous.punch_out, following.punch_in):
        return None
    if following.punch_in <= previous.punch_out:
        return None
    gap_ms = round((following.punch_in - previous.punch_out).total_seconds() * 1000)
    minutes = gap_ms // MS_PER_MINUTE
    if minutes <= 0:
        return None
    return CalendarInterval(
        kind=KIND_BREAK,
        start=previous.punch_out,
        end=following.punch_in,
        duration_ms=minutes * MS_PER_MINUTE,
        is_active=False,
        row_ids=(previous.id, following.id),
        title=f"Break: {minutes // 60}h {minutes % 60}m",
    )


def derive_intervals(rows: Iterable[WorkLogRow], now: datetime) -> list[CalendarInterval]:
    ordered = dedupe_rows(rows)
    intervals: list[CalendarInterval] = []
    for index, row in enumerate(ordered):
        intervals.append(_work_interval(row, now))
        if index + 1 < len(ordered):
            gap = _break_interval(row, ordered[index + 1])
            if gap is not None:
                intervals.append(gap)
    return intervals


def summarize(intervals: Iterable[CalendarInterval]) -> PeriodSummary:
    hours: dict[date, float] = defaultdict(float)
    sessions: dict[date, int] = defaultdict(int)
    breaks: dict[date, int] = defaultdict(int)
    for interval in intervals:
        day = interval.start.date()
        if interval.kind == KIND_WORK:
            hours[day] += interval.duration_ms / MS_PER_HOUR
            sessions[day] += 1
        else:
            breaks[day] += interval.duration_ms // MS_PER_MINUTE

    days = [
        DaySummary(
            day=day,
            total_hours=round(hours[day], 4),
            sessions=sessions[day],
            break_minutes=breaks[day],
        )
        for day in sorted(set(hours) | set(breaks))
    ]
    total = round(sum(hours.values()), 4)
    worked = len(sessions)
    return PeriodSummary(
        days=days,
        total_hours=total,
        days_worked=worked,
        avg_hours_per_day=round(total / worked, 4) if worked else 0.0,
    )
