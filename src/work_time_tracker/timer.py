"""Work day state machine.

Pure logic: every operation takes the current instant as ``now`` (epoch
milliseconds) and nothing here performs I/O. Validation failures raise
``TimerValidationError`` before any state is touched.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from work_time_tracker.errors import TimerValidationError
from work_time_tracker.models import (
    IDLE_SNAPSHOT,
    LOG_PUNCH_IN,
    LOG_PUNCH_OUT,
    LOG_START,
    MAX_LOG_ENTRIES,
    STATUS_BREAK,
    STATUS_WORKING,
    TimerLogEntry,
    TimerProjection,
    TimerSnapshot,
)
from work_time_tracker.recalibrate import BreakSplit, apply_break, validate_break_window
from work_time_tracker.time_utils import MS_PER_HOUR, MS_PER_MINUTE, from_ms, parse_entry_time, to_ms


@dataclass(frozen=True)
class PunchOutcome:
    previous_status: str
    snapshot: TimerSnapshot
    effective_ms: int
    segment_ms: int


def resolve_entry_time(entry_time: str, now: int) -> int:
    """Resolve ``HH:mm`` against the day of ``now``.

    Picking the current minute means "right now", so the precise instant is
    kept instead of truncating to the start of the minute.
    """
    parsed = parse_entry_time(entry_time)
    current = from_ms(now)
    if parsed.hour == current.hour and parsed.minute == current.minute:
        return now
    return to_ms(current.replace(hour=parsed.hour, minute=parsed.minute, second=0, microsecond=0))


def push_log(logs: tuple[TimerLogEntry, ...], entry: TimerLogEntry) -> tuple[TimerLogEntry, ...]:
    return ((entry,) + logs)[:MAX_LOG_ENTRIES]


def project(snapshot: TimerSnapshot, now: int) -> TimerProjection:
    live = now - snapshot.last_status_change if snapshot.last_status_change is not None else 0
    total_work = snapshot.accumulated_work_ms + (live if snapshot.status == STATUS_WORKING else 0)
    total_break = snapshot.accumulated_break_ms + (live if snapshot.status == STATUS_BREAK else 0)
    remaining_work = snapshot.target_work_ms - total_work
    return TimerProjection(
        total_work_ms=total_work,
        total_break_ms=total_break,
        remaining_work_ms=remaining_work,
        remaining_break_ms=snapshot.target_break_ms - total_break,
        is_overtime=snapshot.target_work_ms > 0 and remaining_work <= 0,
    )


class WorkTimer:
    def __init__(self, snapshot: TimerSnapshot | None = None) -> None:
        self._snapshot = snapshot or IDLE_SNAPSHOT

    @property
    def snapshot(self) -> TimerSnapshot:
        return self._snapshot

    @property
    def is_running(self) -> bool:
        return self._snapshot.status in {STATUS_WORKING, STATUS_BREAK}

    def restore(self, snapshot: TimerSnapshot) -> None:
        self._snapshot = snapshot

    def start_day(
        self,
        work_hours: float,
        work_minutes: float,
        break_minutes: float,
        entry_time: str,
        now: int,
    ) -> TimerSnapshot:
        if self._snapshot.is_active:
            raise TimerValidationError("A work day is already in progress.")
        if work_hours < 0 or work_minutes < 0 or break_minutes < 0:
            raise TimerValidationError("Targets cannot be negative.")
        start = resolve_entry_time(entry_time, now)
        if start > now:
            raise TimerValidationError("Start time cannot be in the future.")

        self._snapshot = TimerSnapshot(
            is_active=True,
            start_time=start,
            target_work_ms=round((work_hours + work_minutes / 60) * MS_PER_HOUR),
            target_break_ms=round(break_minutes * MS_PER_MINUTE),
            accumulated_work_ms=0,
            accumulated_break_ms=0,
            last_status_change=start,
            status=STATUS_WORKING,
            logs=(TimerLogEntry(type=LOG_START, time=start),),
            has_fired_ot_notification=False,
        )
        return self._snapshot

    def punch_toggle(self, now: int, manual_time_ms: int | None = None) -> PunchOutcome:
        effective = manual_time_ms if manual_time_ms is not None else now
        current = self._snapshot
        if effective > now:
            raise TimerValidationError("Cannot punch in the future.")
        if current.last_status_change is not None and effective <= current.last_status_change:
            raise TimerValidationError("New punch time must be after the last action.")
        if current.status not in {STATUS_WORKING, STATUS_BREAK}:
            raise TimerValidationError("No active day.")

        segment = effective - (current.last_status_change if current.last_status_change is not None else effective)
        if current.status == STATUS_WORKING:
            updated = replace(
                current,
                accumulated_work_ms=current.accumulated_work_ms + segment,
                status=STATUS_BREAK,
                last_status_change=effective,
                logs=push_log(current.logs, TimerLogEntry(type=LOG_PUNCH_OUT, time=effective)),
            )
        else:
            updated = replace(
                current,
                accumulated_break_ms=current.accumulated_break_ms + segment,
                status=STATUS_WORKING,
                last_status_change=effective,
                logs=push_log(current.logs, TimerLogEntry(type=LOG_PUNCH_IN, time=effective)),
            )

        self._snapshot = updated
        return PunchOutcome(
            previous_status=current.status,
            snapshot=updated,
            effective_ms=effective,
            segment_ms=segment,
        )

    def add_historical_break(self, punch_out_ms: int, punch_in_ms: int, now: int) -> BreakSplit:
        validate_break_window(punch_out_ms, punch_in_ms, now)
        if not self.is_running:
            raise TimerValidationError("No active day.")
        self._snapshot, split = apply_break(self._snapshot, punch_out_ms, punch_in_ms)
        return split

    def reset(self) -> TimerSnapshot:
        self._snapshot = IDLE_SNAPSHOT
        return self._snapshot

    def projection(self, now: int) -> TimerProjection:
        return project(self._snapshot, now)

    def check_overtime(self, now: int) -> bool:
        """Arm the one-shot overtime guard; True only on the tick that arms it."""
        current = self._snapshot
        if current.status != STATUS_WORKING or current.target_work_ms <= 0:
            return False
        if current.has_fired_ot_notification:
            return False
        if project(current, now).total_work_ms < current.target_work_ms:
            return False
        self._snapshot = replace(current, has_fired_ot_notification=True)
        return True
