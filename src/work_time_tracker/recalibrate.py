"""Retroactive break insertion.

A user may declare after the fact that they were on a break between two
past instants. The break can overlap two places where work time lives:

* ``accumulated_work_ms`` - work already committed by closed segments;
* the live segment - ``now - last_status_change`` while working.

Live work is never stored, so the portion of the break that falls inside
the live segment is removed by moving ``last_status_change`` forward. The
rest is subtracted from the committed bucket. Either way the break bucket
grows by the full break duration.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from work_time_tracker.errors import TimerValidationError
from work_time_tracker.models import (
    LOG_PUNCH_IN,
    LOG_PUNCH_OUT,
    MAX_LOG_ENTRIES,
    STATUS_WORKING,
    TimerLogEntry,
    TimerSnapshot,
)


@dataclass(frozen=True)
class BreakSplit:
    break_ms: int
    live_ms: int
    committed_ms: int


def validate_break_window(punch_out_ms: int, punch_in_ms: int, now: int) -> None:
    if punch_out_ms >= punch_in_ms:
        raise TimerValidationError("Punch-In time must be after Punch-Out time")
    if punch_out_ms >= now:
        raise TimerValidationError("Punch-Out time cannot be in the future")
    if punch_in_ms > now:
        raise TimerValidationError("Punch-In time cannot be in the future")


def split_break(snapshot: TimerSnapshot, punch_out_ms: int, punch_in_ms: int) -> BreakSplit:
    break_ms = punch_in_ms - punch_out_ms
    last_change = snapshot.last_status_change
    if last_change is None:
        last_change = snapshot.start_time or 0

    if snapshot.status == STATUS_WORKING and punch_in_ms > last_change:
        live_ms = punch_in_ms - max(punch_out_ms, last_change)
        return BreakSplit(break_ms=break_ms, live_ms=live_ms, committed_ms=break_ms - live_ms)
    return BreakSplit(break_ms=break_ms, live_ms=0, committed_ms=break_ms)


def merge_logs(
    logs: tuple[TimerLogEntry, ...],
    *entries: TimerLogEntry,
) -> tuple[TimerLogEntry, ...]:
    ordered = sorted((*logs, *entries), key=lambda entry: entry.time, reverse=True)
    return tuple(ordered[:MAX_LOG_ENTRIES])


def apply_break(
    snapshot: TimerSnapshot,
    punch_out_ms: int,
    punch_in_ms: int,
) -> tuple[TimerSnapshot, BreakSplit]:
    split = split_break(snapshot, punch_out_ms, punch_in_ms)
    last_change = snapshot.last_status_change
    if split.live_ms and last_change is not None:
        last_change += split.live_ms

    updated = replace(
        snapshot,
        accumulated_work_ms=max(0, snapshot.accumulated_work_ms - split.committed_ms),
        accumulated_break_ms=snapshot.accumulated_break_ms + split.break_ms,
        last_status_change=last_change,
        logs=merge_logs(
            snapshot.logs,
            TimerLogEntry(type=LOG_PUNCH_OUT, time=punch_out_ms),
            TimerLogEntry(type=LOG_PUNCH_IN, time=punch_in_ms),
        ),
    )
    return updated, split
