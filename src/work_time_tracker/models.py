from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

STATUS_IDLE = "idle"
STATUS_WORKING = "working"
STATUS_BREAK = "break"
STATUS_COMPLETED = "completed"
TIMER_STATUSES = frozenset({STATUS_IDLE, STATUS_WORKING, STATUS_BREAK, STATUS_COMPLETED})

ROW_ACTIVE = "active"
ROW_COMPLETED = "completed"
ROW_STATUSES = frozenset({ROW_ACTIVE, ROW_COMPLETED})

LOG_START = "Start"
LOG_PUNCH_OUT = "Punch Out (Break)"
LOG_PUNCH_IN = "Punch In (Work)"
MAX_LOG_ENTRIES = 50

NOTIFICATION_ONE_TIME = "ONE_TIME"
NOTIFICATION_ALL_TIME = "ALL_TIME"
NOTIFICATION_TYPES = frozenset({NOTIFICATION_ONE_TIME, NOTIFICATION_ALL_TIME})


@dataclass(frozen=True)
class TimerLogEntry:
    type: str
    time: int


@dataclass(frozen=True)
class TimerSnapshot:
    is_active: bool = False
    start_time: int | None = None
    target_work_ms: int = 0
    target_break_ms: int = 0
    accumulated_work_ms: int = 0
    accumulated_break_ms: int = 0
    last_status_change: int | None = None
    status: str = STATUS_IDLE
    logs: tuple[TimerLogEntry, ...] = field(default_factory=tuple)
    has_fired_ot_notification: bool = False


IDLE_SNAPSHOT = TimerSnapshot()


@dataclass(frozen=True)
class TimerProjection:
    total_work_ms: int
    total_break_ms: int
    remaining_work_ms: int
    remaining_break_ms: int
    is_overtime: bool


@dataclass(frozen=True)
class WorkLogRow:
    id: int
    user_id: str
    date: date
    punch_in: datetime
    punch_out: datetime | None
    total_hours: float | None
    status: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ManualSession:
    punch_in: datetime
    punch_out: datetime


@dataclass(frozen=True)
class CalendarInterval:
    kind: str
    start: datetime
    end: datetime
    duration_ms: int
    is_active: bool
    row_ids: tuple[int, ...]
    title: str

    @property
    def id(self) -> str:
        return f"{self.kind}-" + "-".join(str(row_id) for row_id in self.row_ids)


@dataclass(frozen=True)
class DaySummary:
    day: date
    total_hours: float
    sessions: int
    break_minutes: int


@dataclass(frozen=True)
class PeriodSummary:
    days: list[DaySummary]
    total_hours: float
    days_worked: int
    avg_hours_per_day: float


@dataclass(frozen=True)
class Notification:
    id: int
    user_id: str
    message: str
    type: str
    is_read: bool
    created_at: datetime
