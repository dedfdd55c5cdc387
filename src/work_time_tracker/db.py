from __future__ import annotations

from work_time_tracker.db_repo import BaseDatabase, NotificationMixin, TimerStateMixin, WorkLogMixin
from work_time_tracker.models import ManualSession, Notification, TimerSnapshot, WorkLogRow


class Database(BaseDatabase, WorkLogMixin, TimerStateMixin, NotificationMixin):
    pass


__all__ = ["Database", "ManualSession", "Notification", "TimerSnapshot", "WorkLogRow"]
