from .base import BaseDatabase
from .notifications import NotificationMixin
from .timer_state import TimerStateMixin
from .work_logs import WorkLogMixin

__all__ = [
    "BaseDatabase",
    "NotificationMixin",
    "TimerStateMixin",
    "WorkLogMixin",
]
