from __future__ import annotations

from work_time_tracker.time_utils import MS_PER_HOUR, MS_PER_MINUTE


def format_clock(ms: int) -> str:
    """Render ``ms`` as ``HH:MM:SS``; the sign is dropped."""
    total_seconds = abs(int(ms)) // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_short(ms: int) -> str:
    total_minutes = abs(int(ms)) // MS_PER_MINUTE
    return f"{total_minutes // 60}h {total_minutes % 60}m"


def format_hours(ms: float) -> str:
    return f"{ms / MS_PER_HOUR:.1f}h"


def format_compact(ms: int) -> str:
    if ms <= 0:
        return "0m"
    total_minutes = int(ms) // MS_PER_MINUTE
    hours, minutes = divmod(total_minutes, 60)
    if hours == 0:
        return f"{minutes}m"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}m"
