from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from typing import Any

from work_time_tracker.models import (
    STATUS_IDLE,
    TIMER_STATUSES,
    Notification,
    TimerLogEntry,
    TimerSnapshot,
    WorkLogRow,
)


def _row_to_work_log(row: sqlite3.Row) -> WorkLogRow:
    return WorkLogRow(
        id=row["id"],
        user_id=row["user_id"],
        date=date.fromisoformat(row["date"]),
        punch_in=datetime.fromisoformat(row["punch_in"]),
        punch_out=datetime.fromisoformat(row["punch_out"]) if row["punch_out"] else None,
        total_hours=float(row["total_hours"]) if row["total_hours"] is not None else None,
        status=row["status"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_snapshot(row: sqlite3.Row) -> TimerSnapshot:
    return TimerSnapshot(
        is_active=bool(row["is_active"]),
        start_time=row["start_time"],
        target_work_ms=int(row["target_work_ms"]),
        target_break_ms=int(row["target_break_ms"]),
        accumulated_work_ms=int(row["accumulated_work_ms"]),
        accumulated_break_ms=int(row["accumulated_break_ms"]),
        last_status_change=row["last_status_change"],
        status=row["status"],
        logs=_logs_from_payload(json.loads(row["logs_json"] or "[]")),
        has_fired_ot_notification=bool(row["has_fired_ot_notification"]),
    )


def _row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        message=row["message"],
        type=row["type"],
        is_read=bool(row["is_read"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _logs_to_payload(logs: tuple[TimerLogEntry, ...]) -> list[dict[str, Any]]:
    return [{"type": entry.type, "time": entry.time} for entry in logs]


def _logs_from_payload(raw: Any) -> tuple[TimerLogEntry, ...]:
    if not isinstance(raw, list):
        return ()
    entries: list[TimerLogEntry] = []
    for item in raw:
        if not isinstance(item, dict) or "type" not in item or item.get("time") is None:
            continue
        entries.append(TimerLogEntry(type=str(item["type"]), time=int(item["time"])))
    return tuple(entries)


def _optional_ms(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def snapshot_to_payload(snapshot: TimerSnapshot) -> dict[str, Any]:
    return {
        "isActive": snapshot.is_active,
        "startTime": snapshot.start_time,
        "targetWorkMs": snapshot.target_work_ms,
        "targetBreakMs": snapshot.target_break_ms,
        "accumulatedWorkMs": snapshot.accumulated_work_ms,
        "accumulatedBreakMs": snapshot.accumulated_break_ms,
        "lastStatusChange": snapshot.last_status_change,
        "status": snapshot.status,
        "logs": _logs_to_payload(snapshot.logs),
        "hasFiredOtNotification": snapshot.has_fired_ot_notification,
    }


def snapshot_from_payload(payload: dict[str, Any]) -> TimerSnapshot:
    status = payload.get("status") or STATUS_IDLE
    if status not in TIMER_STATUSES:
        raise ValueError(f"Unknown timer status: {status}")
    return TimerSnapshot(
        is_active=bool(payload.get("isActive") or False),
        start_time=_optional_ms(payload.get("startTime")),
        target_work_ms=int(payload.get("targetWorkMs") or 0),
        target_break_ms=int(payload.get("targetBreakMs") or 0),
        accumulated_work_ms=int(payload.get("accumulatedWorkMs") or 0),
        accumulated_break_ms=int(payload.get("accumulatedBreakMs") or 0),
        last_status_change=_optional_ms(payload.get("lastStatusChange")),
        status=status,
        logs=_logs_from_payload(payload.get("logs")),
        has_fired_ot_notification=bool(payload.get("hasFiredOtNotification") or False),
    )


def work_log_to_payload(row: WorkLogRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "userId": row.user_id,
        "date": row.date.isoformat(),
        "punchIn": row.punch_in.isoformat(),
        "punchOut": row.punch_out.isoformat() if row.punch_out else None,
        "totalHours": row.total_hours,
        "status": row.status,
        "createdAt": row.created_at.isoformat(),
        "updatedAt": row.updated_at.isoformat(),
    }


def work_log_from_payload(payload: dict[str, Any]) -> WorkLogRow:
    return WorkLogRow(
        id=int(payload["id"]),
        user_id=str(payload["userId"]),
        date=date.fromisoformat(payload["date"]),
        punch_in=datetime.fromisoformat(payload["punchIn"]),
        punch_out=datetime.fromisoformat(payload["punchOut"]) if payload.get("punchOut") else None,
        total_hours=float(payload["totalHours"]) if payload.get("totalHours") is not None else None,
        status=str(payload["status"]),
        created_at=datetime.fromisoformat(payload["createdAt"]),
        updated_at=datetime.fromisoformat(payload["updatedAt"]),
    )
