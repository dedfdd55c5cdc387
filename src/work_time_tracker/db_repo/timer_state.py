from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Protocol

from work_time_tracker.db_converters import _logs_to_payload, _row_to_snapshot
from work_time_tracker.models import TimerSnapshot


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class TimerStateMixin:
    def load_snapshot(self: DbProtocol, user_id: str) -> TimerSnapshot | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM timer_states WHERE user_id = ?", (user_id,)).fetchone()
        return _row_to_snapshot(row) if row else None

    def save_snapshot(self: DbProtocol, user_id: str, snapshot: TimerSnapshot) -> datetime:
        updated_at = datetime.now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO timer_states(
                    user_id, is_active, start_time, target_work_ms, target_break_ms,
                    accumulated_work_ms, accumulated_break_ms, last_status_change,
                    status, logs_json, has_fired_ot_notification, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    is_active=excluded.is_active,
                    start_time=excluded.start_time,
                    target_work_ms=excluded.target_work_ms,
                    target_break_ms=excluded.target_break_ms,
                    accumulated_work_ms=excluded.accumulated_work_ms,
                    accumulated_break_ms=excluded.accumulated_break_ms,
                    last_status_change=excluded.last_status_change,
                    status=excluded.status,
                    logs_json=excluded.logs_json,
                    has_fired_ot_notification=excluded.has_fired_ot_notification,
                    updated_at=excluded.updated_at
                """,
                (
                    user_id,
                    1 if snapshot.is_active else 0,
                    snapshot.start_time,
                    snapshot.target_work_ms,
                    snapshot.target_break_ms,
                    snapshot.accumulated_work_ms,
                    snapshot.accumulated_break_ms,
                    snapshot.last_status_change,
                    snapshot.status,
                    json.dumps(_logs_to_payload(snapshot.logs)),
                    1 if snapshot.has_fired_ot_notification else 0,
                    updated_at.isoformat(),
                ),
            )
        return updated_at

    def delete_snapshot(self: DbProtocol, user_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM timer_states WHERE user_id = ?", (user_id,))
        return cursor.rowcount > 0

    def list_snapshot_users(self: DbProtocol) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT user_id FROM timer_states ORDER BY user_id").fetchall()
        return [str(row["user_id"]) for row in rows]
