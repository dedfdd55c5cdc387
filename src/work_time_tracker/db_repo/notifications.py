from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol, Sequence

from work_time_tracker.db_converters import _row_to_notification
from work_time_tracker.models import NOTIFICATION_TYPES, Notification


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class NotificationMixin:
    def create_notification(
        self: DbProtocol,
        user_id: str,
        message: str,
        notification_type: str,
        created_at: datetime,
    ) -> Notification:
        if notification_type not in NOTIFICATION_TYPES:
            raise ValueError("type must be ONE_TIME or ALL_TIME")
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO notifications(user_id, message, type, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, message, notification_type, created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_notification(row)

    def list_unread_notifications(self: DbProtocol, user_id: str) -> list[Notification]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM notifications
                WHERE user_id = ? AND is_read = 0
                ORDER BY created_at ASC, id ASC
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_notification(r) for r in rows]

    def mark_notifications_read(self: DbProtocol, user_id: str, ids: Sequence[int]) -> int:
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE notifications SET is_read = 1 WHERE user_id = ? AND id IN ({placeholders})",
                (user_id, *ids),
            )
        return int(cursor.rowcount)
