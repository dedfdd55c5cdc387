from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path


class BaseDatabase:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE work_logs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        date TEXT NOT NULL,
                        punch_in TEXT NOT NULL,
                        punch_out TEXT,
                        total_hours REAL,
                        status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'completed')),
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_work_logs_user_date ON work_logs(user_id, date);
                    CREATE INDEX idx_work_logs_user_punch_in ON work_logs(user_id, punch_in);

                    CREATE TABLE timer_states (
                        user_id TEXT PRIMARY KEY,
                        is_active INTEGER NOT NULL DEFAULT 0,
                        start_time INTEGER,
                        target_work_ms INTEGER NOT NULL DEFAULT 0,
                        target_break_ms INTEGER NOT NULL DEFAULT 0,
                        accumulated_work_ms INTEGER NOT NULL DEFAULT 0,
                        accumulated_break_ms INTEGER NOT NULL DEFAULT 0,
                        last_status_change INTEGER,
                        status TEXT NOT NULL DEFAULT 'idle',
                        logs_json TEXT NOT NULL DEFAULT '[]',
                        has_fired_ot_notification INTEGER NOT NULL DEFAULT 0,
                        updated_at TEXT NOT NULL
                    );
                """,
                2: """
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_work_logs_one_active
                    ON work_logs(user_id) WHERE status = 'active';
                """,
                3: """
                    CREATE TABLE IF NOT EXISTS notifications (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        message TEXT NOT NULL,
                        type TEXT NOT NULL CHECK(type IN ('ONE_TIME', 'ALL_TIME')),
                        is_read INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_notifications_user_read
                    ON notifications(user_id, is_read);
                """,
            }

            now = datetime.now().isoformat(timespec="seconds")
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )

    def list_known_users(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT user_id FROM work_logs
                UNION
                SELECT user_id FROM timer_states
                ORDER BY user_id
                """
            ).fetchall()
        return [str(row["user_id"]) for row in rows]
