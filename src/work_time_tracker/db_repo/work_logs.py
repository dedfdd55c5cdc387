from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from typing import Any, Protocol, Sequence

from work_time_tracker.db_converters import _row_to_work_log
from work_time_tracker.errors import NoActiveRowError, RowNotFoundError, TimerValidationError
from work_time_tracker.models import ROW_ACTIVE, ROW_COMPLETED, ROW_STATUSES, ManualSession, WorkLogRow

logger = logging.getLogger(__name__)

PUNCH_IN = "punch-in"
PUNCH_OUT = "punch-out"


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


def hours_between(start: datetime, end: datetime) -> float:
    return round((end - start).total_seconds() / 3600, 4)


def _fetch_row(conn: sqlite3.Connection, user_id: str, row_id: int) -> WorkLogRow:
    row = conn.execute(
        "SELECT * FROM work_logs WHERE id = ? AND user_id = ?",
        (row_id, user_id),
    ).fetchone()
    if row is None:
        raise RowNotFoundError(f"Work log {row_id} not found")
    return _row_to_work_log(row)


def _fetch_open_row(conn: sqlite3.Connection, user_id: str) -> WorkLogRow | None:
    row = conn.execute(
        """
        SELECT * FROM work_logs
        WHERE user_id = ? AND status = 'active' AND punch_out IS NULL
        ORDER BY punch_in DESC, id DESC
        LIMIT 1
        """,
        (user_id,),
    ).fetchone()
    return _row_to_work_log(row) if row else None


def _insert_row(
    conn: sqlite3.Connection,
    user_id: str,
    day: date,
    punch_in: datetime,
    punch_out: datetime | None,
    total_hours: float | None,
    status: str,
) -> int:
    now = datetime.now().isoformat()
    cursor = conn.execute(
        """
        INSERT INTO work_logs(user_id, date, punch_in, punch_out, total_hours, status, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_id,
            day.isoformat(),
            punch_in.isoformat(),
            punch_out.isoformat() if punch_out else None,
            total_hours,
            status,
            now,
            now,
        ),
    )
    return int(cursor.lastrowid)


def _close_row(conn: sqlite3.Connection, row: WorkLogRow, punch_out: datetime, total_hours: float | None) -> None:
    conn.execute(
        """
        UPDATE work_logs
        SET punch_out = ?, total_hours = ?, status = 'completed', updated_at = ?
        WHERE id = ?
        """,
        (
            punch_out.isoformat(),
            total_hours if total_hours is not None else hours_between(row.punch_in, punch_out),
            datetime.now().isoformat(),
            row.id,
        ),
    )


class WorkLogMixin:
    def append_work_log(
        self: DbProtocol,
        user_id: str,
        kind: str,
        at: datetime,
        total_hours: float | None = None,
        day: date | None = None,
    ) -> WorkLogRow:
        """Punch-in opens a row; punch-out closes the latest open row."""
        if kind not in {PUNCH_IN, PUNCH_OUT}:
            raise ValueError("kind must be punch-in or punch-out")

        with self._connect() as conn:
            open_row = _fetch_open_row(conn, user_id)
            if kind == PUNCH_OUT:
                if open_row is None:
                    raise NoActiveRowError("No active punch-in found")
                _close_row(conn, open_row, at, total_hours)
                return _fetch_row(conn, user_id, open_row.id)

            if open_row is not None:
                if open_row.punch_in == at:
                    return open_row
                logger.warning(
                    "closing stale open row %s for user %s at new punch-in %s",
                    open_row.id,
                    user_id,
                    at.isoformat(),
                )
                _close_row(conn, open_row, max(at, open_row.punch_in), None)
            row_id = _insert_row(conn, user_id, day or at.date(), at, None, None, ROW_ACTIVE)
            return _fetch_row(conn, user_id, row_id)

    def get_row(self: DbProtocol, user_id: str, row_id: int) -> WorkLogRow:
        with self._connect() as conn:
            return _fetch_row(conn, user_id, row_id)

    def list_rows(
        self: DbProtocol,
        user_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[WorkLogRow]:
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if start is not None and end is not None:
            conditions.append("date >= ?")
            conditions.append("date <= ?")
            params.extend([start.isoformat(), end.isoformat()])

        query = f"SELECT * FROM work_logs WHERE {' AND '.join(conditions)} ORDER BY punch_in ASC, id ASC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_work_log(r) for r in rows]

    def split_open_row(
        self: DbProtocol,
        user_id: str,
        break_start: datetime,
        break_end: datetime,
    ) -> tuple[WorkLogRow, WorkLogRow]:
        """Close the open row at ``break_start`` and reopen at ``break_end``, atomically."""
        if break_start >= break_end:
            raise TimerValidationError("breakStart must be before breakEnd")

        with self._connect() as conn:
            open_row = _fetch_open_row(conn, user_id)
            if open_row is None:
                raise NoActiveRowError("No active session. Please add the break from the calendar.")
            if break_start <= open_row.punch_in:
                raise TimerValidationError("Break start must be after your current session punch-in.")

            _close_row(conn, open_row, break_start, None)
            new_id = _insert_row(conn, user_id, open_row.date, break_end, None, None, ROW_ACTIVE)
            return _fetch_row(conn, user_id, open_row.id), _fetch_row(conn, user_id, new_id)

    def merge_rows(self: DbProtocol, user_id: str, earlier_id: int, later_id: int) -> WorkLogRow:
        """Fold ``later_id`` into ``earlier_id`` and delete it; both writes share one transaction."""
        with self._connect() as conn:
            earlier = _fetch_row(conn, user_id, earlier_id)
            later = _fetch_row(conn, user_id, later_id)
            if earlier.id == later.id or later.punch_in < earlier.punch_in:
                raise TimerValidationError("Rows must be two distinct sessions in chronological order.")
            if earlier.punch_out is None or earlier.date != later.date:
                raise TimerValidationError("Only the two sessions around a break can be merged.")
            between = conn.execute(
                """
                SELECT 1 FROM work_logs
                WHERE user_id = ? AND punch_in > ? AND punch_in < ?
                LIMIT 1
                """,
                (user_id, earlier.punch_in.isoformat(), later.punch_in.isoformat()),
            ).fetchone()
            if between is not None:
                raise TimerValidationError("Only the two sessions around a break can be merged.")

            punch_out = later.punch_out
            total_hours = hours_between(earlier.punch_in, punch_out) if punch_out else None
            status = ROW_ACTIVE if later.status == ROW_ACTIVE else ROW_COMPLETED

            # the later row goes first so a still-open row never exists twice
            conn.execute("DELETE FROM work_logs WHERE id = ?", (later.id,))
            conn.execute(
                """
                UPDATE work_logs
                SET punch_out = ?, total_hours = ?, status = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    punch_out.isoformat() if punch_out else None,
                    total_hours,
                    status,
                    datetime.now().isoformat(),
                    earlier.id,
                ),
            )
            return _fetch_row(conn, user_id, earlier.id)

    def delete_row(self: DbProtocol, user_id: str, row_id: int) -> WorkLogRow:
        with self._connect() as conn:
            row = _fetch_row(conn, user_id, row_id)
            conn.execute("DELETE FROM work_logs WHERE id = ?", (row.id,))
        return row

    def update_row(
        self: DbProtocol,
        user_id: str,
        row_id: int,
        punch_in: datetime | None = None,
        punch_out: datetime | None = None,
        total_hours: float | None = None,
        status: str | None = None,
    ) -> WorkLogRow:
        if status is not None and status not in ROW_STATUSES:
            raise TimerValidationError("status must be active or completed")

        with self._connect() as conn:
            row = _fetch_row(conn, user_id, row_id)
            new_in = punch_in or row.punch_in
            new_out = punch_out or row.punch_out
            if new_out is not None and new_out <= new_in:
                raise TimerValidationError("Punch-out must be after punch-in.")
            if total_hours is None and new_out is not None and (punch_in or punch_out):
                total_hours = hours_between(new_in, new_out)
            conn.execute(
                """
                UPDATE work_logs
                SET punch_in = ?, punch_out = ?, total_hours = ?, status = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    new_in.isoformat(),
                    new_out.isoformat() if new_out else None,
                    total_hours if total_hours is not None else row.total_hours,
                    status or row.status,
                    datetime.now().isoformat(),
                    row.id,
                ),
            )
            return _fetch_row(conn, user_id, row.id)

    def add_manual_sessions(
        self: DbProtocol,
        user_id: str,
        day: date,
        sessions: Sequence[ManualSession],
    ) -> list[WorkLogRow]:
        if not sessions:
            raise TimerValidationError("At least one session is required.")
        for index, session in enumerate(sessions, start=1):
            if session.punch_out <= session.punch_in:
                raise TimerValidationError(f"Session {index}: punch-out must be after punch-in.")
            if index > 1 and session.punch_in < sessions[index - 2].punch_out:
                raise TimerValidationError(f"Session {index} overlaps with session {index - 1}.")

        with self._connect() as conn:
            ids = [
                _insert_row(
                    conn,
                    user_id,
                    day,
                    session.punch_in,
                    session.punch_out,
                    hours_between(session.punch_in, session.punch_out),
                    ROW_COMPLETED,
                )
                for session in sessions
            ]
            return [_fetch_row(conn, user_id, row_id) for row_id in ids]

    def clear_day(self: DbProtocol, user_id: str, day: date) -> int:
        """Delete the day's rows together with the user's timer snapshot."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM work_logs WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            )
            conn.execute("DELETE FROM timer_states WHERE user_id = ?", (user_id,))
        return int(cursor.rowcount)
