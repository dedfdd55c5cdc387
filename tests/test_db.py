from __future__ import annotations

import sqlite3
from datetime import date, datetime

import pytest

from work_time_tracker.db import Database
from work_time_tracker.db_repo.work_logs import PUNCH_IN, PUNCH_OUT
from work_time_tracker.errors import NoActiveRowError, RowNotFoundError, TimerValidationError
from work_time_tracker.models import (
    LOG_START,
    ROW_ACTIVE,
    ROW_COMPLETED,
    STATUS_WORKING,
    ManualSession,
    TimerLogEntry,
    TimerSnapshot,
)


def _dt(h: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, h, minute)


def _open_rows(db: Database, user_id: str = "u1") -> list:
    return [r for r in db.list_rows(user_id) if r.status == ROW_ACTIVE]


def test_punch_in_then_out_computes_hours(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    opened = db.append_work_log("u1", PUNCH_IN, _dt(9))
    assert opened.status == ROW_ACTIVE
    assert opened.date == date(2026, 3, 2)

    closed = db.append_work_log("u1", PUNCH_OUT, _dt(12, 30))
    assert closed.id == opened.id
    assert closed.status == ROW_COMPLETED
    assert closed.total_hours == 3.5


def test_punch_out_without_open_row(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    with pytest.raises(NoActiveRowError):
        db.append_work_log("u1", PUNCH_OUT, _dt(12))


def test_repeated_punch_in_is_idempotent(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    first = db.append_work_log("u1", PUNCH_IN, _dt(9))
    again = db.append_work_log("u1", PUNCH_IN, _dt(9))
    assert again.id == first.id
    assert len(db.list_rows("u1")) == 1


def test_new_punch_in_closes_stale_row(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    stale = db.append_work_log("u1", PUNCH_IN, _dt(9))
    fresh = db.append_work_log("u1", PUNCH_IN, _dt(13))

    assert db.get_row("u1", stale.id).punch_out == _dt(13)
    assert [r.id for r in _open_rows(db)] == [fresh.id]


def test_one_active_row_per_user_enforced(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.append_work_log("u1", PUNCH_IN, _dt(9))
    with pytest.raises(sqlite3.IntegrityError):
        with db._connect() as conn:
            conn.execute(
                """
                INSERT INTO work_logs(user_id, date, punch_in, status, created_at, updated_at)
                VALUES ('u1', '2026-03-02', '2026-03-02T10:00:00', 'active', 'x', 'x')
                """
            )
    db.append_work_log("u2", PUNCH_IN, _dt(9))
    assert len(_open_rows(db, "u2")) == 1


def test_split_open_row(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.append_work_log("u1", PUNCH_IN, _dt(9))

    closed, reopened = db.split_open_row("u1", _dt(12), _dt(12, 45))

    assert closed.punch_out == _dt(12)
    assert closed.total_hours == 3.0
    assert closed.status == ROW_COMPLETED
    assert reopened.punch_in == _dt(12, 45)
    assert reopened.status == ROW_ACTIVE
    assert reopened.date == closed.date
    assert len(_open_rows(db)) == 1


def test_split_rejections(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    with pytest.raises(NoActiveRowError, match=r"^No active session\. Please add the break from the calendar\.$"):
        db.split_open_row("u1", _dt(12), _dt(12, 30))

    db.append_work_log("u1", PUNCH_IN, _dt(11))
    with pytest.raises(TimerValidationError, match="after your current session punch-in"):
        db.split_open_row("u1", _dt(10), _dt(10, 30))
    with pytest.raises(TimerValidationError, match="breakStart must be before breakEnd"):
        db.split_open_row("u1", _dt(12), _dt(12))
    assert len(db.list_rows("u1")) == 1


def test_merge_removes_break(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    first, second = db.add_manual_sessions(
        "u1",
        date(2026, 3, 2),
        [ManualSession(_dt(9), _dt(12)), ManualSession(_dt(13), _dt(17))],
    )

    merged = db.merge_rows("u1", first.id, second.id)

    assert merged.id == first.id
    assert merged.punch_out == _dt(17)
    assert merged.total_hours == 8.0
    assert [r.id for r in db.list_rows("u1")] == [first.id]


def test_merge_keeps_later_open_row_open(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.append_work_log("u1", PUNCH_IN, _dt(9))
    earlier, later = db.split_open_row("u1", _dt(12), _dt(12, 30))

    merged = db.merge_rows("u1", earlier.id, later.id)

    assert merged.status == ROW_ACTIVE
    assert merged.punch_out is None
    assert merged.total_hours is None
    assert [r.id for r in _open_rows(db)] == [earlier.id]


def test_merge_and_delete_errors(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    rows = db.add_manual_sessions("u1", date(2026, 3, 2), [ManualSession(_dt(9), _dt(10))])

    with pytest.raises(RowNotFoundError):
        db.merge_rows("u1", rows[0].id, 999)
    with pytest.raises(RowNotFoundError):
        db.delete_row("u2", rows[0].id)
    with pytest.raises(TimerValidationError):
        db.merge_rows("u1", rows[0].id, rows[0].id)

    deleted = db.delete_row("u1", rows[0].id)
    assert deleted.id == rows[0].id
    assert db.list_rows("u1") == []


def test_manual_sessions_validation(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    day = date(2026, 3, 2)
    with pytest.raises(TimerValidationError, match="At least one session"):
        db.add_manual_sessions("u1", day, [])
    with pytest.raises(TimerValidationError, match="Session 1: punch-out must be after punch-in."):
        db.add_manual_sessions("u1", day, [ManualSession(_dt(10), _dt(9))])
    with pytest.raises(TimerValidationError, match="Session 2 overlaps with session 1."):
        db.add_manual_sessions("u1", day, [ManualSession(_dt(9), _dt(12)), ManualSession(_dt(11), _dt(13))])
    assert db.list_rows("u1") == []


def test_update_row_recomputes_hours(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    (row,) = db.add_manual_sessions("u1", date(2026, 3, 2), [ManualSession(_dt(9), _dt(12))])

    updated = db.update_row("u1", row.id, punch_out=_dt(13, 30))
    assert updated.total_hours == 4.5

    with pytest.raises(TimerValidationError):
        db.update_row("u1", row.id, punch_in=_dt(14))
    with pytest.raises(TimerValidationError):
        db.update_row("u1", row.id, status="paused")


def test_list_rows_date_range(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.add_manual_sessions("u1", date(2026, 3, 1), [ManualSession(datetime(2026, 3, 1, 9), datetime(2026, 3, 1, 10))])
    db.add_manual_sessions("u1", date(2026, 3, 2), [ManualSession(_dt(9), _dt(10))])
    db.add_manual_sessions("u1", date(2026, 3, 3), [ManualSession(datetime(2026, 3, 3, 9), datetime(2026, 3, 3, 10))])

    rows = db.list_rows("u1", date(2026, 3, 2), date(2026, 3, 3))
    assert [r.date for r in rows] == [date(2026, 3, 2), date(2026, 3, 3)]
    assert len(db.list_rows("u1")) == 3


def test_snapshot_round_trip(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    snap = TimerSnapshot(
        is_active=True,
        start_time=1_772_438_400_000,
        target_work_ms=28_800_000,
        target_break_ms=3_600_000,
        accumulated_work_ms=1_234_567,
        accumulated_break_ms=89_012,
        last_status_change=1_772_439_634_567,
        status=STATUS_WORKING,
        logs=(TimerLogEntry(type=LOG_START, time=1_772_438_400_000),),
        has_fired_ot_notification=True,
    )
    assert db.load_snapshot("u1") is None

    db.save_snapshot("u1", snap)
    assert db.load_snapshot("u1") == snap

    db.save_snapshot("u1", TimerSnapshot())
    assert db.load_snapshot("u1").is_active is False
    assert db.list_snapshot_users() == ["u1"]

    assert db.delete_snapshot("u1") is True
    assert db.delete_snapshot("u1") is False


def test_clear_day_removes_rows_and_snapshot(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.add_manual_sessions("u1", date(2026, 3, 1), [ManualSession(datetime(2026, 3, 1, 9), datetime(2026, 3, 1, 10))])
    db.append_work_log("u1", PUNCH_IN, _dt(9))
    db.split_open_row("u1", _dt(10), _dt(10, 15))
    db.save_snapshot("u1", TimerSnapshot(is_active=True, start_time=1, status=STATUS_WORKING))

    assert db.clear_day("u1", date(2026, 3, 2)) == 2
    assert [r.date for r in db.list_rows("u1")] == [date(2026, 3, 1)]
    assert db.load_snapshot("u1") is None


def test_notifications(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    first = db.create_notification("u1", "Office closed Friday", "ONE_TIME", _dt(8))
    db.create_notification("u1", "New policy", "ALL_TIME", _dt(9))
    with pytest.raises(ValueError):
        db.create_notification("u1", "bad", "SOMETIMES", _dt(9))

    assert [n.message for n in db.list_unread_notifications("u1")] == ["Office closed Friday", "New policy"]
    assert db.mark_notifications_read("u1", [first.id]) == 1
    assert db.mark_notifications_read("u2", [first.id]) == 0
    assert [n.message for n in db.list_unread_notifications("u1")] == ["New policy"]


def test_known_users(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.append_work_log("u2", PUNCH_IN, _dt(9))
    db.save_snapshot("u1", TimerSnapshot())
    assert db.list_known_users() == ["u1", "u2"]


def test_merge_only_accepts_rows_around_one_break(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    a, b, c = db.add_manual_sessions(
        "u1",
        date(2026, 3, 2),
        [ManualSession(_dt(9), _dt(10)), ManualSession(_dt(11), _dt(12)), ManualSession(_dt(13), _dt(14))],
    )

    with pytest.raises(TimerValidationError, match="around a break"):
        db.merge_rows("u1", a.id, c.id)
    assert len(db.list_rows("u1")) == 3

    merged = db.merge_rows("u1", a.id, b.id)
    assert merged.total_hours == 3.0
    assert [r.id for r in db.list_rows("u1")] == [a.id, c.id]


def test_merge_rejects_open_earlier_row_and_other_day(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    (yesterday,) = db.add_manual_sessions(
        "u1", date(2026, 3, 1), [ManualSession(datetime(2026, 3, 1, 15), datetime(2026, 3, 1, 17))]
    )
    (morning,) = db.add_manual_sessions("u1", date(2026, 3, 2), [ManualSession(_dt(9), _dt(10))])
    with pytest.raises(TimerValidationError, match="around a break"):
        db.merge_rows("u1", yesterday.id, morning.id)

    opened = db.append_work_log("u1", PUNCH_IN, _dt(11))
    (afternoon,) = db.add_manual_sessions("u1", date(2026, 3, 2), [ManualSession(_dt(14), _dt(15))])
    with pytest.raises(TimerValidationError, match="around a break"):
        db.merge_rows("u1", opened.id, afternoon.id)
    assert len(db.list_rows("u1")) == 4
