from __future__ import annotations

from datetime import date, datetime

import pytest

from work_time_tracker.config import load_settings
from work_time_tracker.db import Database
from work_time_tracker.db_repo.work_logs import PUNCH_IN
from work_time_tracker.jobs_runner import compute_drift, run_job, run_reconcile
from work_time_tracker.models import STATUS_BREAK, STATUS_WORKING, ManualSession, TimerSnapshot
from work_time_tracker.time_utils import MS_PER_MINUTE, to_ms


def _dt(h: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, h, minute)


def _snapshot(work_minutes: int, status: str = STATUS_BREAK, last_change: datetime | None = None) -> TimerSnapshot:
    return TimerSnapshot(
        is_active=True,
        start_time=to_ms(_dt(9)),
        target_work_ms=480 * MS_PER_MINUTE,
        accumulated_work_ms=work_minutes * MS_PER_MINUTE,
        last_status_change=to_ms(last_change or _dt(12)),
        status=status,
    )


def test_no_drift_when_rows_match(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.add_manual_sessions("u1", date(2026, 3, 2), [ManualSession(_dt(9), _dt(12))])

    report = compute_drift("u1", _snapshot(180), db.list_rows("u1"), _dt(12, 30))
    assert report is not None
    assert report.day == date(2026, 3, 2)
    assert report.drift_minutes == 0


def test_drift_counts_live_work_and_open_rows(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.append_work_log("u1", PUNCH_IN, _dt(9))
    snap = _snapshot(0, status=STATUS_WORKING, last_change=_dt(9, 15))

    report = compute_drift("u1", snap, db.list_rows("u1"), _dt(11))
    assert report.timer_work_ms == 105 * MS_PER_MINUTE
    assert report.logged_work_ms == 120 * MS_PER_MINUTE
    assert report.drift_minutes == -15


def test_snapshot_without_start_is_skipped() -> None:
    assert compute_drift("u1", TimerSnapshot(), [], _dt(12)) is None


def test_run_reconcile_reports_every_user(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.add_manual_sessions("u1", date(2026, 3, 2), [ManualSession(_dt(9), _dt(12))])
    db.save_snapshot("u1", _snapshot(170))
    db.save_snapshot("u2", TimerSnapshot())

    reports = run_reconcile(db, now=_dt(13))

    assert [(r.user_id, r.drift_minutes) for r in reports] == [("u1", -10)]
    assert len(db.list_rows("u1")) == 1


def test_unknown_job(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    settings = load_settings(tmp_path / "missing.env")
    with pytest.raises(SystemExit):
        run_job("nightly", db, settings)
