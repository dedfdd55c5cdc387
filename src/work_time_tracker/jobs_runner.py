from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from work_time_tracker.config import Settings
from work_time_tracker.db import Database
from work_time_tracker.durations import format_compact
from work_time_tracker.intervals import dedupe_rows, work_duration_ms
from work_time_tracker.models import TimerSnapshot, WorkLogRow
from work_time_tracker.time_utils import MS_PER_MINUTE, from_ms, to_ms
from work_time_tracker.timer import project

logger = logging.getLogger(__name__)

JOBS = ("reconcile",)


@dataclass(frozen=True)
class DriftReport:
    user_id: str
    day: date
    timer_work_ms: int
    logged_work_ms: int

    @property
    def drift_ms(self) -> int:
        return self.timer_work_ms - self.logged_work_ms

    @property
    def drift_minutes(self) -> int:
        return round(self.drift_ms / MS_PER_MINUTE)


def compute_drift(
    user_id: str,
    snapshot: TimerSnapshot,
    rows: Iterable[WorkLogRow],
    now: datetime,
) -> DriftReport | None:
    """Compare the timer's work total with the stored rows for the timer's day."""
    if snapshot.start_time is None:
        return None
    day = from_ms(snapshot.start_time).date()
    timer_work = project(snapshot, to_ms(now)).total_work_ms
    logged = sum(work_duration_ms(row, now) for row in dedupe_rows(rows) if row.date == day)
    return DriftReport(user_id=user_id, day=day, timer_work_ms=timer_work, logged_work_ms=logged)


def run_reconcile(db: Database, now: datetime | None = None) -> list[DriftReport]:
    now = now or datetime.now()
    reports: list[DriftReport] = []
    for user_id in db.list_snapshot_users():
        snapshot = db.load_snapshot(user_id)
        if snapshot is None:
            continue
        report = compute_drift(user_id, snapshot, db.list_rows(user_id), now)
        if report is None:
            logger.info("reconcile skipped user_id=%s: timer has no start time", user_id)
            continue
        reports.append(report)
        if report.drift_minutes != 0:
            logger.warning(
                "work log drift user_id=%s day=%s drift_minutes=%s timer=%s logged=%s",
                user_id,
                report.day,
                report.drift_minutes,
                format_compact(report.timer_work_ms),
                format_compact(report.logged_work_ms),
            )
        else:
            logger.info("work log in sync user_id=%s day=%s", user_id, report.day)
    logger.info("reconcile completed: users=%s", len(reports))
    return reports


def run_job(job_name: str, db: Database, settings: Settings) -> None:
    logger.info("running job %s database=%s", job_name, settings.database_path)
    if job_name == "reconcile":
        run_reconcile(db)
    else:
        raise SystemExit(f"Unknown job '{job_name}'. Expected one of: {', '.join(JOBS)}")
