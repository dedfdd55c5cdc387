from __future__ import annotations

import asyncio
from datetime import date, datetime

from work_time_tracker.db import Database
from work_time_tracker.errors import BackendError
from work_time_tracker.gateway import LOCAL_CACHE_KEY, DatabaseBackend, LocalSnapshotCache, SnapshotGateway
from work_time_tracker.models import STATUS_WORKING, TimerSnapshot, WorkLogRow

ACTIVE = TimerSnapshot(is_active=True, start_time=1_000, last_status_change=1_000, status=STATUS_WORKING)


class OfflineBackend:
    async def load_snapshot(self, user_id: str) -> TimerSnapshot | None:
        raise BackendError("offline")

    async def save_snapshot(self, user_id: str, snapshot: TimerSnapshot) -> None:
        raise BackendError("offline")

    async def delete_snapshot(self, user_id: str) -> None:
        raise BackendError("offline")

    async def append_work_log(self, user_id: str, kind: str, at: datetime, total_hours: float | None = None) -> WorkLogRow:
        raise BackendError("offline")

    async def split_open_row(self, user_id: str, break_start: datetime, break_end: datetime) -> None:
        raise BackendError("offline")

    async def clear_day(self, user_id: str, day: date) -> int:
        raise BackendError("offline")


def test_cache_file_uses_fixed_key(tmp_path) -> None:
    cache = LocalSnapshotCache(tmp_path / "cache.json")
    assert cache.read() is None

    cache.write(ACTIVE)
    assert LOCAL_CACHE_KEY in (tmp_path / "cache.json").read_text(encoding="utf-8")
    assert cache.read() == ACTIVE

    cache.clear()
    cache.clear()
    assert cache.read() is None


def test_corrupt_cache_is_ignored(tmp_path) -> None:
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    assert LocalSnapshotCache(path).read() is None


def test_push_and_load_through_database(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    cache = LocalSnapshotCache(tmp_path / "cache.json")
    gateway = SnapshotGateway(DatabaseBackend(db), cache)

    assert asyncio.run(gateway.push("u1", ACTIVE)) is True
    assert gateway.last_synced is not None
    assert db.load_snapshot("u1") == ACTIVE
    assert cache.read() == ACTIVE
    assert asyncio.run(gateway.load("u1")) == ACTIVE


def test_inactive_remote_snapshot_falls_back_to_cache(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.save_snapshot("u1", TimerSnapshot())
    cache = LocalSnapshotCache(tmp_path / "cache.json")
    cache.write(ACTIVE)

    gateway = SnapshotGateway(DatabaseBackend(db), cache)
    assert asyncio.run(gateway.load("u1")) == ACTIVE


def test_offline_push_is_best_effort(tmp_path) -> None:
    cache = LocalSnapshotCache(tmp_path / "cache.json")
    gateway = SnapshotGateway(OfflineBackend(), cache)

    assert asyncio.run(gateway.push("u1", ACTIVE)) is False
    assert gateway.last_synced is None
    assert asyncio.run(gateway.load("u1")) == ACTIVE

    asyncio.run(gateway.discard("u1"))
    assert cache.read() is None


def test_load_without_cache_returns_none() -> None:
    gateway = SnapshotGateway(OfflineBackend())
    assert asyncio.run(gateway.load("u1")) is None


def test_unwritable_cache_does_not_block_sync(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    blocked = tmp_path / "cache-dir"
    blocked.mkdir()
    gateway = SnapshotGateway(DatabaseBackend(db), LocalSnapshotCache(blocked))

    assert asyncio.run(gateway.push("u1", ACTIVE)) is True
    assert db.load_snapshot("u1") == ACTIVE
