"""Snapshot persistence seen from the timer's side.

The timer talks to storage through a ``TimerBackend``: either the sqlite
database in-process or the HTTP API. ``SnapshotGateway`` wraps a backend
with the best-effort rules the timer relies on: failed pushes are logged
and dropped, and loads fall back to the local cache file.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, Protocol

import httpx

from work_time_tracker.db import Database
from work_time_tracker.db_converters import (
    snapshot_from_payload,
    snapshot_to_payload,
    work_log_from_payload,
)
from work_time_tracker.errors import BackendError, NoActiveRowError, TimerValidationError
from work_time_tracker.models import TimerSnapshot, WorkLogRow

logger = logging.getLogger(__name__)

LOCAL_CACHE_KEY = "wtt_state_next"


class TimerBackend(Protocol):
    async def load_snapshot(self, user_id: str) -> TimerSnapshot | None: ...
    async def save_snapshot(self, user_id: str, snapshot: TimerSnapshot) -> None: ...
    async def delete_snapshot(self, user_id: str) -> None: ...
    async def append_work_log(
        self,
        user_id: str,
        kind: str,
        at: datetime,
        total_hours: float | None = None,
    ) -> WorkLogRow: ...
    async def split_open_row(self, user_id: str, break_start: datetime, break_end: datetime) -> None: ...
    async def clear_day(self, user_id: str, day: date) -> int: ...


class DatabaseBackend:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def _call(self, func: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise BackendError(str(exc)) from exc

    async def load_snapshot(self, user_id: str) -> TimerSnapshot | None:
        return await self._call(self.db.load_snapshot, user_id)

    async def save_snapshot(self, user_id: str, snapshot: TimerSnapshot) -> None:
        await self._call(self.db.save_snapshot, user_id, snapshot)

    async def delete_snapshot(self, user_id: str) -> None:
        await self._call(self.db.delete_snapshot, user_id)

    async def append_work_log(
        self,
        user_id: str,
        kind: str,
        at: datetime,
        total_hours: float | None = None,
    ) -> WorkLogRow:
        return await self._call(self.db.append_work_log, user_id, kind, at, total_hours)

    async def split_open_row(self, user_id: str, break_start: datetime, break_end: datetime) -> None:
        await self._call(self.db.split_open_row, user_id, break_start, break_end)

    async def clear_day(self, user_id: str, day: date) -> int:
        return await self._call(self.db.clear_day, user_id, day)


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        detail = str(response.json().get("detail") or response.text)
    except (ValueError, AttributeError):
        detail = response.text
    if response.status_code == 409:
        raise NoActiveRowError(detail)
    if response.status_code == 400:
        raise TimerValidationError(detail)
    raise BackendError(f"HTTP {response.status_code}: {detail}")


class HttpBackend:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def _request(self, method: str, url: str, user_id: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, headers={"x-user-id": user_id}, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {url} failed: {exc}") from exc
        _raise_for_status(response)
        return response

    async def load_snapshot(self, user_id: str) -> TimerSnapshot | None:
        response = await self._request("GET", "/api/timer-sync", user_id)
        payload = response.json()
        if not payload:
            return None
        return snapshot_from_payload(payload)

    async def save_snapshot(self, user_id: str, snapshot: TimerSnapshot) -> None:
        await self._request("POST", "/api/timer-sync", user_id, json=snapshot_to_payload(snapshot))

    async def delete_snapshot(self, user_id: str) -> None:
        await self._request("DELETE", "/api/timer-sync", user_id)

    async def append_work_log(
        self,
        user_id: str,
        kind: str,
        at: datetime,
        total_hours: float | None = None,
    ) -> WorkLogRow:
        body = {"type": kind, "time": at.isoformat(), "date": at.date().isoformat(), "totalHours": total_hours}
        response = await self._request("POST", "/api/worklog", user_id, json=body)
        return work_log_from_payload(response.json())

    async def split_open_row(self, user_id: str, break_start: datetime, break_end: datetime) -> None:
        body = {"breakStart": break_start.isoformat(), "breakEnd": break_end.isoformat()}
        await self._request("POST", "/api/worklog/add-break", user_id, json=body)

    async def clear_day(self, user_id: str, day: date) -> int:
        response = await self._request("DELETE", "/api/worklog/today", user_id, params={"date": day.isoformat()})
        return int(response.json().get("deletedCount", 0))


class LocalSnapshotCache:
    """Last-known snapshot kept in a JSON file under a fixed key."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> TimerSnapshot | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            payload = data.get(LOCAL_CACHE_KEY)
            return snapshot_from_payload(payload) if payload else None
        except (OSError, ValueError, TypeError, AttributeError):
            logger.warning("ignoring unreadable timer cache at %s", self.path)
            return None

    def write(self, snapshot: TimerSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({LOCAL_CACHE_KEY: snapshot_to_payload(snapshot)}), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class SnapshotGateway:
    def __init__(self, backend: TimerBackend, cache: LocalSnapshotCache | None = None) -> None:
        self.backend = backend
        self.cache = cache
        self.last_synced: datetime | None = None

    def remember(self, snapshot: TimerSnapshot) -> None:
        if self.cache is None or not snapshot.is_active:
            return
        try:
            self.cache.write(snapshot)
        except OSError:
            logger.warning("could not write timer cache at %s", self.cache.path, exc_info=True)

    async def push(self, user_id: str, snapshot: TimerSnapshot) -> bool:
        self.remember(snapshot)
        try:
            await self.backend.save_snapshot(user_id, snapshot)
        except BackendError:
            logger.warning("timer sync failed for user %s", user_id, exc_info=True)
            return False
        self.last_synced = datetime.now()
        return True

    async def load(self, user_id: str) -> TimerSnapshot | None:
        try:
            remote = await self.backend.load_snapshot(user_id)
        except (BackendError, ValueError):
            logger.warning("timer load failed for user %s, trying local cache", user_id, exc_info=True)
            remote = None
        if remote is not None and remote.is_active:
            self.remember(remote)
            return remote
        if self.cache is None:
            return None
        return self.cache.read()

    async def discard(self, user_id: str) -> None:
        if self.cache is not None:
            self.cache.clear()
        try:
            await self.backend.delete_snapshot(user_id)
        except BackendError:
            logger.warning("could not delete stored timer for user %s", user_id, exc_info=True)
