from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from work_time_tracker.db_repo.work_logs import PUNCH_IN, PUNCH_OUT
from work_time_tracker.errors import BackendError, NoActiveRowError, TimerValidationError
from work_time_tracker.gateway import SnapshotGateway
from work_time_tracker.models import STATUS_WORKING, TimerProjection, TimerSnapshot
from work_time_tracker.time_utils import from_ms, now_ms
from work_time_tracker.timer import WorkTimer

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 1.0
DEFAULT_SYNC_INTERVAL_SECONDS = 300.0


@dataclass(frozen=True)
class ActionResult:
    success: bool
    error: str | None = None


class TimerSession:
    """One user's live work day.

    Every action runs under a single lock, so validation and mutation see
    the same state. Persistence calls are queued behind each other and are
    not awaited by the action; only ``clear_today`` waits for the server.
    The tick and sync loops exist only while a day is active.
    """

    def __init__(
        self,
        user_id: str,
        gateway: SnapshotGateway,
        clock: Callable[[], int] = now_ms,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        sync_interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        on_overtime: Callable[[TimerProjection], None] | None = None,
        on_split_rejected: Callable[[str], None] | None = None,
    ) -> None:
        self.user_id = user_id
        self.gateway = gateway
        self.timer = WorkTimer()
        self.tick_seconds = tick_seconds
        self.sync_interval_seconds = sync_interval_seconds
        self.on_overtime = on_overtime
        self.on_split_rejected = on_split_rejected
        self.current_time = clock()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._ticker: asyncio.Task[None] | None = None
        self._syncer: asyncio.Task[None] | None = None
        self._tail: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._generation = 0
        self._clearing = False

    @property
    def snapshot(self) -> TimerSnapshot:
        return self.timer.snapshot

    @property
    def is_ticking(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def projection(self) -> TimerProjection:
        return self.timer.projection(self._clock())

    async def load(self) -> TimerSnapshot:
        async with self._lock:
            stored = await self.gateway.load(self.user_id)
            if stored is not None:
                self.timer.restore(stored)
            self._update_loops()
            return self.timer.snapshot

    async def start_day(
        self,
        work_hours: float,
        work_minutes: float,
        break_minutes: float,
        entry_time: str,
    ) -> ActionResult:
        async with self._lock:
            try:
                snapshot = self.timer.start_day(work_hours, work_minutes, break_minutes, entry_time, self._clock())
            except TimerValidationError as exc:
                return ActionResult(success=False, error=str(exc))

            started = from_ms(snapshot.start_time or self._clock())
            self._enqueue(lambda: self.gateway.backend.append_work_log(self.user_id, PUNCH_IN, started), "punch-in")
            self._push(snapshot)
            self._update_loops()
        return ActionResult(success=True)

    async def punch_toggle(self, manual_time_ms: int | None = None) -> ActionResult:
        async with self._lock:
            try:
                outcome = self.timer.punch_toggle(self._clock(), manual_time_ms)
            except TimerValidationError as exc:
                return ActionResult(success=False, error=str(exc))

            at = from_ms(outcome.effective_ms)
            kind = PUNCH_OUT if outcome.previous_status == STATUS_WORKING else PUNCH_IN
            self._enqueue(lambda: self.gateway.backend.append_work_log(self.user_id, kind, at), kind)
            self._push(outcome.snapshot)
        return ActionResult(success=True)

    async def add_historical_break(self, punch_out_ms: int, punch_in_ms: int) -> ActionResult:
        async with self._lock:
            try:
                self.timer.add_historical_break(punch_out_ms, punch_in_ms, self._clock())
            except TimerValidationError as exc:
                return ActionResult(success=False, error=str(exc))

            self._enqueue(
                lambda: self._split_open_row(from_ms(punch_out_ms), from_ms(punch_in_ms)),
                "split",
            )
            self._push(self.timer.snapshot)
        return ActionResult(success=True)

    async def reset_day(self) -> ActionResult:
        async with self._lock:
            self._generation += 1
            self.timer.reset()
            self._update_loops()
            self._enqueue(lambda: self.gateway.discard(self.user_id), "discard")
        return ActionResult(success=True)

    async def clear_today(self) -> ActionResult:
        async with self._lock:
            self._stop_loops()
            await self.drain()
            today = from_ms(self._clock()).date()
            self._clearing = True
            try:
                deleted = await self.gateway.backend.clear_day(self.user_id, today)
            except BackendError as exc:
                logger.warning("clear today failed for user %s: %s", self.user_id, exc)
                self._update_loops()
                self._push(self.timer.snapshot)
                return ActionResult(success=False, error=str(exc))
            finally:
                self._clearing = False

            logger.info("cleared %s work log rows for user %s on %s", deleted, self.user_id, today)
            self._generation += 1
            if self.gateway.cache is not None:
                self.gateway.cache.clear()
            self.timer.reset()
            self._update_loops()
        return ActionResult(success=True)

    def tick(self) -> TimerProjection:
        now = self._clock()
        self.current_time = now
        fired = self.timer.check_overtime(now)
        projection = self.timer.projection(now)
        if fired:
            self._push(self.timer.snapshot)
            if self.on_overtime is not None:
                self.on_overtime(projection)
        return projection

    async def drain(self) -> None:
        """Wait for queued persistence calls to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        self._stop_loops()

    async def _split_open_row(self, break_start: datetime, break_end: datetime) -> None:
        try:
            await self.gateway.backend.split_open_row(self.user_id, break_start, break_end)
        except (NoActiveRowError, TimerValidationError) as exc:
            logger.warning("stored work log not split for user %s: %s", self.user_id, exc)
            if self.on_split_rejected is not None:
                self.on_split_rejected(str(exc))

    def _push(self, snapshot: TimerSnapshot) -> None:
        generation = self._generation

        async def push() -> None:
            if generation != self._generation or self._clearing:
                logger.debug("dropping stale timer sync for user %s", self.user_id)
                return
            await self.gateway.push(self.user_id, snapshot)

        self._enqueue(push, "sync")

    def _enqueue(self, operation: Callable[[], Awaitable[Any]], label: str) -> None:
        previous = self._tail

        async def run() -> None:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            try:
                await operation()
            except (BackendError, NoActiveRowError, TimerValidationError):
                logger.warning("%s failed for user %s", label, self.user_id, exc_info=True)

        task = asyncio.create_task(run())
        self._tail = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _update_loops(self) -> None:
        if self.timer.snapshot.is_active:
            if self._ticker is None or self._ticker.done():
                self._ticker = asyncio.create_task(self._tick_loop())
            if self._syncer is None or self._syncer.done():
                self._syncer = asyncio.create_task(self._sync_loop())
        else:
            self._stop_loops()

    def _stop_loops(self) -> None:
        for task in (self._ticker, self._syncer):
            if task is not None and not task.done():
                task.cancel()
        self._ticker = None
        self._syncer = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self.tick()

    async def _sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sync_interval_seconds)
            self._push(self.timer.snapshot)
