"""Decides when sync rounds run and keeps them from overlapping."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

from core.errors import SyncError
from core.settings import SYNC
from models.sync_summary import SyncSummary

logger = logging.getLogger("todosync.scheduler")

RoundCallback = Callable[[Optional[SyncSummary], Optional[BaseException]], None]
Executor = Callable[[Callable[[], SyncSummary]], Awaitable[SyncSummary]]
Sleep = Callable[[float], Awaitable[Any]]


async def _run_in_thread(fn: Callable[[], SyncSummary]) -> SyncSummary:
    return await asyncio.to_thread(fn)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncScheduler:
    """Runs rounds of ``service`` on demand, on a timer and after local edits.

    At most one round is in flight. Explicit triggers that arrive during a round
    share a single follow-up round; periodic triggers are dropped instead.
    """

    def __init__(
        self,
        service,
        *,
        interval_sec: float = SYNC.interval_sec,
        push_delay_sec: float = SYNC.push_delay_sec,
        executor: Executor = _run_in_thread,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.service = service
        self.interval_sec = interval_sec
        self.push_delay_sec = push_delay_sec
        self._execute = executor
        self._sleep = sleep

        self.status = "idle"  # idle / syncing / synced / error
        self.last_synced_at: Optional[datetime] = None
        self.last_summary: Optional[SyncSummary] = None
        self.last_error: Optional[BaseException] = None

        self._listeners: List[RoundCallback] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._current: Optional[asyncio.Future] = None
        self._pending: Optional[asyncio.Future] = None
        self._periodic: Optional[asyncio.Task] = None
        self._debounce: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Subscribers
    def subscribe(self, callback: RoundCallback) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: RoundCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, summary: Optional[SyncSummary], error: Optional[BaseException]) -> None:
        for listener in list(self._listeners):
            try:
                listener(summary, error)
            except Exception:
                logger.exception("Sync listener failed")

    # ------------------------------------------------------------------
    # Lifecycle
    @property
    def running(self) -> bool:
        return self._periodic is not None and not self._periodic.done()

    @property
    def busy(self) -> bool:
        if self._pending is not None:
            return True
        return self._current is not None and not self._current.done()

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        if self.running:
            return
        self._periodic = self._loop.create_task(self._periodic_loop())

    async def stop(self) -> None:
        """Stop the timers, then wait for the in-flight and pending rounds."""

        for task in (self._periodic, self._debounce):
            if task is not None and not task.done():
                task.cancel()
        self._periodic = None
        self._debounce = None
        while self.busy:
            waiting = [f for f in (self._current, self._pending) if f is not None]
            await asyncio.wait(waiting)

    # ------------------------------------------------------------------
    # Triggers
    async def sync_now(self) -> SyncSummary:
        """Explicit trigger; joins the pending follow-up round if one is running."""

        self._loop = self._loop or asyncio.get_running_loop()
        if self._pending is not None:
            return await asyncio.shield(self._pending)
        if self._current is not None and not self._current.done():
            self._pending = self._loop.create_task(self._after(self._current))
            return await asyncio.shield(self._pending)
        self._current = self._loop.create_task(self._round())
        return await asyncio.shield(self._current)

    def request_sync(self) -> None:
        """Fire-and-forget explicit trigger, callable from any thread."""

        self._call_in_loop(self._spawn_explicit)

    def notify_mutation(self, local_id: Optional[int] = None) -> None:
        """Restart the post-edit debounce timer, callable from any thread."""

        self._call_in_loop(self._restart_debounce)

    async def trigger_background(self) -> Optional[SyncSummary]:
        """Periodic trigger; skipped while a round is in flight or queued."""

        if self.busy:
            logger.debug("Background sync skipped: round in flight")
            return None
        try:
            return await self.sync_now()
        except SyncError:
            # recorded and reported by _round
            return None

    # ------------------------------------------------------------------
    # Internals
    def _call_in_loop(self, fn: Callable[[], None]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            # not started; the next explicit round picks the change up
            logger.debug("Trigger ignored: scheduler is not running")
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            fn()
        else:
            loop.call_soon_threadsafe(fn)

    def _spawn_explicit(self) -> None:
        task = self._loop.create_task(self.sync_now())
        task.add_done_callback(_consume_result)

    def _restart_debounce(self) -> None:
        if self._debounce is not None and not self._debounce.done():
            self._debounce.cancel()
        self._debounce = self._loop.create_task(self._debounced())

    async def _debounced(self) -> None:
        await self._sleep(self.push_delay_sec)
        self._debounce = None
        try:
            await self.sync_now()
        except SyncError:
            # recorded and reported by _round
            return

    async def _periodic_loop(self) -> None:
        while True:
            await self._sleep(self.interval_sec)
            try:
                await self.trigger_background()
            except Exception:
                logger.exception("Periodic sync crashed")

    async def _after(self, previous: asyncio.Future) -> SyncSummary:
        await asyncio.wait([previous])
        self._pending = None
        self._current = asyncio.current_task()
        return await self._round()

    async def _round(self) -> SyncSummary:
        self.status = "syncing"
        try:
            summary = await self._execute(self.service.run)
        except Exception as exc:
            self.status = "error"
            self.last_error = exc
            if isinstance(exc, SyncError):
                logger.warning("Sync round failed: %s", exc)
            else:
                logger.exception("Sync round crashed")
            self._notify(None, exc)
            raise
        self.status = "synced"
        self.last_summary = summary
        self.last_error = None
        self.last_synced_at = _utcnow()
        self._notify(summary, None)
        return summary


def _consume_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None and not isinstance(exc, SyncError):
        logger.error("Explicit sync crashed: %s", exc)


__all__ = ["SyncScheduler"]
