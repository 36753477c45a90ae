"""Periodic jobs on the running asyncio loop, backed by APScheduler.

Used for the batch flush and the abandoned-request sweep. Jobs run on the
application's event loop, so they share the single-threaded view of the
registry and buffer with request handling.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Coroutine[Any, Any, Any]]


class TrackScheduler:
    """Wraps APScheduler v3's AsyncIOScheduler so callers never touch its internals."""

    def __init__(self) -> None:
        self._scheduler = AsyncIOScheduler()
        self._jobs: dict[str, str] = {}  # our_id → apscheduler_job_id
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def job_ids(self) -> list[str]:
        return list(self._jobs.keys())

    def add_heartbeat(
        self,
        name: str,
        interval_seconds: float,
        callback: AsyncCallback,
    ) -> str:
        """Register a periodic job.

        Args:
            name: Human-readable name (e.g. "batch_flush").
            interval_seconds: Seconds between invocations. Must be > 0.
            callback: Async function to invoke on each tick.

        Returns:
            The schedule ID.

        Raises:
            ValueError: If name is already registered or interval is invalid.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        schedule_id = f"heartbeat:{name}"
        if schedule_id in self._jobs:
            raise ValueError(f"schedule '{schedule_id}' already registered")

        job = self._scheduler.add_job(
            self._safe_invoke(callback, schedule_id),
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=schedule_id,
            name=f"heartbeat-{name}",
            replace_existing=False,
            max_instances=1,
            coalesce=True,
        )
        self._jobs[schedule_id] = job.id
        logger.info("Registered heartbeat: %s (every %.3fs)", schedule_id, interval_seconds)
        return schedule_id

    def start(self) -> None:
        """Start the scheduler. Must be called with an event loop running. Idempotent."""
        if self._running:
            return
        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started with %d jobs", len(self._jobs))

    def stop(self) -> None:
        """Stop the scheduler and drop all jobs. Idempotent.

        A fresh APScheduler instance replaces the stopped one, so the same
        names can be registered again and it binds to whichever loop is
        running at the next :meth:`start`.
        """
        if not self._running:
            return
        self._scheduler.remove_all_jobs()
        self._scheduler.shutdown(wait=False)
        self._scheduler = AsyncIOScheduler()
        self._jobs.clear()
        self._running = False
        logger.info("Scheduler stopped")

    def _safe_invoke(self, callback: AsyncCallback, schedule_id: str) -> AsyncCallback:
        async def _wrapper() -> None:
            try:
                await callback()
            except Exception:
                logger.exception("Schedule %s callback failed", schedule_id)

        return _wrapper


__all__ = ["AsyncCallback", "TrackScheduler"]
