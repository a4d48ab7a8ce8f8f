"""
tourneykeeper/scheduler.py - Run reconciliation passes on a fixed interval.

At most one write series is ever in flight. Timer ticks, on-demand passes and
admin operations share the same guard; anything that arrives while the guard
is held is skipped rather than queued. stop() only prevents future passes: a
pass already running (and any transaction it has submitted) is allowed to
finish.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .reconcile import PassSummary

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5 * 60


class Scheduler:
    """Periodic driver for a Reconciler.

    Args:
        reconciler: Object with an async run_once() -> PassSummary.
        interval_seconds: Delay between the end of one pass and the start of
            the next.
    """

    def __init__(self, reconciler, interval_seconds: float = DEFAULT_INTERVAL_SECONDS):
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._pass_lock = asyncio.Lock()
        # Loops stopped while their last pass was still running
        self._draining: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        """Started, not stopped, and the loop task is alive."""
        return (
            self._stop_event is not None
            and not self._stop_event.is_set()
            and self._task is not None
            and not self._task.done()
        )

    @property
    def busy(self) -> bool:
        return self._pass_lock.locked()

    def start(self) -> None:
        """Run a pass now and then every interval. No-op if already started."""
        if self.running:
            return
        if self._task is not None and not self._task.done():
            self._draining.add(self._task)
            self._task.add_done_callback(self._draining.discard)

        logger.info(f"Starting tournament scheduler (interval: {self.interval_seconds}s)")
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop(self._stop_event))

    def stop(self) -> None:
        """Stop scheduling new passes. Idempotent."""
        if self._stop_event is None or self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.info("Tournament scheduler stopped")

    async def wait_stopped(self) -> None:
        """Wait for the loop (and any in-flight pass) to finish after stop()."""
        tasks = list(self._draining)
        if self._task is not None:
            tasks.append(self._task)
        if tasks:
            await asyncio.gather(*tasks)
        self._task = None

    async def run_exclusive(
        self, operation: Callable[..., Awaitable[Any]], *args
    ) -> Any | None:
        """Run operation(*args) under the pass guard.

        Returns None without running anything if a pass or another exclusive
        operation is already in flight.
        """
        if self._pass_lock.locked():
            logger.info("Reconciliation pass already in flight, skipping")
            return None
        async with self._pass_lock:
            return await operation(*args)

    async def trigger(self) -> PassSummary | None:
        """Run one pass now. Returns None if a pass is already in flight."""
        return await self.run_exclusive(self.reconciler.run_once)

    async def _loop(self, stop_event: asyncio.Event) -> None:
        # The first pass always runs, even if stop() lands before this task does
        while True:
            try:
                await self.trigger()
            except Exception as e:
                logger.exception(f"Error running tournament reconciliation: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                return
            except asyncio.TimeoutError:
                pass
