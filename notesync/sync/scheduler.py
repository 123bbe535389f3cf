"""Periodic sync scheduling.

The scheduler owns a cancellable asyncio task that calls the engine on a
fixed interval. Runs never overlap: a tick that arrives while a run is still
in flight is skipped, and explicit force syncs wait for it to finish.
"""

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Optional

from notesync.sync.local_store import DOCUMENTS
from notesync.sync.models import SyncOutcome, utcnow
from notesync.sync.sync_strategy import SyncStrategy

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Run a sync strategy on a timer.

    Usage:
        scheduler = SyncScheduler(create_sync_engine(config, store))
        scheduler.start()
        ...
        await scheduler.close()
    """

    def __init__(self, engine: SyncStrategy, interval_seconds: float | None = None):
        """Initialize scheduler.

        Args:
            engine: Sync engine (or NoOpSync)
            interval_seconds: Seconds between runs (default: engine config)
        """
        self.engine = engine
        self.interval = interval_seconds or engine.config.interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._current_run: Optional[asyncio.Task] = None
        self._run_lock = asyncio.Lock()
        self.last_run_at: datetime | None = None
        self.last_outcomes: list[SyncOutcome] = []

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def run_in_progress(self) -> bool:
        return self._run_lock.locked()

    def start(self, run_immediately: bool = False) -> None:
        """Start the timer. Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(
            self._loop(run_immediately), name="notesync-scheduler"
        )
        logger.debug(f"Sync scheduler started (every {self.interval}s)")

    async def stop(self) -> None:
        """Cancel the timer. A run already in flight is left to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.debug("Sync scheduler stopped")

    async def _loop(self, run_immediately: bool) -> None:
        if run_immediately:
            await self._timed_run()
        while True:
            await asyncio.sleep(self.interval)
            await self._timed_run()

    async def _timed_run(self) -> None:
        # Shielded so that stop() cancels the timer, not the run
        self._current_run = asyncio.create_task(self.run_once())
        await asyncio.shield(self._current_run)

    async def wait_for_run(self) -> None:
        """Wait for a timer-started run that outlived stop() to finish."""
        run = self._current_run
        if run is not None and not run.done():
            await run

    async def close(self) -> None:
        """Stop the timer, let the run in flight finish, then close the engine."""
        await self.stop()
        await self.wait_for_run()
        async with self._run_lock:
            await self.engine.close()

    async def run_once(self) -> list[SyncOutcome]:
        """Run one sync pass unless one is already in progress."""
        if self._run_lock.locked():
            logger.info("Sync run already in progress, skipping this tick")
            return []

        async with self._run_lock:
            try:
                outcomes = await self.engine.run()
            except Exception as e:
                logger.error(f"Sync run failed: {e}")
                outcomes = []
            self.last_run_at = utcnow()
            self.last_outcomes = outcomes
            return outcomes

    async def force_sync(
        self, document_id: str, collection: str = DOCUMENTS
    ) -> Optional[SyncOutcome]:
        """Sync one document now, after any run in flight completes."""
        async with self._run_lock:
            return await self.engine.force_sync(document_id, collection)

    async def replace_engine(self, engine: SyncStrategy) -> None:
        """Swap in an engine built from new configuration.

        The old engine is retired at once, so results of its in-flight calls
        are discarded, and closed once its run has finished.
        """
        old = self.engine
        old.retire()
        self.engine = engine
        self.interval = engine.config.interval_seconds or self.interval
        async with self._run_lock:
            await old.close()
