from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from voyagevault.logging import get_logger
from voyagevault.storage.common import AccountStore

logger = get_logger(__name__)


class CleanupScheduler:
    """Periodically deletes unverified accounts older than ``max_age``.

    Runs are serialized with an asyncio lock; a failed run is logged and the
    loop waits for the next interval.
    """

    def __init__(
        self,
        store: AccountStore,
        *,
        max_age: timedelta = timedelta(hours=24),
        interval: timedelta = timedelta(hours=24),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.max_age = max_age
        self.interval = interval
        self._clock = clock
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    def _now(self) -> datetime:
        return self._clock() if self._clock else datetime.now(timezone.utc)

    def sweep(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or self._now()) - self.max_age
        deleted = self.store.delete_stale_unverified(cutoff)
        logger.info("cleanup_sweep_completed", deleted=len(deleted), cutoff=cutoff.isoformat())
        return len(deleted)

    async def run_once(self) -> Optional[int]:
        async with self._lock:
            try:
                return await asyncio.to_thread(self.sweep)
            except Exception as exc:
                logger.error(
                    "cleanup_sweep_failed", error_type=type(exc).__name__, error=str(exc)
                )
                return None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("cleanup_scheduler_started", interval_seconds=self.interval.total_seconds())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _loop(self) -> None:
        try:
            while True:
                await self.run_once()
                await asyncio.sleep(self.interval.total_seconds())
        except asyncio.CancelledError:
            logger.info("cleanup_task_cancelled")
            raise
