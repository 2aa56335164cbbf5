import asyncio
import time
from typing import Callable, Optional

from constants import ROOM_RETENTION_SECONDS, SWEEP_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class LifecycleSweeper:
    """Deletes rooms that nobody touched within the retention window.

    Ticks on wall-clock boundaries of the interval (top of every hour by
    default). A failed sweep is only logged: the next tick evaluates the same
    cutoff again, so nothing is lost by skipping one.
    """

    def __init__(self, store, retention_seconds: int = ROOM_RETENTION_SECONDS,
                 interval_seconds: int = SWEEP_INTERVAL_SECONDS, clock: Callable[[], float] = time.time):
        self.store = store
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    def seconds_until_next_tick(self) -> float:
        return self.interval_seconds - (self._clock() % self.interval_seconds)

    async def run_once(self) -> int:
        logger.info("Running cleanup job...")
        try:
            deleted = await self.store.sweep_expired(self.retention_seconds)
        except Exception as e:
            logger.error(f"Cleanup job failed, will retry on next tick: {e}", exc_info=True)
            return 0
        logger.info(f"Cleanup job deleted {deleted} idle rooms")
        return deleted

    async def _run(self):
        try:
            while True:
                await asyncio.sleep(self.seconds_until_next_tick())
                await self.run_once()
        except asyncio.CancelledError:
            logger.info("Lifecycle sweeper cancelled")
            raise

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.info(f"Lifecycle sweeper started (every {self.interval_seconds}s, retention {self.retention_seconds}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
