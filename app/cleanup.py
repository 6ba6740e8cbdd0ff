"""Background task that drops abandoned, never-completed uploads."""

import asyncio
import logging
from typing import Optional

from app.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


class StagingJanitor:
    """
    Periodically evicts staging entries that stopped receiving chunks.
    """

    def __init__(self, store: ChunkStore, max_age_seconds: float, interval_seconds: float):
        self.store = store
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            logger.warning("Staging cleanup task already running")
            return

        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Started staging cleanup task (interval: {self.interval_seconds}s, "
            f"max age: {self.max_age_seconds}s)"
        )

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped staging cleanup task")

    async def sweep(self) -> list:
        return await self.store.evict_expired(self.max_age_seconds)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error in staging cleanup task: {e}", exc_info=True)
