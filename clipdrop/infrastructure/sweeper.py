from __future__ import annotations

import asyncio

from loguru import logger

from clipdrop.infrastructure.storage import VideoStorage


class FileSweeper:
    """
    Last-resort leak guard: periodically removes stale artifacts,
    independent of delivery tracking.
    """

    def __init__(self, *, storage: VideoStorage, interval_sec: float, max_age_sec: float) -> None:
        self._storage = storage
        self._interval = interval_sec
        self._max_age = max_age_sec
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop(), name="file-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    def sweep_once(self) -> int:
        return len(self._storage.delete_older_than(self._max_age))

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                removed = self.sweep_once()
            except Exception:
                logger.exception("sweep failed")
                continue
            if removed:
                logger.info("sweep removed {} stale file(s)", removed)
