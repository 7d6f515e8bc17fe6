from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from services.rating_service import TranscriptRatingMachine


logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Periodically deletes expired transcript ratings."""

    def __init__(
        self,
        ratings: TranscriptRatingMachine,
        interval_seconds: float = 3600,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.ratings = ratings
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        return await self.ratings.cleanup_expired()

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Expiry sweep failed; next run in %ss", self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Expiry sweeper started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
