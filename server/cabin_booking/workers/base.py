"""Base worker class for periodic background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Runs ``process`` every ``interval_seconds`` until stopped.

    An iteration that raises is logged and the loop carries on at the next
    interval; only cancellation ends the loop.
    """

    def __init__(self, name: str, interval_seconds: int = 60):
        self.name = name
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the background task."""

    async def start(self) -> None:
        if self._running:
            logger.warning("Worker already running", extra={"worker": self.name})
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"worker:{self.name}")
        logger.info(
            "Worker started",
            extra={"worker": self.name, "interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Worker stopped", extra={"worker": self.name})

    async def _run(self) -> None:
        while self._running:
            started = time.monotonic()
            try:
                await self.process()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Worker iteration failed",
                    exc_info=True,
                    extra={"worker": self.name, "error": str(e)}
                )

            duration = time.monotonic() - started
            logger.debug(
                "Worker iteration completed",
                extra={"worker": self.name, "duration_seconds": round(duration, 3)}
            )
            await asyncio.sleep(max(0.0, self.interval_seconds - duration))
