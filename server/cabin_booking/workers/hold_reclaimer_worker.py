"""Background worker that sweeps expired holds."""

import logging
from typing import Optional

from ..core.config import settings
from ..services.hold_reclaimer import HoldReclaimer, ReclaimResult
from .base import BaseWorker

logger = logging.getLogger(__name__)


class HoldReclaimerWorker(BaseWorker):
    """Runs the hold reclaimer on a fixed interval."""

    def __init__(self, reclaimer: Optional[HoldReclaimer] = None, interval_seconds: Optional[int] = None):
        super().__init__(
            name="hold_reclaimer",
            interval_seconds=interval_seconds or settings.hold_reclaimer_interval_seconds,
        )
        self.reclaimer = reclaimer or HoldReclaimer()
        self.last_result: Optional[ReclaimResult] = None

    async def process(self) -> None:
        self.last_result = await self.reclaimer.reclaim()
        if self.last_result.failed:
            logger.warning(
                "Some expired holds could not be released",
                extra={
                    "worker": self.name,
                    "failed_booking_ids": [str(booking_id) for booking_id in self.last_result.failed],
                }
            )
