"""Background workers for the booking engine."""

from .hold_reclaimer_worker import HoldReclaimerWorker

__all__ = ["HoldReclaimerWorker"]
