"""Hold reclaimer: cancels holds whose TTL has passed and frees their inventory."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import InvalidBookingStateError, ProblemDetailsException
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from .booking_locker import BookingLocker
from .collaborators import EventPublisher, booking_event_payload, publish_event

logger = logging.getLogger(__name__)


@dataclass
class ReclaimResult:
    expired: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)

    @property
    def expired_count(self) -> int:
        return len(self.expired)


class HoldReclaimer:
    """
    Finds expired holds and releases each one in its own transaction.

    A hold whose release fails is left out of sweeps for ``retry_after`` so a
    batch of persistently failing holds cannot crowd out newer expirations.
    """

    def __init__(
        self,
        locker: Optional[BookingLocker] = None,
        event_publisher: Optional[EventPublisher] = None,
        batch_size: Optional[int] = None,
        retry_after: Optional[timedelta] = None,
    ):
        self.locker = locker or BookingLocker()
        self.events = event_publisher or self.locker.events
        self.batch_size = batch_size or settings.hold_reclaimer_batch_size
        self.retry_after = (
            retry_after if retry_after is not None
            else timedelta(seconds=settings.hold_reclaimer_retry_after_seconds)
        )
        self._failed_at: dict[UUID, datetime] = {}

    def _backing_off(self, now: datetime) -> list[UUID]:
        self._failed_at = {
            booking_id: failed_at
            for booking_id, failed_at in self._failed_at.items()
            if now - failed_at < self.retry_after
        }
        return list(self._failed_at)

    async def find_expired_holds(self, now: datetime) -> list[UUID]:
        stmt = (
            select(Booking.id)
            .where(
                Booking.status == BookingStatus.HOLD.value,
                Booking.hold_expires_at < now,
            )
            .order_by(Booking.hold_expires_at)
            .limit(self.batch_size)
        )
        backing_off = self._backing_off(now)
        if backing_off:
            stmt = stmt.where(Booking.id.notin_(backing_off))

        async with self.locker.session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars())

    async def reclaim(self, now: Optional[datetime] = None) -> ReclaimResult:
        """
        Release every hold that expired before ``now``.

        A failure on one booking is logged and does not stop the sweep. A
        summary event is published for every sweep, including empty ones.
        """
        now = now or utcnow()
        outcome = ReclaimResult()

        for booking_id in await self.find_expired_holds(now):
            try:
                booking = await self.locker.release_hold(booking_id, reason="expired")
            except InvalidBookingStateError as e:
                # Confirmed or released since the query ran
                outcome.skipped.append(booking_id)
                self._failed_at.pop(booking_id, None)
                logger.info(
                    "Expired hold changed state before release, skipping",
                    extra={"booking_id": str(booking_id), "status": e.problem_details.get("current_status")}
                )
                continue
            except (ProblemDetailsException, SQLAlchemyError) as e:
                outcome.failed.append(booking_id)
                self._failed_at[booking_id] = now
                logger.error(
                    "Failed to release expired hold",
                    extra={"booking_id": str(booking_id), "error": str(e)},
                    exc_info=True
                )
                continue

            outcome.expired.append(booking_id)
            self._failed_at.pop(booking_id, None)
            metrics_collector.record_hold_expired()
            await publish_event(self.events, "booking.hold_expired", booking_event_payload(booking))

        summary = {
            "expired_count": outcome.expired_count,
            "skipped_count": len(outcome.skipped),
            "failed_count": len(outcome.failed),
            "swept_at": now.isoformat(),
        }
        log = logger.info if outcome.expired or outcome.failed else logger.debug
        log("Hold expiry sweep completed", extra=summary)
        await publish_event(self.events, "booking.hold_expiry_batch", summary)
        return outcome
