"""Cancellation and refund resolution for confirmed bookings."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from ..core.exceptions import NotFoundError, RefundFailedError
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingMode, BookingStatus, Property
from ..models.refund import PendingRefund, PendingRefundStatus
from .booking_locker import BookingLocker
from .booking_state import ensure_transition
from .collaborators import (
    EventPublisher,
    PaymentGateway,
    PaymentGatewayError,
    RefundPolicyLookup,
    RefundReceipt,
    RefundRule,
    booking_event_payload,
    publish_event,
)
from .refund_policy import compute_refund_amount, select_refund_rule

logger = logging.getLogger(__name__)


@dataclass
class CancellationOutcome:
    booking: Booking
    refund_amount: int
    currency: str
    days_before_checkin: Optional[int] = None
    applied_rule: Optional[RefundRule] = None
    pending_refund: Optional[PendingRefund] = None
    refund_receipt: Optional[RefundReceipt] = None

    @property
    def requires_review(self) -> bool:
        return self.pending_refund is not None


class CancellationRefundResolver:
    """
    Cancels bookings and decides how the money goes back.

    The booking is always canceled first. A cancellation covered by a policy
    rule becomes a pending refund for administrative review, whatever the
    rule's percentage. A cancellation outside every rule is refunded in full
    straight away, unless it happens after checkin, in which case nothing is
    refunded.
    """

    def __init__(
        self,
        locker: BookingLocker,
        payments: PaymentGateway,
        policies: RefundPolicyLookup,
        event_publisher: Optional[EventPublisher] = None,
    ):
        self.locker = locker
        self.payments = payments
        self.policies = policies
        self.events = event_publisher or locker.events

    async def cancel_booking(
        self,
        booking: Booking | UUID,
        cancellation_date: date | datetime,
        reason: str,
    ) -> CancellationOutcome:
        """
        Cancel a booking and resolve its refund.

        Args:
            booking: Booking or booking id
            cancellation_date: When the guest canceled
            reason: Free-text cancellation reason

        Returns:
            CancellationOutcome describing the refund decision

        Raises:
            NotFoundError: Booking or its payment is missing
            InvalidBookingStateError: Booking is neither held nor confirmed
            RefundFailedError: The immediate refund was rejected by the payment collaborator
        """
        booking_id = booking.id if isinstance(booking, Booking) else booking
        if isinstance(cancellation_date, datetime):
            cancellation_date = cancellation_date.date()

        current = await self.locker.get_booking(booking_id)

        if BookingStatus(current.status) is BookingStatus.HOLD:
            # Nothing was paid for a hold
            released = await self.locker.release_hold(booking_id, reason=reason)
            return CancellationOutcome(
                booking=released,
                refund_amount=0,
                currency=released.total_price_currency,
            )

        ensure_transition(current, BookingStatus.CANCELED)
        canceled = await self.locker.cancel_complete_booking(booking_id, reason=reason)

        payment = await self.payments.lookup_payment(canceled)
        if payment is None:
            logger.error(
                "Canceled booking has no payment to refund",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(
                resource_type="payment",
                detail=f"No payment found for booking {booking_id}",
            )

        days_before = (canceled.checkin_date - cancellation_date).days
        policy = await self.policies.get_active_policy(
            Property(canceled.property), BookingMode(canceled.booking_mode)
        )
        rule = select_refund_rule(policy.rules if policy else (), days_before)

        if rule is not None:
            pending = await self._queue_for_review(canceled, payment.payment_id, payment.amount,
                                                   payment.currency, rule, reason)
            return CancellationOutcome(
                booking=canceled,
                refund_amount=pending.policy_refund_amount,
                currency=payment.currency,
                days_before_checkin=days_before,
                applied_rule=rule,
                pending_refund=pending,
            )

        amount = payment.amount if days_before >= 0 else 0
        receipt = None
        if amount > 0:
            receipt = await self._refund_now(canceled, payment.payment_id, amount, reason)

        logger.info(
            "Cancellation resolved without a policy rule",
            extra={
                "booking_id": str(booking_id),
                "days_before_checkin": days_before,
                "refund_amount": amount,
                "policy_id": str(policy.policy_id) if policy else None,
            }
        )
        return CancellationOutcome(
            booking=canceled,
            refund_amount=amount,
            currency=payment.currency,
            days_before_checkin=days_before,
            refund_receipt=receipt,
        )

    async def _queue_for_review(
        self,
        booking: Booking,
        payment_id: str,
        paid_amount: int,
        currency: str,
        rule: RefundRule,
        reason: str,
    ) -> PendingRefund:
        pending = PendingRefund(
            booking_id=booking.id,
            payment_id=payment_id,
            policy_refund_amount=compute_refund_amount(paid_amount, rule.refund_percentage),
            currency=currency,
            status=PendingRefundStatus.PENDING.value,
            applied_rule_days_before_checkin=rule.days_before_checkin,
            applied_rule_refund_percentage=rule.refund_percentage,
            cancellation_reason=reason,
        )
        async with self.locker.session_factory() as db:
            db.add(pending)
            await db.commit()

        metrics_collector.record_pending_refund()
        logger.info(
            "Pending refund created for review",
            extra={
                "booking_id": str(booking.id),
                "pending_refund_id": str(pending.id),
                "policy_refund_amount": pending.policy_refund_amount,
                "applied_rule_days_before_checkin": rule.days_before_checkin,
                "applied_rule_refund_percentage": str(rule.refund_percentage),
            }
        )
        await publish_event(self.events, "refund.pending_created", booking_event_payload(
            booking,
            pending_refund_id=str(pending.id),
            policy_refund_amount=pending.policy_refund_amount,
        ))
        return pending

    async def _refund_now(self, booking: Booking, payment_id: str, amount: int, reason: str) -> RefundReceipt:
        try:
            receipt = await self.payments.refund(payment_id, amount, reason)
        except PaymentGatewayError as e:
            logger.error(
                "Immediate refund failed",
                extra={"booking_id": str(booking.id), "payment_id": payment_id, "error": str(e)}
            )
            raise RefundFailedError(str(booking.id), payment_id, str(e)) from e

        metrics_collector.record_refund_issued()
        logger.info(
            "Refund issued",
            extra={"booking_id": str(booking.id), "refund_id": receipt.refund_id, "amount": amount}
        )
        await publish_event(self.events, "refund.issued", booking_event_payload(
            booking, refund_id=receipt.refund_id, amount=amount,
        ))
        return receipt
