"""Interfaces to the systems the booking engine calls but does not own."""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Protocol
from uuid import UUID

from ..core.observability import get_logger
from ..models.booking import Booking, BookingMode, Property

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentRecord:
    """Captured payment backing a booking. Amounts are in minor units."""
    payment_id: str
    amount: int
    currency: str = "USD"


@dataclass(frozen=True)
class RefundReceipt:
    refund_id: str
    payment_id: str
    amount: int


class PaymentGatewayError(Exception):
    """Raised by a payment gateway when a refund cannot be executed."""


class PaymentGateway(Protocol):
    """Payment processor facade used for cancellations."""

    async def lookup_payment(self, booking: Booking) -> Optional[PaymentRecord]:
        ...

    async def refund(self, payment_id: str, amount: int, reason: str) -> RefundReceipt:
        ...


class UnconfiguredPaymentGateway:
    """Gateway used when no payment integration is wired in: no payment is ever found."""

    async def lookup_payment(self, booking: Booking) -> Optional[PaymentRecord]:
        logger.warning(
            "No payment gateway configured, payment lookup returned nothing",
            extra={"booking_id": str(booking.id)}
        )
        return None

    async def refund(self, payment_id: str, amount: int, reason: str) -> RefundReceipt:
        raise PaymentGatewayError("No payment gateway configured")


class PriceLookup(Protocol):
    """Unit price source. Returns minor units, or None when no price is known."""

    async def get_price(
        self,
        property_name: Property,
        day: date,
        mode: BookingMode,
        room_id: Optional[UUID] = None,
    ) -> Optional[int]:
        ...


class NightlyRatePriceLookup:
    """
    Flat nightly rates keyed by (property, mode), with optional per-room overrides.

    Season and category rules live with the pricing collaborator; this lookup
    is the simplest source of truth the engine can run against.
    """

    def __init__(
        self,
        rates: Optional[dict[tuple[str, str], int]] = None,
        room_rates: Optional[dict[UUID, int]] = None,
    ):
        self.rates = {
            (Property(p).value, BookingMode(m).value): amount for (p, m), amount in (rates or {}).items()
        }
        self.room_rates = dict(room_rates or {})

    async def get_price(
        self,
        property_name: Property,
        day: date,
        mode: BookingMode,
        room_id: Optional[UUID] = None,
    ) -> Optional[int]:
        if room_id is not None and room_id in self.room_rates:
            return self.room_rates[room_id]
        return self.rates.get((Property(property_name).value, BookingMode(mode).value))


@dataclass(frozen=True)
class RefundRule:
    """Refund percentage for cancellations at most ``days_before_checkin`` days out."""
    days_before_checkin: int
    refund_percentage: Decimal


@dataclass(frozen=True)
class RefundPolicySnapshot:
    policy_id: UUID
    property: str
    booking_mode: str
    rules: tuple[RefundRule, ...] = field(default_factory=tuple)


class RefundPolicyLookup(Protocol):
    async def get_active_policy(
        self, property_name: Property, mode: BookingMode
    ) -> Optional[RefundPolicySnapshot]:
        ...


class EventPublisher(Protocol):
    """Fire-and-forget sink for booking lifecycle events."""

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        ...


class LoggingEventPublisher:
    """Writes events to the structured log for downstream shippers to pick up."""

    def __init__(self):
        self.logger = get_logger("cabin_booking.events")

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        self.logger.info(event, **payload)


async def publish_event(publisher: EventPublisher, event: str, payload: dict[str, Any]) -> None:
    """Publish an event, logging and swallowing publisher failures."""
    try:
        await publisher.publish(event, payload)
    except Exception as e:
        logger.error(
            "Event publication failed",
            extra={"event": event, "error": str(e)},
            exc_info=True
        )


def booking_event_payload(booking: Booking, **extra: Any) -> dict[str, Any]:
    """Common payload for booking lifecycle events."""
    payload = {
        "booking_id": str(booking.id),
        "reference_id": booking.reference_id,
        "user_id": booking.user_id,
        "property": Property(booking.property).value,
        "booking_mode": BookingMode(booking.booking_mode).value,
        "checkin_date": booking.checkin_date.isoformat(),
        "checkout_date": booking.checkout_date.isoformat(),
        "status": str(getattr(booking.status, "value", booking.status)),
    }
    payload.update(extra)
    return payload
