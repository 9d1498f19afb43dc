"""Booking state machine and request validation."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from ..core.exceptions import InvalidBookingStateError, NotFoundError, ValidationError
from ..models.booking import Booking, BookingMode, BookingStatus, Property
from ..models.room import Room
from .reference import validate_reference_id


# draft -> hold -> {complete, canceled}; complete -> {canceled, refunded}
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.DRAFT: frozenset({BookingStatus.HOLD}),
    BookingStatus.HOLD: frozenset({BookingStatus.COMPLETE, BookingStatus.CANCELED}),
    BookingStatus.COMPLETE: frozenset({BookingStatus.CANCELED, BookingStatus.REFUNDED}),
    BookingStatus.CANCELED: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(current: BookingStatus | str, target: BookingStatus | str) -> bool:
    return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]


def ensure_transition(booking: Booking, target: BookingStatus) -> None:
    """Raise InvalidBookingStateError unless ``booking`` may move to ``target``."""
    if not can_transition(booking.status, target):
        raise InvalidBookingStateError(
            booking_id=str(booking.id),
            current_status=BookingStatus(booking.status).value,
            target_status=BookingStatus(target).value,
        )


@dataclass(frozen=True)
class GuestDetails:
    first_name: str
    last_name: str
    is_child: bool = False
    is_booking_user: bool = False


class BookingValidator:
    """Checks a booking request before any inventory is locked."""

    def validate_stay(self, checkin: date, checkout: date) -> None:
        if checkout <= checkin:
            raise ValidationError(
                detail="checkout_date must be after checkin_date",
                errors={"checkin_date": checkin.isoformat(), "checkout_date": checkout.isoformat()},
            )

    def validate_guests(
        self,
        guests_count: int,
        children_count: int = 0,
        guests: Sequence[GuestDetails] | None = None,
    ) -> None:
        if guests_count < 1:
            raise ValidationError(detail="guests_count must be at least 1", errors={"guests_count": guests_count})
        if children_count < 0 or children_count > guests_count:
            raise ValidationError(
                detail="children_count must be between 0 and guests_count",
                errors={"children_count": children_count, "guests_count": guests_count},
            )
        if guests:
            if len(guests) != guests_count:
                raise ValidationError(
                    detail="Number of guest entries must match guests_count",
                    errors={"guests": len(guests), "guests_count": guests_count},
                )
            if sum(1 for guest in guests if guest.is_child) != children_count:
                raise ValidationError(detail="Child guest entries must match children_count")
            if sum(1 for guest in guests if guest.is_booking_user) > 1:
                raise ValidationError(detail="Only one guest may be marked as the booking user")

    def validate_mode(self, mode: BookingMode, room_ids: Sequence[UUID]) -> None:
        """Room mode requires rooms; the other modes must not carry any."""
        if BookingMode(mode) is BookingMode.ROOM:
            if not room_ids:
                raise ValidationError(detail="Room bookings require at least one room")
            if len(set(room_ids)) != len(room_ids):
                raise ValidationError(detail="Room ids must be unique")
        elif room_ids:
            raise ValidationError(detail=f"{BookingMode(mode).value} bookings cannot reference rooms")

    def validate_rooms(self, room_ids: Sequence[UUID], rooms: Sequence[Room], guests_count: int) -> Property:
        """
        Check requested rooms exist, are active, share one property, and fit the party.

        Returns:
            The property all rooms belong to
        """
        found = {room.id: room for room in rooms}
        missing = [room_id for room_id in room_ids if room_id not in found]
        if missing:
            raise NotFoundError(resource_type="room", resource_id=str(missing[0]))

        inactive = [room for room in rooms if not room.is_active]
        if inactive:
            raise ValidationError(detail=f"Room {inactive[0].name} is not available for booking")

        properties = {Property(room.property) for room in rooms}
        if len(properties) != 1:
            raise ValidationError(detail="All rooms in a booking must belong to the same property")

        capacity = sum(room.capacity_max for room in rooms)
        if guests_count > capacity:
            raise ValidationError(
                detail=f"{guests_count} guests exceed the selected rooms' capacity of {capacity}",
                errors={"guests_count": guests_count, "rooms_capacity": capacity},
            )

        return properties.pop()

    def validate_reference(self, reference_id: str | None) -> None:
        """A caller-supplied reference must be well formed; None means one is generated."""
        if reference_id is None:
            return
        valid, reason = validate_reference_id(reference_id)
        if not valid:
            raise ValidationError(
                detail=f"Invalid reference_id: {reason}",
                errors={"reference_id": reference_id},
            )
