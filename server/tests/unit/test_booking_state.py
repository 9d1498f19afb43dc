"""Tests for the booking state machine and request validation."""

from datetime import date
from types import SimpleNamespace
from uuid import uuid4

import pytest

from cabin_booking.core.exceptions import InvalidBookingStateError, NotFoundError, ValidationError
from cabin_booking.models import BookingMode, BookingStatus, Property, Room
from cabin_booking.services.booking_state import (
    TERMINAL_STATUSES,
    BookingValidator,
    GuestDetails,
    can_transition,
    ensure_transition,
)


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (BookingStatus.DRAFT, BookingStatus.HOLD, True),
        (BookingStatus.HOLD, BookingStatus.COMPLETE, True),
        (BookingStatus.HOLD, BookingStatus.CANCELED, True),
        (BookingStatus.COMPLETE, BookingStatus.CANCELED, True),
        (BookingStatus.COMPLETE, BookingStatus.REFUNDED, True),
        (BookingStatus.DRAFT, BookingStatus.COMPLETE, False),
        (BookingStatus.HOLD, BookingStatus.REFUNDED, False),
        (BookingStatus.CANCELED, BookingStatus.HOLD, False),
        (BookingStatus.REFUNDED, BookingStatus.CANCELED, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_statuses_loaded_as_strings_are_accepted():
    assert can_transition("hold", "complete")


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {BookingStatus.CANCELED, BookingStatus.REFUNDED}


def test_ensure_transition_reports_both_states():
    booking = SimpleNamespace(id=uuid4(), status="canceled")

    with pytest.raises(InvalidBookingStateError) as exc_info:
        ensure_transition(booking, BookingStatus.COMPLETE)

    details = exc_info.value.problem_details
    assert details["current_status"] == "canceled"
    assert details["target_status"] == "complete"
    assert exc_info.value.status_code == 409


class TestBookingValidator:
    """Request checks applied before any lock is taken."""

    validator = BookingValidator()

    def test_checkout_must_follow_checkin(self):
        with pytest.raises(ValidationError):
            self.validator.validate_stay(date(2030, 1, 2), date(2030, 1, 2))
        self.validator.validate_stay(date(2030, 1, 2), date(2030, 1, 3))

    def test_guest_counts(self):
        with pytest.raises(ValidationError):
            self.validator.validate_guests(0)
        with pytest.raises(ValidationError):
            self.validator.validate_guests(2, children_count=3)
        self.validator.validate_guests(2, children_count=2)

    def test_guest_entries(self):
        with pytest.raises(ValidationError):
            self.validator.validate_guests(2, 0, [GuestDetails("Ada", "L")])
        with pytest.raises(ValidationError):
            self.validator.validate_guests(2, 0, [GuestDetails("Ada", "L"), GuestDetails("Tim", "L", is_child=True)])
        with pytest.raises(ValidationError):
            self.validator.validate_guests(
                2, 0, [GuestDetails("Ada", "L", is_booking_user=True), GuestDetails("Tim", "L", is_booking_user=True)]
            )
        self.validator.validate_guests(2, 1, [GuestDetails("Ada", "L"), GuestDetails("Tim", "L", is_child=True)])

    def test_mode_and_rooms(self):
        room_id = uuid4()
        with pytest.raises(ValidationError):
            self.validator.validate_mode(BookingMode.ROOM, [])
        with pytest.raises(ValidationError):
            self.validator.validate_mode(BookingMode.ROOM, [room_id, room_id])
        with pytest.raises(ValidationError):
            self.validator.validate_mode(BookingMode.BUYOUT, [room_id])
        self.validator.validate_mode(BookingMode.PER_GUEST, [])

    def test_rooms_resolve_to_one_property(self):
        first = Room(id=uuid4(), property="tahoe", name="A", capacity_max=2, is_active=True)
        second = Room(id=uuid4(), property="tahoe", name="B", capacity_max=3, is_active=True)

        assert self.validator.validate_rooms([first.id, second.id], [first, second], 5) is Property.TAHOE

        with pytest.raises(ValidationError):
            self.validator.validate_rooms([first.id, second.id], [first, second], 6)
        with pytest.raises(NotFoundError):
            self.validator.validate_rooms([first.id, uuid4()], [first], 1)

    def test_inactive_room_is_rejected(self):
        room = Room(id=uuid4(), property="clear_lake", name="Closed", capacity_max=2, is_active=False)
        with pytest.raises(ValidationError):
            self.validator.validate_rooms([room.id], [room], 1)
