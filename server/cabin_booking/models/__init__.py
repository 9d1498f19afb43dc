"""Models module exporting all database models."""

from .booking import Booking, BookingGuest, BookingMode, BookingStatus, Property, booking_rooms
from .inventory import PropertyInventory, RoomInventory
from .refund import PendingRefund, PendingRefundStatus, RefundPolicy, RefundPolicyRule
from .room import Room

__all__ = [
    # Booking entities
    "Booking",
    "BookingGuest",
    "BookingMode",
    "BookingStatus",
    "Property",
    "booking_rooms",

    # Resources and inventory
    "Room",
    "RoomInventory",
    "PropertyInventory",

    # Refunds
    "RefundPolicy",
    "RefundPolicyRule",
    "PendingRefund",
    "PendingRefundStatus",
]
