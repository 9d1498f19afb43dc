"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.booking import BookingMode, BookingStatus, Property
from .common import Money


class GuestEntry(BaseModel):
    """Guest travelling on a booking."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    is_child: bool = Field(False, description="Guest is a child")
    is_booking_user: bool = Field(False, description="Guest is the user making the booking")


class StayRequest(BaseModel):
    """Fields shared by every hold request."""

    checkin_date: date = Field(..., description="First night of the stay")
    checkout_date: date = Field(..., description="Departure day; not a booked night")
    guests_count: int = Field(..., ge=1, description="Number of guests, children included")
    children_count: int = Field(0, ge=0, description="Number of children")
    guests: list[GuestEntry] = Field(default_factory=list, description="Optional guest details")
    reference_id: Optional[str] = Field(None, max_length=32, description="Reference to use instead of a generated one")

    @model_validator(mode="after")
    def check_dates(self):
        if self.checkout_date <= self.checkin_date:
            raise ValueError("checkout_date must be after checkin_date")
        return self


class CreateRoomHoldRequest(StayRequest):
    """Request schema for holding specific rooms."""

    room_ids: list[UUID] = Field(..., min_length=1, description="Rooms to hold")


class CreatePropertyHoldRequest(StayRequest):
    """Request schema for per-guest and buyout holds."""

    property: Property = Field(..., description="Property to book")


class BookingIdRequest(BaseModel):
    """Request schema addressing one booking."""

    booking_id: UUID = Field(..., description="Booking ID")


class ReleaseHoldRequest(BookingIdRequest):
    reason: str = Field("released", max_length=255, description="Why the hold is released")


class CancelBookingRequest(BookingIdRequest):
    """Request schema for cancelling a booking."""

    reason: str = Field(..., min_length=1, max_length=1000, description="Cancellation reason")


class BookingResponse(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    reference_id: str = Field(..., description="Human-facing booking reference")
    user_id: str = Field(..., description="Owning user")
    property: Property
    booking_mode: BookingMode
    status: BookingStatus
    checkin_date: date
    checkout_date: date
    guests_count: int
    children_count: int
    total_price: Optional[Money] = Field(None, description="Total price, when priced")
    hold_expires_at: Optional[datetime] = Field(None, description="Hold expiry (UTC), only while held")
    checked_in: bool = False
    room_ids: list[str] = Field(default_factory=list)
    guests: list[GuestEntry] = Field(default_factory=list)


class CancellationResponse(BaseModel):
    """Outcome of a cancellation."""

    booking: BookingResponse
    refund: Money = Field(..., description="Refund amount decided for this cancellation")
    requires_review: bool = Field(..., description="Refund waits for administrative approval")
    pending_refund_id: Optional[str] = None
    refund_id: Optional[str] = None
    applied_rule_days_before_checkin: Optional[int] = None
    days_before_checkin: Optional[int] = None
