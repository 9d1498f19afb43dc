"""Booking router: RPC-style endpoints over the booking locker."""

import logging

from fastapi import APIRouter

from ..core.clock import utcnow
from ..core.dependencies import (
    BookingLockerDependency,
    CurrentUser,
    RefundResolverDependency,
    RequiredAuth,
)
from ..core.exceptions import NotFoundError
from ..models.booking import Booking
from ..schemas.booking import (
    BookingIdRequest,
    BookingResponse,
    CancelBookingRequest,
    CancellationResponse,
    CreatePropertyHoldRequest,
    CreateRoomHoldRequest,
    GuestEntry,
    ReleaseHoldRequest,
)
from ..schemas.common import Money
from ..services.booking_locker import BookingLocker
from ..services.booking_state import GuestDetails
from ..services.refund_service import CancellationRefundResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])


def _convert_booking_to_schema(booking: Booking) -> BookingResponse:
    """Convert booking model to schema."""
    total_price = None
    if booking.total_price_amount is not None:
        total_price = Money(amount=booking.total_price_amount, currency=booking.total_price_currency)

    return BookingResponse(
        id=str(booking.id),
        reference_id=booking.reference_id,
        user_id=booking.user_id,
        property=booking.property,
        booking_mode=booking.booking_mode,
        status=booking.status,
        checkin_date=booking.checkin_date,
        checkout_date=booking.checkout_date,
        guests_count=booking.guests_count,
        children_count=booking.children_count,
        total_price=total_price,
        hold_expires_at=booking.hold_expires_at,
        checked_in=booking.checked_in,
        room_ids=[str(room_id) for room_id in booking.room_ids],
        guests=[
            GuestEntry(
                first_name=guest.first_name,
                last_name=guest.last_name,
                is_child=guest.is_child,
                is_booking_user=guest.is_booking_user,
            )
            for guest in booking.guests
        ],
    )


def _guest_details(entries: list[GuestEntry]) -> list[GuestDetails]:
    return [
        GuestDetails(
            first_name=entry.first_name,
            last_name=entry.last_name,
            is_child=entry.is_child,
            is_booking_user=entry.is_booking_user,
        )
        for entry in entries
    ]


async def _owned_booking(locker: BookingLocker, booking_id, user: CurrentUser) -> Booking:
    booking = await locker.get_booking(booking_id)
    if booking.user_id != user.user_id:
        # Do not reveal bookings owned by someone else
        raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
    return booking


@router.post("/room-hold", response_model=BookingResponse, status_code=201)
async def create_room_hold(
    request: CreateRoomHoldRequest,
    user: CurrentUser = RequiredAuth,
    locker: BookingLocker = BookingLockerDependency,
) -> BookingResponse:
    """Hold specific rooms for a stay."""
    booking = await locker.create_room_booking(
        user_id=user.user_id,
        room_ids=request.room_ids,
        checkin=request.checkin_date,
        checkout=request.checkout_date,
        guests_count=request.guests_count,
        children_count=request.children_count,
        guests=_guest_details(request.guests),
        reference_id=request.reference_id,
    )
    return _convert_booking_to_schema(booking)


@router.post("/per-guest-hold", response_model=BookingResponse, status_code=201)
async def create_per_guest_hold(
    request: CreatePropertyHoldRequest,
    user: CurrentUser = RequiredAuth,
    locker: BookingLocker = BookingLockerDependency,
) -> BookingResponse:
    """Hold shared per-guest capacity at a property."""
    booking = await locker.create_per_guest_booking(
        user_id=user.user_id,
        property_name=request.property,
        checkin=request.checkin_date,
        checkout=request.checkout_date,
        guests_count=request.guests_count,
        children_count=request.children_count,
        guests=_guest_details(request.guests),
        reference_id=request.reference_id,
    )
    return _convert_booking_to_schema(booking)


@router.post("/buyout-hold", response_model=BookingResponse, status_code=201)
async def create_buyout_hold(
    request: CreatePropertyHoldRequest,
    user: CurrentUser = RequiredAuth,
    locker: BookingLocker = BookingLockerDependency,
) -> BookingResponse:
    """Hold an entire property."""
    booking = await locker.create_buyout_booking(
        user_id=user.user_id,
        property_name=request.property,
        checkin=request.checkin_date,
        checkout=request.checkout_date,
        guests_count=request.guests_count,
        children_count=request.children_count,
        guests=_guest_details(request.guests),
        reference_id=request.reference_id,
    )
    return _convert_booking_to_schema(booking)


@router.post("/confirm", response_model=BookingResponse)
async def confirm_booking(
    request: BookingIdRequest,
    user: CurrentUser = RequiredAuth,
    locker: BookingLocker = BookingLockerDependency,
) -> BookingResponse:
    """
    Confirm a held booking after payment.

    Repeating the call for a confirmed booking returns it unchanged.
    """
    await _owned_booking(locker, request.booking_id, user)
    booking = await locker.confirm_booking(request.booking_id)
    logger.info(
        "Confirmation requested",
        extra={"booking_id": str(request.booking_id), "user_id": user.user_id}
    )
    return _convert_booking_to_schema(booking)


@router.post("/release", response_model=BookingResponse)
async def release_hold(
    request: ReleaseHoldRequest,
    user: CurrentUser = RequiredAuth,
    locker: BookingLocker = BookingLockerDependency,
) -> BookingResponse:
    """Give up a hold before it expires."""
    await _owned_booking(locker, request.booking_id, user)
    booking = await locker.release_hold(request.booking_id, reason=request.reason)
    return _convert_booking_to_schema(booking)


@router.post("/cancel", response_model=CancellationResponse)
async def cancel_booking(
    request: CancelBookingRequest,
    user: CurrentUser = RequiredAuth,
    locker: BookingLocker = BookingLockerDependency,
    resolver: CancellationRefundResolver = RefundResolverDependency,
) -> CancellationResponse:
    """
    Cancel a booking and resolve its refund.

    The refund window is measured from today's date on the server.
    """
    await _owned_booking(locker, request.booking_id, user)
    outcome = await resolver.cancel_booking(
        request.booking_id,
        utcnow().date(),
        request.reason,
    )
    return CancellationResponse(
        booking=_convert_booking_to_schema(outcome.booking),
        refund=Money(amount=outcome.refund_amount, currency=outcome.currency),
        requires_review=outcome.requires_review,
        pending_refund_id=str(outcome.pending_refund.id) if outcome.pending_refund else None,
        refund_id=outcome.refund_receipt.refund_id if outcome.refund_receipt else None,
        applied_rule_days_before_checkin=(
            outcome.applied_rule.days_before_checkin if outcome.applied_rule else None
        ),
        days_before_checkin=outcome.days_before_checkin,
    )


@router.post("/get", response_model=BookingResponse)
async def get_booking(
    request: BookingIdRequest,
    user: CurrentUser = RequiredAuth,
    locker: BookingLocker = BookingLockerDependency,
) -> BookingResponse:
    """Get one of the caller's bookings."""
    booking = await _owned_booking(locker, request.booking_id, user)
    return _convert_booking_to_schema(booking)
