"""Booking locker: transactional creation, confirmation and release of bookings."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import stay_days, utcnow
from ..core.config import settings
from ..core.database import async_session_factory
from ..core.exceptions import (
    BookingConflictError,
    CapacityExceededError,
    DuplicateReferenceError,
    InvalidBookingStateError,
    NotFoundError,
    PropertyUnavailableError,
    RoomUnavailableError,
    TransientDatabaseError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingGuest, BookingMode, BookingStatus, Property
from ..models.room import Room
from .booking_state import BookingValidator, GuestDetails
from .collaborators import (
    EventPublisher,
    LoggingEventPublisher,
    PriceLookup,
    booking_event_payload,
    publish_event,
)
from .inventory_service import InventoryService, translate_db_error
from .reference import generate_reference_id

logger = logging.getLogger(__name__)

# Applied to the new booking once its inventory checks have passed
Claim = Callable[[Booking], None]


@dataclass
class ReservationRequest:
    user_id: str
    property: Property
    mode: BookingMode
    checkin: date
    checkout: date
    guests_count: int
    children_count: int = 0
    room_ids: list[UUID] = field(default_factory=list)
    guests: Sequence[GuestDetails] = ()
    reference_id: Optional[str] = None

    @property
    def days(self) -> list[date]:
        return stay_days(self.checkin, self.checkout)


class BookingLocker:
    """
    Coordinates every inventory-changing booking operation.

    Each public operation runs in its own database transaction. Creation paths
    lock inventory rows without waiting, in ascending day order for property
    rows followed by ascending (room id, day) order for room rows, and reject
    the request if any invariant would break. Confirmation and release act
    through conditional updates on the booking row, so racing callers cannot
    both apply the same transition.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        price_lookup: Optional[PriceLookup] = None,
        event_publisher: Optional[EventPublisher] = None,
        hold_ttl: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory or async_session_factory
        self.price_lookup = price_lookup
        self.events = event_publisher or LoggingEventPublisher()
        self.hold_ttl = hold_ttl or timedelta(minutes=settings.hold_ttl_minutes)
        self.validator = BookingValidator()

        self._reserve_handlers: dict[BookingMode, Callable[..., Awaitable[Claim]]] = {
            BookingMode.ROOM: self._reserve_rooms,
            BookingMode.PER_GUEST: self._reserve_capacity,
            BookingMode.BUYOUT: self._reserve_buyout,
        }
        self._confirm_handlers: dict[BookingMode, Callable[[InventoryService, Booking], Awaitable[int]]] = {
            BookingMode.ROOM: lambda inventory, booking: inventory.book_rooms(booking.id),
            BookingMode.PER_GUEST: lambda inventory, booking: inventory.book_capacity(
                booking.property, stay_days(booking.checkin_date, booking.checkout_date), booking.guests_count
            ),
            BookingMode.BUYOUT: lambda inventory, booking: inventory.book_buyout(booking.id),
        }

    # Creation

    async def create_room_booking(
        self,
        user_id: str,
        room_ids: Sequence[UUID],
        checkin: date,
        checkout: date,
        guests_count: int,
        children_count: int = 0,
        guests: Sequence[GuestDetails] = (),
        reference_id: Optional[str] = None,
    ) -> Booking:
        """
        Hold specific rooms for every night of the stay.

        Raises:
            ValidationError: Bad dates, counts, or rooms spanning properties
            NotFoundError: A room does not exist
            RoomUnavailableError: A room-day is taken or the property is bought out
            LockContentionError: Another transaction holds one of the rows
        """
        room_ids = sorted(room_ids)
        self.validator.validate_mode(BookingMode.ROOM, room_ids)
        self.validator.validate_stay(checkin, checkout)
        self.validator.validate_guests(guests_count, children_count, guests)
        self.validator.validate_reference(reference_id)

        rooms = await self._load_rooms(room_ids)
        property_name = self.validator.validate_rooms(room_ids, rooms, guests_count)

        return await self._create(ReservationRequest(
            user_id=user_id,
            property=property_name,
            mode=BookingMode.ROOM,
            checkin=checkin,
            checkout=checkout,
            guests_count=guests_count,
            children_count=children_count,
            room_ids=room_ids,
            guests=guests,
            reference_id=reference_id,
        ))

    async def create_per_guest_booking(
        self,
        user_id: str,
        property_name: Property | str,
        checkin: date,
        checkout: date,
        guests_count: int,
        children_count: int = 0,
        guests: Sequence[GuestDetails] = (),
        reference_id: Optional[str] = None,
    ) -> Booking:
        """
        Hold shared per-guest capacity on every night of the stay.

        Raises:
            CapacityExceededError: Any night lacks room for the party
            PropertyUnavailableError: The property is bought out or booked by room
        """
        return await self._create_property_booking(
            BookingMode.PER_GUEST, user_id, property_name, checkin, checkout,
            guests_count, children_count, guests, reference_id,
        )

    async def create_buyout_booking(
        self,
        user_id: str,
        property_name: Property | str,
        checkin: date,
        checkout: date,
        guests_count: int,
        children_count: int = 0,
        guests: Sequence[GuestDetails] = (),
        reference_id: Optional[str] = None,
    ) -> Booking:
        """
        Hold an entire property exclusively.

        Raises:
            PropertyUnavailableError: Any room, capacity or buyout is active on a night
        """
        return await self._create_property_booking(
            BookingMode.BUYOUT, user_id, property_name, checkin, checkout,
            guests_count, children_count, guests, reference_id,
        )

    async def _create_property_booking(
        self,
        mode: BookingMode,
        user_id: str,
        property_name: Property | str,
        checkin: date,
        checkout: date,
        guests_count: int,
        children_count: int,
        guests: Sequence[GuestDetails],
        reference_id: Optional[str],
    ) -> Booking:
        try:
            property_name = Property(property_name)
        except ValueError as e:
            raise ValidationError(detail=f"Unknown property: {property_name}") from e

        self.validator.validate_stay(checkin, checkout)
        self.validator.validate_guests(guests_count, children_count, guests)
        self.validator.validate_reference(reference_id)

        return await self._create(ReservationRequest(
            user_id=user_id,
            property=property_name,
            mode=mode,
            checkin=checkin,
            checkout=checkout,
            guests_count=guests_count,
            children_count=children_count,
            guests=guests,
            reference_id=reference_id,
        ))

    async def _create(self, request: ReservationRequest) -> Booking:
        days = request.days
        total_price = await self._quote(request, days)
        booking_id = uuid4()
        reference_id = request.reference_id or generate_reference_id()

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    inventory = InventoryService(db)
                    claim = await self._reserve_handlers[request.mode](inventory, request, days)

                    booking = Booking(
                        id=booking_id,
                        reference_id=reference_id,
                        user_id=request.user_id,
                        property=request.property.value,
                        booking_mode=request.mode.value,
                        checkin_date=request.checkin,
                        checkout_date=request.checkout,
                        guests_count=request.guests_count,
                        children_count=request.children_count,
                        total_price_amount=total_price,
                        total_price_currency=settings.default_currency,
                        status=BookingStatus.HOLD.value,
                        hold_expires_at=utcnow() + self.hold_ttl,
                        guests=[
                            BookingGuest(
                                first_name=guest.first_name,
                                last_name=guest.last_name,
                                is_child=guest.is_child,
                                is_booking_user=guest.is_booking_user,
                                order_index=index,
                            )
                            for index, guest in enumerate(request.guests)
                        ],
                    )
                    if request.room_ids:
                        result = await db.execute(select(Room).where(Room.id.in_(request.room_ids)))
                        booking.rooms = list(result.scalars())

                    db.add(booking)
                    await db.flush()
                    claim(booking)
        except BookingConflictError as e:
            metrics_collector.record_conflict(e.code)
            logger.info(
                "Booking request rejected",
                extra={
                    "code": e.code,
                    "property": request.property.value,
                    "mode": request.mode.value,
                    "checkin": request.checkin.isoformat(),
                    "checkout": request.checkout.isoformat(),
                    "user_id": request.user_id,
                }
            )
            raise
        except IntegrityError as e:
            if "reference_id" not in str(e.orig):
                raise
            conflict = DuplicateReferenceError(
                reference_id=reference_id,
                retryable=request.reference_id is None,
            )
            metrics_collector.record_conflict(conflict.code)
            logger.info(
                "Booking reference already in use",
                extra={"reference_id": reference_id, "user_id": request.user_id}
            )
            raise conflict from e
        except DBAPIError as e:
            translated = translate_db_error(e)
            if translated is None:
                raise
            if isinstance(translated, BookingConflictError):
                metrics_collector.record_conflict(translated.code)
            logger.warning(
                "Booking transaction aborted by the database",
                extra={
                    "code": translated.code,
                    "property": request.property.value,
                    "mode": request.mode.value,
                    "error": str(e.orig),
                }
            )
            raise translated from e

        booking = await self.get_booking(booking_id)
        metrics_collector.record_hold_created(request.property.value, request.mode.value)
        logger.info(
            "Hold created",
            extra={
                "booking_id": str(booking.id),
                "reference_id": booking.reference_id,
                "property": request.property.value,
                "mode": request.mode.value,
                "nights": len(days),
                "guests": request.guests_count,
                "hold_expires_at": booking.hold_expires_at.isoformat(),
            }
        )
        await publish_event(self.events, "booking.hold_created", booking_event_payload(booking))
        return booking

    async def _quote(self, request: ReservationRequest, days: Sequence[date]) -> Optional[int]:
        """Total price from the price collaborator, computed before any lock is taken."""
        if self.price_lookup is None:
            return None

        total = 0
        for day in days:
            if request.mode is BookingMode.ROOM:
                for room_id in request.room_ids:
                    price = await self.price_lookup.get_price(request.property, day, request.mode, room_id)
                    if price is None:
                        return None
                    total += price
                continue

            price = await self.price_lookup.get_price(request.property, day, request.mode)
            if price is None:
                return None
            total += price * request.guests_count if request.mode is BookingMode.PER_GUEST else price
        return total

    # Per-mode inventory checks. Property rows are always locked before room rows.

    async def _reserve_rooms(
        self, inventory: InventoryService, request: ReservationRequest, days: list[date]
    ) -> Claim:
        await inventory.ensure_property_days(request.property, days)
        await inventory.ensure_room_days(request.room_ids, days)

        property_rows = await inventory.lock_property_days(request.property, days)
        blocked = [row.day for row in property_rows if row.buyout_active or row.capacity_used > 0]
        if blocked:
            raise RoomUnavailableError(
                detail=f"{request.property.value} is reserved by another booking mode on the requested dates",
                property=request.property.value,
                days=blocked,
            )

        room_rows = await inventory.lock_room_days(request.room_ids, days)
        taken = [row for row in room_rows if row.is_active]
        if taken:
            raise RoomUnavailableError(
                detail="One or more rooms are already held or booked on the requested dates",
                room_ids=sorted({row.room_id for row in taken}),
                days=sorted({row.day for row in taken}),
            )

        return lambda booking: inventory.hold_rooms(room_rows, booking.id)

    async def _reserve_capacity(
        self, inventory: InventoryService, request: ReservationRequest, days: list[date]
    ) -> Claim:
        await inventory.ensure_property_days(request.property, days)

        property_rows = await inventory.lock_property_days(request.property, days)
        if any(row.buyout_active for row in property_rows):
            raise PropertyUnavailableError(
                detail=f"{request.property.value} is bought out on the requested dates",
                property=request.property.value,
            )

        room_rows = await inventory.lock_property_room_days(request.property, days)
        if any(row.is_active for row in room_rows):
            raise PropertyUnavailableError(
                detail=f"{request.property.value} has room bookings on the requested dates",
                property=request.property.value,
            )

        short = [row for row in property_rows if not row.can_accept_guests(request.guests_count)]
        if short:
            raise CapacityExceededError(
                detail=(
                    f"Not enough capacity for {request.guests_count} guests on "
                    f"{len(short)} of the requested nights"
                ),
                property=request.property.value,
                requested=request.guests_count,
                available={row.day.isoformat(): row.capacity_remaining for row in short},
            )

        return lambda booking: inventory.hold_capacity(property_rows, request.guests_count)

    async def _reserve_buyout(
        self, inventory: InventoryService, request: ReservationRequest, days: list[date]
    ) -> Claim:
        await inventory.ensure_property_days(request.property, days)

        property_rows = await inventory.lock_property_days(request.property, days)
        room_rows = await inventory.lock_property_room_days(request.property, days)

        blocked_days = sorted(
            {row.day for row in property_rows if row.buyout_active or row.capacity_used > 0}
            | {row.day for row in room_rows if row.is_active}
        )
        if blocked_days:
            raise PropertyUnavailableError(
                detail=f"{request.property.value} already has reservations on the requested dates",
                property=request.property.value,
                days=blocked_days,
            )

        return lambda booking: inventory.hold_buyout(property_rows, booking.id)

    # Transitions

    async def confirm_booking(self, booking_id: UUID) -> Booking:
        """
        Move a hold to complete and flip its inventory from held to booked.

        Confirming an already complete booking returns it unchanged.
        """
        try:
            booking, transitioned = await self._transition(
                booking_id,
                BookingStatus.HOLD,
                BookingStatus.COMPLETE,
                self._book_inventory,
                already_done=BookingStatus.COMPLETE,
            )
        except TransientDatabaseError:
            # A racing confirmation may have committed first
            booking = await self.get_booking(booking_id)
            if BookingStatus(booking.status) is not BookingStatus.COMPLETE:
                raise
            transitioned = False

        if not transitioned:
            logger.info(
                "Booking already confirmed, returning current state",
                extra={"booking_id": str(booking_id)}
            )
            return booking

        metrics_collector.record_booking_confirmed(booking.property, booking.booking_mode)
        logger.info(
            "Booking confirmed",
            extra={"booking_id": str(booking.id), "reference_id": booking.reference_id}
        )
        await publish_event(self.events, "booking.confirmed", booking_event_payload(booking))
        return booking

    async def release_hold(self, booking_id: UUID, reason: str = "released") -> Booking:
        """Cancel a hold and give its inventory back."""
        booking, _ = await self._transition(
            booking_id,
            BookingStatus.HOLD,
            BookingStatus.CANCELED,
            self._free_held_inventory,
        )
        metrics_collector.record_booking_cancelled(booking.property, booking.booking_mode, was_hold=True)
        logger.info(
            "Hold released",
            extra={"booking_id": str(booking.id), "reference_id": booking.reference_id, "reason": reason}
        )
        await publish_event(self.events, "booking.canceled", booking_event_payload(booking, reason=reason))
        return booking

    async def cancel_complete_booking(
        self,
        booking_id: UUID,
        final_status: BookingStatus = BookingStatus.CANCELED,
        reason: str = "canceled",
    ) -> Booking:
        """Cancel a confirmed booking and free its booked inventory."""
        if BookingStatus(final_status) not in (BookingStatus.CANCELED, BookingStatus.REFUNDED):
            raise ValidationError(detail="A confirmed booking can only become canceled or refunded")

        booking, _ = await self._transition(
            booking_id,
            BookingStatus.COMPLETE,
            BookingStatus(final_status),
            self._free_booked_inventory,
        )
        metrics_collector.record_booking_cancelled(booking.property, booking.booking_mode, was_hold=False)
        logger.info(
            "Booking canceled",
            extra={
                "booking_id": str(booking.id),
                "reference_id": booking.reference_id,
                "status": BookingStatus(booking.status).value,
                "reason": reason,
            }
        )
        await publish_event(self.events, "booking.canceled", booking_event_payload(booking, reason=reason))
        return booking

    async def _transition(
        self,
        booking_id: UUID,
        source: BookingStatus,
        target: BookingStatus,
        inventory_step: Callable[[InventoryService, Booking], Awaitable[None]],
        already_done: Optional[BookingStatus] = None,
    ) -> tuple[Booking, bool]:
        """
        Conditionally move a booking from ``source`` to ``target`` and adjust its inventory.

        Returns:
            The booking and whether this call performed the transition. When the
            booking is already in ``already_done`` it is returned untouched.
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        update(Booking)
                        .where(Booking.id == booking_id, Booking.status == source.value)
                        .values(status=target.value, hold_expires_at=None)
                        .execution_options(synchronize_session=False)
                    )
                    booking = await self._load_booking(db, booking_id)
                    if booking is None:
                        raise NotFoundError(resource_type="booking", resource_id=str(booking_id))

                    if result.rowcount == 0:
                        current = BookingStatus(booking.status)
                        if already_done is not None and current is already_done:
                            return booking, False
                        raise InvalidBookingStateError(
                            booking_id=str(booking.id),
                            current_status=current.value,
                            target_status=target.value,
                        )

                    await inventory_step(InventoryService(db), booking)
        except DBAPIError as e:
            translated = translate_db_error(e)
            if translated is None:
                raise
            raise translated from e

        return booking, True

    async def _book_inventory(self, inventory: InventoryService, booking: Booking) -> None:
        updated = await self._confirm_handlers[BookingMode(booking.booking_mode)](inventory, booking)
        logger.debug(
            "Inventory flipped to booked",
            extra={"booking_id": str(booking.id), "rows": updated}
        )

    async def _free_held_inventory(self, inventory: InventoryService, booking: Booking) -> None:
        await self._free_inventory(inventory, booking, booked=False)

    async def _free_booked_inventory(self, inventory: InventoryService, booking: Booking) -> None:
        await self._free_inventory(inventory, booking, booked=True)

    async def _free_inventory(self, inventory: InventoryService, booking: Booking, booked: bool) -> None:
        mode = BookingMode(booking.booking_mode)
        if mode is BookingMode.ROOM:
            await inventory.free_rooms(booking.id)
        elif mode is BookingMode.PER_GUEST:
            await inventory.free_capacity(
                booking.property,
                stay_days(booking.checkin_date, booking.checkout_date),
                booking.guests_count,
                booked=booked,
            )
        else:
            await inventory.free_buyout(booking.id)

    # Reads

    async def get_booking(self, booking_id: UUID) -> Booking:
        """Get a booking with its rooms and guests, or raise NotFoundError."""
        async with self.session_factory() as db:
            booking = await self._load_booking(db, booking_id)
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def _load_booking(self, db: AsyncSession, booking_id: UUID) -> Optional[Booking]:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _load_rooms(self, room_ids: Sequence[UUID]) -> list[Room]:
        async with self.session_factory() as db:
            result = await db.execute(select(Room).where(Room.id.in_(list(room_ids))))
            return list(result.scalars())
