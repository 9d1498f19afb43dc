"""Inventory store: per-day room and property rows, their locks and counter updates."""

import logging
from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import LockContentionError, ProblemDetailsException, TransientDatabaseError
from ..models.booking import Property
from ..models.inventory import PropertyInventory, RoomInventory
from ..models.room import Room

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes
LOCK_NOT_AVAILABLE = "55P03"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_db_error(exc: DBAPIError) -> ProblemDetailsException | None:
    """
    Map a driver error raised inside a booking transaction to an application error.

    Returns None when the error is not a locking or serialization problem and
    should propagate unchanged.
    """
    code = _sqlstate(exc)
    if code == LOCK_NOT_AVAILABLE:
        return LockContentionError()
    if code in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED):
        return TransientDatabaseError()
    if "database is locked" in str(getattr(exc, "orig", exc)):
        return LockContentionError()
    return None


class InventoryService:
    """
    Reads, locks and mutates inventory rows inside the caller's transaction.

    Nothing here commits: every method runs as part of a single booking
    transaction opened by the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    def _insert(self, model):
        if self.dialect_name == "postgresql":
            return pg_insert(model)
        return sqlite_insert(model)

    async def ensure_property_days(self, property_name: Property, days: Sequence[date]) -> None:
        """Create missing property inventory rows with the property's default capacity."""
        if not days:
            return
        stmt = self._insert(PropertyInventory).values([
            {
                "property": Property(property_name).value,
                "day": day,
                "capacity_total": settings.capacity_for(Property(property_name).value),
                "capacity_held": 0,
                "capacity_booked": 0,
                "buyout_held": False,
                "buyout_booked": False,
            }
            for day in days
        ]).on_conflict_do_nothing(index_elements=["property", "day"])
        await self.db.execute(stmt)

    async def ensure_room_days(self, room_ids: Sequence[UUID], days: Sequence[date]) -> None:
        """Create missing room inventory rows as free."""
        if not room_ids or not days:
            return
        stmt = self._insert(RoomInventory).values([
            {"room_id": room_id, "day": day, "held": False, "booked": False}
            for room_id in room_ids
            for day in days
        ]).on_conflict_do_nothing(index_elements=["room_id", "day"])
        await self.db.execute(stmt)

    async def lock_property_days(self, property_name: Property, days: Sequence[date]) -> list[PropertyInventory]:
        """Lock the property's rows for ``days`` in day order without waiting."""
        stmt = (
            select(PropertyInventory)
            .where(
                PropertyInventory.property == Property(property_name).value,
                PropertyInventory.day.in_(list(days)),
            )
            .order_by(PropertyInventory.day)
            .with_for_update(nowait=True)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def lock_room_days(self, room_ids: Sequence[UUID], days: Sequence[date]) -> list[RoomInventory]:
        """Lock room rows ordered by room id then day without waiting."""
        stmt = (
            select(RoomInventory)
            .where(
                RoomInventory.room_id.in_(list(room_ids)),
                RoomInventory.day.in_(list(days)),
            )
            .order_by(RoomInventory.room_id, RoomInventory.day)
            .with_for_update(nowait=True)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def lock_property_room_days(self, property_name: Property, days: Sequence[date]) -> list[RoomInventory]:
        """Lock every existing room row of a property on ``days`` without waiting."""
        room_ids = select(Room.id).where(Room.property == Property(property_name).value)
        stmt = (
            select(RoomInventory)
            .where(
                RoomInventory.room_id.in_(room_ids),
                RoomInventory.day.in_(list(days)),
            )
            .order_by(RoomInventory.room_id, RoomInventory.day)
            .with_for_update(of=RoomInventory, nowait=True)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    # Hold creation: callers mutate the rows they locked

    def hold_rooms(self, rows: Sequence[RoomInventory], booking_id: UUID) -> None:
        for row in rows:
            row.held = True
            row.booked = False
            row.booking_id = booking_id

    def hold_capacity(self, rows: Sequence[PropertyInventory], guests: int) -> None:
        for row in rows:
            row.capacity_held += guests

    def hold_buyout(self, rows: Sequence[PropertyInventory], booking_id: UUID) -> None:
        for row in rows:
            row.buyout_held = True
            row.buyout_booking_id = booking_id

    # Confirmation and release: conditional updates on rows owned by a booking

    async def book_rooms(self, booking_id: UUID) -> int:
        """Flip held rooms to booked. Returns the number of room-days updated."""
        result = await self.db.execute(
            update(RoomInventory)
            .where(RoomInventory.booking_id == booking_id, RoomInventory.held.is_(True))
            .values(held=False, booked=True)
        )
        return result.rowcount

    async def free_rooms(self, booking_id: UUID) -> int:
        """Clear held or booked flags on every room-day owned by the booking."""
        result = await self.db.execute(
            update(RoomInventory)
            .where(RoomInventory.booking_id == booking_id)
            .values(held=False, booked=False, booking_id=None)
        )
        return result.rowcount

    async def book_capacity(self, property_name: Property, days: Sequence[date], guests: int) -> int:
        result = await self.db.execute(
            update(PropertyInventory)
            .where(
                PropertyInventory.property == Property(property_name).value,
                PropertyInventory.day.in_(list(days)),
            )
            .values(
                capacity_held=PropertyInventory.capacity_held - guests,
                capacity_booked=PropertyInventory.capacity_booked + guests,
            )
        )
        return result.rowcount

    async def free_capacity(
        self, property_name: Property, days: Sequence[date], guests: int, booked: bool
    ) -> int:
        """Return ``guests`` of held (or booked) capacity on every day."""
        column = PropertyInventory.capacity_booked if booked else PropertyInventory.capacity_held
        result = await self.db.execute(
            update(PropertyInventory)
            .where(
                PropertyInventory.property == Property(property_name).value,
                PropertyInventory.day.in_(list(days)),
            )
            .values({column: column - guests})
        )
        return result.rowcount

    async def book_buyout(self, booking_id: UUID) -> int:
        result = await self.db.execute(
            update(PropertyInventory)
            .where(PropertyInventory.buyout_booking_id == booking_id, PropertyInventory.buyout_held.is_(True))
            .values(buyout_held=False, buyout_booked=True)
        )
        return result.rowcount

    async def free_buyout(self, booking_id: UUID) -> int:
        result = await self.db.execute(
            update(PropertyInventory)
            .where(PropertyInventory.buyout_booking_id == booking_id)
            .values(buyout_held=False, buyout_booked=False, buyout_booking_id=None)
        )
        return result.rowcount

    # Plain reads

    async def get_property_days(self, property_name: Property, days: Sequence[date]) -> list[PropertyInventory]:
        stmt = (
            select(PropertyInventory)
            .where(
                PropertyInventory.property == Property(property_name).value,
                PropertyInventory.day.in_(list(days)),
            )
            .order_by(PropertyInventory.day)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_room_days(self, room_ids: Sequence[UUID], days: Sequence[date]) -> list[RoomInventory]:
        stmt = (
            select(RoomInventory)
            .where(
                RoomInventory.room_id.in_(list(room_ids)),
                RoomInventory.day.in_(list(days)),
            )
            .order_by(RoomInventory.room_id, RoomInventory.day)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())
