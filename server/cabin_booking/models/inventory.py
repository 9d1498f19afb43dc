"""Per-day inventory rows: the unit of locking for every booking."""

import builtins
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from .booking import Property


class RoomInventory(Base):
    """Hold/booked flags for one room on one calendar day."""

    __tablename__ = "room_inventory"

    room_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("rooms.id", ondelete="CASCADE"),
        primary_key=True
    )
    day: Mapped[date] = mapped_column(Date, primary_key=True)

    held: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    booked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Booking currently holding or occupying the room on this day
    booking_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("NOT (held AND booked)", name="ck_room_inventory_held_xor_booked"),
        CheckConstraint(
            "(held OR booked) = (booking_id IS NOT NULL)",
            name="ck_room_inventory_owner_matches_flags"
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.held or self.booked

    def __repr__(self) -> str:
        return (
            f"<RoomInventory(room_id={self.room_id}, day={self.day}, "
            f"held={self.held}, booked={self.booked}, booking_id={self.booking_id})>"
        )


class PropertyInventory(Base):
    """Per-guest capacity counters and buyout flags for one property on one day."""

    __tablename__ = "property_inventory"

    property: Mapped[Property] = mapped_column(String(20), primary_key=True)
    day: Mapped[date] = mapped_column(Date, primary_key=True)

    capacity_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    capacity_held: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    capacity_booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    buyout_held: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    buyout_booked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    buyout_booking_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True
    )

    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("capacity_total >= 0", name="ck_property_inventory_total_non_negative"),
        CheckConstraint("capacity_held >= 0", name="ck_property_inventory_held_non_negative"),
        CheckConstraint("capacity_booked >= 0", name="ck_property_inventory_booked_non_negative"),
        CheckConstraint(
            "capacity_held + capacity_booked <= capacity_total",
            name="ck_property_inventory_within_capacity"
        ),
        CheckConstraint("NOT (buyout_held AND buyout_booked)", name="ck_property_inventory_buyout_held_xor_booked"),
    )

    @builtins.property
    def capacity_used(self) -> int:
        return self.capacity_held + self.capacity_booked

    @builtins.property
    def capacity_remaining(self) -> int:
        return self.capacity_total - self.capacity_used

    @builtins.property
    def buyout_active(self) -> bool:
        return self.buyout_held or self.buyout_booked

    def can_accept_guests(self, guests: int) -> bool:
        """Whether a per-guest booking of this size fits on this day."""
        return guests <= self.capacity_remaining

    def __repr__(self) -> str:
        return (
            f"<PropertyInventory(property={self.property}, day={self.day}, "
            f"capacity={self.capacity_held}+{self.capacity_booked}/{self.capacity_total}, "
            f"buyout_held={self.buyout_held}, buyout_booked={self.buyout_booked})>"
        )
