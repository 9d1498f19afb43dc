"""Booking and guest model definitions."""

import builtins
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .room import Room


class Property(str, Enum):
    """Properties whose inventory is managed by the engine."""
    TAHOE = "tahoe"
    CLEAR_LAKE = "clear_lake"


class BookingMode(str, Enum):
    """Booking mode enumeration."""
    ROOM = "room"
    PER_GUEST = "per_guest"
    BUYOUT = "buyout"


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    DRAFT = "draft"
    HOLD = "hold"
    COMPLETE = "complete"
    CANCELED = "canceled"
    REFUNDED = "refunded"


booking_rooms = Table(
    "booking_rooms",
    Base.metadata,
    Column("booking_id", Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True),
    Column("room_id", Uuid, ForeignKey("rooms.id", ondelete="RESTRICT"), primary_key=True),
)


class Booking(Base):
    """Reservation of rooms, per-guest capacity, or a whole property for a date range."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Human-facing reference, e.g. BKG-260118-K7QX3
    reference_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    property: Mapped[Property] = mapped_column(String(20), nullable=False)
    booking_mode: Mapped[BookingMode] = mapped_column(String(20), nullable=False)

    # Stay
    checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    checkout_date: Mapped[date] = mapped_column(Date, nullable=False)
    guests_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    children_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Price in minor units
    total_price_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.HOLD,
        index=True
    )
    hold_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    checked_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("checkout_date > checkin_date", name="ck_booking_checkout_after_checkin"),
        CheckConstraint("guests_count > 0", name="ck_booking_guests_positive"),
        CheckConstraint("children_count >= 0", name="ck_booking_children_non_negative"),
        CheckConstraint("total_price_amount IS NULL OR total_price_amount >= 0", name="ck_booking_price_non_negative"),
        CheckConstraint(
            "status = 'hold' OR hold_expires_at IS NULL",
            name="ck_booking_hold_expiry_only_while_held"
        ),
        Index("ix_bookings_status_hold_expires_at", "status", "hold_expires_at"),
    )

    # Relationships
    rooms: Mapped[list["Room"]] = relationship("Room", secondary=booking_rooms, lazy="selectin")
    guests: Mapped[list["BookingGuest"]] = relationship(
        "BookingGuest",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingGuest.order_index",
        lazy="selectin",
    )

    @builtins.property
    def room_ids(self) -> list[UUID]:
        return sorted(room.id for room in self.rooms)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, reference_id='{self.reference_id}', property={self.property}, "
            f"mode={self.booking_mode}, status={self.status}, "
            f"checkin={self.checkin_date}, checkout={self.checkout_date})>"
        )


class BookingGuest(Base):
    """Named guest travelling on a booking."""

    __tablename__ = "booking_guests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_child: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_booking_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("length(first_name) > 0", name="ck_booking_guest_first_name_not_empty"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="guests")

    def __repr__(self) -> str:
        return f"<BookingGuest(id={self.id}, booking_id={self.booking_id}, name='{self.first_name} {self.last_name}')>"
