"""Room model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from .booking import Property


class Room(Base):
    """A bookable room at one of the properties."""

    __tablename__ = "rooms"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    property: Mapped[Property] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    capacity_max: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("property", "name", name="uq_room_property_name"),
        CheckConstraint("capacity_max > 0", name="ck_room_capacity_positive"),
        CheckConstraint("length(name) > 0", name="ck_room_name_not_empty"),
    )

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, property={self.property}, name='{self.name}', capacity_max={self.capacity_max})>"
