"""Refund policy and pending refund model definitions."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .booking import BookingMode, Property


class PendingRefundStatus(str, Enum):
    """Pending refund status enumeration."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RefundPolicy(Base):
    """Cancellation policy for one property and booking mode."""

    __tablename__ = "refund_policies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    property: Mapped[Property] = mapped_column(String(20), nullable=False)
    booking_mode: Mapped[BookingMode] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        # One active policy per property and mode
        Index(
            "uq_refund_policies_active_property_mode",
            "property",
            "booking_mode",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    rules: Mapped[list["RefundPolicyRule"]] = relationship(
        "RefundPolicyRule",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="RefundPolicyRule.days_before_checkin.desc()",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<RefundPolicy(id={self.id}, property={self.property}, "
            f"mode={self.booking_mode}, active={self.is_active})>"
        )


class RefundPolicyRule(Base):
    """Refund percentage applied when cancelling at most N days before checkin."""

    __tablename__ = "refund_policy_rules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    refund_policy_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("refund_policies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    days_before_checkin: Mapped[int] = mapped_column(Integer, nullable=False)
    refund_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("days_before_checkin >= 0", name="ck_refund_rule_days_non_negative"),
        CheckConstraint(
            "refund_percentage >= 0 AND refund_percentage <= 100",
            name="ck_refund_rule_percentage_range"
        ),
    )

    policy: Mapped["RefundPolicy"] = relationship("RefundPolicy", back_populates="rules")

    def __repr__(self) -> str:
        return (
            f"<RefundPolicyRule(policy_id={self.refund_policy_id}, "
            f"days_before_checkin={self.days_before_checkin}, refund_percentage={self.refund_percentage})>"
        )


class PendingRefund(Base):
    """Policy-governed refund awaiting administrative review."""

    __tablename__ = "pending_refunds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    payment_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Amounts in minor units
    policy_refund_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    admin_refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[PendingRefundStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PendingRefundStatus.PENDING,
        index=True
    )

    applied_rule_days_before_checkin: Mapped[int | None] = mapped_column(Integer, nullable=True)
    applied_rule_refund_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

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
        CheckConstraint("policy_refund_amount >= 0", name="ck_pending_refund_policy_amount_non_negative"),
        CheckConstraint(
            "admin_refund_amount IS NULL OR admin_refund_amount >= 0",
            name="ck_pending_refund_admin_amount_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PendingRefund(id={self.id}, booking_id={self.booking_id}, "
            f"amount={self.policy_refund_amount}, status={self.status})>"
        )
