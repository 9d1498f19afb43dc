"""Service layer package."""

from .booking_locker import BookingLocker
from .hold_reclaimer import HoldReclaimer
from .inventory_service import InventoryService
from .refund_policy import DatabaseRefundPolicyLookup, RefundPolicyCache, RefundPolicyService
from .refund_service import CancellationRefundResolver

__all__ = [
    "BookingLocker",
    "CancellationRefundResolver",
    "DatabaseRefundPolicyLookup",
    "HoldReclaimer",
    "InventoryService",
    "RefundPolicyCache",
    "RefundPolicyService",
]
