"""Refund policy storage, lookup, caching and rule arithmetic."""

import logging
import time
from collections.abc import Callable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.database import async_session_factory
from ..core.exceptions import ValidationError
from ..models.booking import BookingMode, Property
from ..models.refund import RefundPolicy, RefundPolicyRule
from .collaborators import RefundPolicyLookup, RefundPolicySnapshot, RefundRule

logger = logging.getLogger(__name__)


def select_refund_rule(rules: Sequence[RefundRule], days_before_checkin: int) -> Optional[RefundRule]:
    """
    Pick the rule governing a cancellation ``days_before_checkin`` days out.

    A rule covers cancellations made at most its threshold days before checkin;
    the tightest covering threshold wins. Cancellations on or after checkin
    never match a rule.
    """
    if days_before_checkin < 0:
        return None
    covering = [rule for rule in rules if days_before_checkin <= rule.days_before_checkin]
    if not covering:
        return None
    return min(covering, key=lambda rule: rule.days_before_checkin)


def compute_refund_amount(paid_amount: int, percentage: Decimal | int) -> int:
    """Refund in minor units, rounded half up to the nearest unit."""
    amount = Decimal(paid_amount) * Decimal(percentage) / Decimal(100)
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class DatabaseRefundPolicyLookup:
    """Reads the active policy and its rules straight from the database."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or async_session_factory

    async def get_active_policy(
        self, property_name: Property, mode: BookingMode
    ) -> Optional[RefundPolicySnapshot]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(RefundPolicy).where(
                    RefundPolicy.property == Property(property_name).value,
                    RefundPolicy.booking_mode == BookingMode(mode).value,
                    RefundPolicy.is_active.is_(True),
                )
            )
            policy = result.scalars().first()
            if policy is None:
                return None
            return RefundPolicySnapshot(
                policy_id=policy.id,
                property=policy.property,
                booking_mode=policy.booking_mode,
                rules=tuple(
                    RefundRule(rule.days_before_checkin, Decimal(rule.refund_percentage))
                    for rule in sorted(policy.rules, key=lambda r: r.days_before_checkin, reverse=True)
                ),
            )


class RefundPolicyCache:
    """
    Version-stamped read-through cache in front of a policy lookup.

    Entries are served while their version matches the cache version and their
    TTL has not lapsed. ``invalidate`` bumps the version, so every entry is
    reloaded on its next read.
    """

    def __init__(
        self,
        source: RefundPolicyLookup,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.ttl_seconds = settings.refund_policy_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self.version = 0
        self._entries: dict[tuple[str, str], tuple[int, float, Optional[RefundPolicySnapshot]]] = {}

    async def get_active_policy(
        self, property_name: Property, mode: BookingMode
    ) -> Optional[RefundPolicySnapshot]:
        key = (Property(property_name).value, BookingMode(mode).value)
        entry = self._entries.get(key)
        if entry is not None:
            version, loaded_at, snapshot = entry
            if version == self.version and self.clock() - loaded_at < self.ttl_seconds:
                return snapshot

        version = self.version
        snapshot = await self.source.get_active_policy(property_name, mode)
        self._entries[key] = (version, self.clock(), snapshot)
        return snapshot

    def invalidate(self) -> int:
        self.version += 1
        self._entries.clear()
        logger.info("Refund policy cache invalidated", extra={"version": self.version})
        return self.version


class RefundPolicyService:
    """Maintains refund policies. Used by operators and the seeding script."""

    def __init__(self, db: AsyncSession, cache: Optional[RefundPolicyCache] = None):
        self.db = db
        self.cache = cache

    async def replace_active_policy(
        self,
        property_name: Property,
        mode: BookingMode,
        name: str,
        rules: Sequence[tuple[int, Decimal | int]],
    ) -> RefundPolicy:
        """
        Deactivate the current policy for (property, mode) and activate a new one.

        Args:
            rules: (days_before_checkin, refund_percentage) pairs
        """
        for days, percentage in rules:
            if days < 0 or not 0 <= Decimal(percentage) <= 100:
                raise ValidationError(
                    detail="Refund rules need days_before_checkin >= 0 and a percentage between 0 and 100",
                    errors={"days_before_checkin": days, "refund_percentage": str(percentage)},
                )

        await self.db.execute(
            update(RefundPolicy)
            .where(
                RefundPolicy.property == Property(property_name).value,
                RefundPolicy.booking_mode == BookingMode(mode).value,
                RefundPolicy.is_active.is_(True),
            )
            .values(is_active=False)
        )
        policy = RefundPolicy(
            name=name,
            property=Property(property_name).value,
            booking_mode=BookingMode(mode).value,
            is_active=True,
            rules=[
                RefundPolicyRule(days_before_checkin=days, refund_percentage=Decimal(percentage), priority=index)
                for index, (days, percentage) in enumerate(rules)
            ],
        )
        self.db.add(policy)
        await self.db.commit()

        if self.cache is not None:
            self.cache.invalidate()

        logger.info(
            "Refund policy activated",
            extra={
                "policy_id": str(policy.id),
                "property": Property(property_name).value,
                "mode": BookingMode(mode).value,
                "rules": len(rules),
            }
        )
        return policy
