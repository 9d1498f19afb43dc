"""Tests for refund rule selection, refund arithmetic and the policy cache."""

from decimal import Decimal
from uuid import uuid4

import pytest

from cabin_booking.core.exceptions import ValidationError
from cabin_booking.models import BookingMode, Property
from cabin_booking.services.collaborators import RefundPolicySnapshot, RefundRule
from cabin_booking.services.refund_policy import (
    DatabaseRefundPolicyLookup,
    RefundPolicyCache,
    RefundPolicyService,
    compute_refund_amount,
    select_refund_rule,
)

RULES = (
    RefundRule(30, Decimal("100")),
    RefundRule(14, Decimal("50")),
    RefundRule(7, Decimal("0")),
)


@pytest.mark.parametrize(
    ("days_before", "expected"),
    [
        (45, None),
        (30, 30),
        (20, 30),
        (14, 14),
        (8, 14),
        (0, 7),
        (-1, None),
    ],
)
def test_select_refund_rule(days_before, expected):
    rule = select_refund_rule(RULES, days_before)
    assert (rule.days_before_checkin if rule else None) == expected


def test_select_refund_rule_without_rules():
    assert select_refund_rule((), 10) is None


def test_compute_refund_amount_rounds_half_up():
    assert compute_refund_amount(45001, Decimal("50")) == 22501
    assert compute_refund_amount(10000, Decimal("33.33")) == 3333
    assert compute_refund_amount(10000, 100) == 10000
    assert compute_refund_amount(10000, 0) == 0


class CountingLookup:
    """Policy source that counts how often it is asked."""

    def __init__(self):
        self.calls = 0
        self.snapshot = RefundPolicySnapshot(uuid4(), "tahoe", "room", RULES)

    async def get_active_policy(self, property_name, mode):
        self.calls += 1
        return self.snapshot


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_cache_serves_entries_until_ttl_lapses():
    source = CountingLookup()
    clock = FakeClock()
    cache = RefundPolicyCache(source, ttl_seconds=60, clock=clock)

    first = await cache.get_active_policy(Property.TAHOE, BookingMode.ROOM)
    await cache.get_active_policy("tahoe", "room")
    assert source.calls == 1
    assert first is source.snapshot

    clock.now += 61
    await cache.get_active_policy(Property.TAHOE, BookingMode.ROOM)
    assert source.calls == 2


@pytest.mark.asyncio
async def test_cache_keys_by_property_and_mode():
    source = CountingLookup()
    cache = RefundPolicyCache(source, ttl_seconds=60, clock=FakeClock())

    await cache.get_active_policy(Property.TAHOE, BookingMode.ROOM)
    await cache.get_active_policy(Property.TAHOE, BookingMode.BUYOUT)

    assert source.calls == 2


@pytest.mark.asyncio
async def test_invalidate_bumps_version_and_reloads():
    source = CountingLookup()
    cache = RefundPolicyCache(source, ttl_seconds=600, clock=FakeClock())
    await cache.get_active_policy(Property.TAHOE, BookingMode.ROOM)

    version = cache.invalidate()
    await cache.get_active_policy(Property.TAHOE, BookingMode.ROOM)

    assert version == 1
    assert source.calls == 2


@pytest.mark.asyncio
async def test_replacing_a_policy_deactivates_the_previous_one(session_factory):
    """Test that only the newest policy is active and cached readers see it."""
    cache = RefundPolicyCache(DatabaseRefundPolicyLookup(session_factory), ttl_seconds=600)

    async with session_factory() as db:
        await RefundPolicyService(db, cache).replace_active_policy(
            Property.TAHOE, BookingMode.ROOM, "Original", [(30, 100)]
        )
    first = await cache.get_active_policy(Property.TAHOE, BookingMode.ROOM)

    async with session_factory() as db:
        replacement = await RefundPolicyService(db, cache).replace_active_policy(
            Property.TAHOE, BookingMode.ROOM, "Stricter", [(60, 50), (14, 0)]
        )
    second = await cache.get_active_policy(Property.TAHOE, BookingMode.ROOM)

    assert [rule.days_before_checkin for rule in first.rules] == [30]
    assert second.policy_id == replacement.id
    assert [(rule.days_before_checkin, rule.refund_percentage) for rule in second.rules] == [
        (60, Decimal("50")),
        (14, Decimal("0")),
    ]
    assert await cache.get_active_policy(Property.CLEAR_LAKE, BookingMode.ROOM) is None


@pytest.mark.asyncio
async def test_policy_rules_are_validated(session_factory):
    async with session_factory() as db:
        with pytest.raises(ValidationError):
            await RefundPolicyService(db).replace_active_policy(
                Property.TAHOE, BookingMode.ROOM, "Broken", [(10, 120)]
            )
