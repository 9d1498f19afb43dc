"""Tests for expiring holds."""

import asyncio
from datetime import date, timedelta

import pytest

from cabin_booking.core.clock import stay_days, utcnow
from cabin_booking.core.exceptions import TransientDatabaseError
from cabin_booking.models import BookingStatus, Property
from cabin_booking.services.booking_locker import BookingLocker
from cabin_booking.services.hold_reclaimer import HoldReclaimer
from cabin_booking.workers import HoldReclaimerWorker
from cabin_booking.workers.manager import WorkerManager

CHECKIN = date(2030, 8, 1)
CHECKOUT = date(2030, 8, 4)


@pytest.fixture
def long_hold_locker(session_factory, events, rooms):
    """Locker whose holds outlive the sweep time used in these tests."""
    return BookingLocker(session_factory=session_factory, event_publisher=events, hold_ttl=timedelta(hours=2))


@pytest.mark.asyncio
async def test_expired_holds_are_released(locker, long_hold_locker, rooms, inventory, events):
    """Test that only holds past their expiry are canceled and freed."""
    expired_rooms = await locker.create_room_booking("user-1", [rooms["pine"].id], CHECKIN, CHECKOUT, guests_count=2)
    expired_capacity = await locker.create_per_guest_booking(
        "user-2", Property.CLEAR_LAKE, CHECKIN, CHECKOUT, guests_count=5
    )
    fresh = await long_hold_locker.create_room_booking(
        "user-3", [rooms["cedar"].id], CHECKIN, CHECKOUT, guests_count=2
    )

    result = await HoldReclaimer(locker).reclaim(now=utcnow() + timedelta(minutes=16))

    assert sorted(result.expired) == sorted([expired_rooms.id, expired_capacity.id])
    assert result.expired_count == 2
    assert result.failed == []

    assert BookingStatus((await locker.get_booking(expired_rooms.id)).status) is BookingStatus.CANCELED
    assert BookingStatus((await locker.get_booking(fresh.id)).status) is BookingStatus.HOLD

    days = stay_days(CHECKIN, CHECKOUT)
    assert not any(row.is_active for row in await inventory.room_days([rooms["pine"].id], days))
    assert all(row.held for row in await inventory.room_days([rooms["cedar"].id], days))
    assert all(row.capacity_held == 0 for row in await inventory.property_days(Property.CLEAR_LAKE, days))

    assert len(events.payloads("booking.hold_expired")) == 2
    summary = events.payloads("booking.hold_expiry_batch")
    assert len(summary) == 1
    assert (summary[0]["expired_count"], summary[0]["failed_count"]) == (2, 0)


@pytest.mark.asyncio
async def test_confirmed_holds_are_not_reclaimed(locker, rooms, events):
    hold = await locker.create_room_booking("user-1", [rooms["pine"].id], CHECKIN, CHECKOUT, guests_count=1)
    await locker.confirm_booking(hold.id)

    result = await HoldReclaimer(locker).reclaim(now=utcnow() + timedelta(hours=1))

    assert result.expired == []
    assert BookingStatus((await locker.get_booking(hold.id)).status) is BookingStatus.COMPLETE
    summary = events.payloads("booking.hold_expiry_batch")
    assert len(summary) == 1
    assert summary[0]["expired_count"] == 0


@pytest.mark.asyncio
async def test_one_failing_hold_does_not_stop_the_sweep(locker, rooms, monkeypatch):
    """Test that a release failure is recorded and the sweep carries on."""
    first = await locker.create_room_booking("user-1", [rooms["pine"].id], CHECKIN, CHECKOUT, guests_count=1)
    second = await locker.create_room_booking("user-2", [rooms["cedar"].id], CHECKIN, CHECKOUT, guests_count=1)

    original_release = locker.release_hold

    async def flaky_release(booking_id, reason="released"):
        if booking_id == first.id:
            raise TransientDatabaseError()
        return await original_release(booking_id, reason=reason)

    monkeypatch.setattr(locker, "release_hold", flaky_release)

    result = await HoldReclaimer(locker).reclaim(now=utcnow() + timedelta(minutes=30))

    assert result.failed == [first.id]
    assert result.expired == [second.id]


@pytest.mark.asyncio
async def test_failed_hold_waits_before_retry(locker, rooms, monkeypatch):
    """Test that a hold whose release failed does not block the next expired hold."""
    first = await locker.create_room_booking("user-1", [rooms["pine"].id], CHECKIN, CHECKOUT, guests_count=1)
    second = await locker.create_room_booking("user-2", [rooms["cedar"].id], CHECKIN, CHECKOUT, guests_count=1)

    original_release = locker.release_hold

    async def flaky_release(booking_id, reason="released"):
        if booking_id == first.id:
            raise TransientDatabaseError()
        return await original_release(booking_id, reason=reason)

    monkeypatch.setattr(locker, "release_hold", flaky_release)

    reclaimer = HoldReclaimer(locker, batch_size=1, retry_after=timedelta(minutes=5))
    now = utcnow() + timedelta(minutes=30)

    assert (await reclaimer.reclaim(now=now)).failed == [first.id]
    assert (await reclaimer.reclaim(now=now)).expired == [second.id]

    retried = await reclaimer.reclaim(now=now + timedelta(minutes=6))
    assert retried.failed == [first.id]
    assert retried.expired == []


@pytest.mark.asyncio
async def test_empty_sweep_publishes_summary(locker, events):
    now = utcnow()

    result = await HoldReclaimer(locker).reclaim(now=now)

    assert result.expired == []
    assert events.payloads("booking.hold_expiry_batch") == [
        {"expired_count": 0, "skipped_count": 0, "failed_count": 0, "swept_at": now.isoformat()}
    ]


@pytest.mark.asyncio
async def test_batch_size_limits_one_sweep(locker, rooms):
    for index, name in enumerate(["pine", "cedar", "lakeview"]):
        await locker.create_room_booking(f"user-{index}", [rooms[name].id], CHECKIN, CHECKOUT, guests_count=1)

    reclaimer = HoldReclaimer(locker, batch_size=2)
    now = utcnow() + timedelta(minutes=20)

    assert (await reclaimer.reclaim(now=now)).expired_count == 2
    assert (await reclaimer.reclaim(now=now)).expired_count == 1
    assert (await reclaimer.reclaim(now=now)).expired_count == 0


@pytest.mark.asyncio
async def test_worker_runs_reclaimer_on_interval(locker):
    """Test the worker lifecycle through the manager."""
    worker = HoldReclaimerWorker(HoldReclaimer(locker), interval_seconds=1)
    manager = WorkerManager()
    manager.register(worker)
    assert manager.get_worker("hold_reclaimer") is worker

    await manager.start_all()
    try:
        assert manager.get_worker_status() == {"hold_reclaimer": True}
        for _ in range(50):
            if worker.last_result is not None:
                break
            await asyncio.sleep(0.05)
    finally:
        await manager.stop_all()

    assert worker.last_result is not None
    assert manager.get_worker_status() == {"hold_reclaimer": False}
