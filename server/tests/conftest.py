"""Test configuration and fixtures."""

import os

# Keep module-level engines off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RUN_BACKGROUND_WORKERS", "false")

from typing import Any, Optional  # noqa: E402
from uuid import uuid4  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from cabin_booking.core.config import settings  # noqa: E402
from cabin_booking.core.database import build_engine, build_session_factory, init_db  # noqa: E402
from cabin_booking.models import Booking, PendingRefund, Property, PropertyInventory, Room, RoomInventory  # noqa: E402
from cabin_booking.services.booking_locker import BookingLocker  # noqa: E402
from cabin_booking.services.collaborators import (  # noqa: E402
    NightlyRatePriceLookup,
    PaymentGatewayError,
    PaymentRecord,
    RefundReceipt,
)
from cabin_booking.services.inventory_service import InventoryService  # noqa: E402
from cabin_booking.services.refund_policy import DatabaseRefundPolicyLookup, RefundPolicyCache  # noqa: E402
from cabin_booking.services.refund_service import CancellationRefundResolver  # noqa: E402


NIGHTLY_RATES = {
    ("tahoe", "room"): 10000,
    ("tahoe", "buyout"): 90000,
    ("clear_lake", "per_guest"): 5000,
    ("clear_lake", "buyout"): 60000,
}


class RecordingEventPublisher:
    """Keeps published events in memory."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


class InMemoryPaymentGateway:
    """Payment gateway double recording captured payments and issued refunds."""

    def __init__(self):
        self.payments: dict[Any, PaymentRecord] = {}
        self.refunds: list[RefundReceipt] = []
        self.fail_with: Optional[str] = None

    def record_payment(self, booking: Booking, amount: int, currency: str = "USD") -> PaymentRecord:
        record = PaymentRecord(payment_id=f"pay_{booking.reference_id}", amount=amount, currency=currency)
        self.payments[booking.id] = record
        return record

    async def lookup_payment(self, booking: Booking) -> Optional[PaymentRecord]:
        return self.payments.get(booking.id)

    async def refund(self, payment_id: str, amount: int, reason: str) -> RefundReceipt:
        if self.fail_with:
            raise PaymentGatewayError(self.fail_with)
        receipt = RefundReceipt(refund_id=f"re_{len(self.refunds) + 1}", payment_id=payment_id, amount=amount)
        self.refunds.append(receipt)
        return receipt


class InventoryReader:
    """Reads inventory rows in short-lived sessions so no test holds the SQLite write lock."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def property_days(self, property_name: Property, days) -> list[PropertyInventory]:
        async with self.session_factory() as db:
            return await InventoryService(db).get_property_days(property_name, days)

    async def room_days(self, room_ids, days) -> list[RoomInventory]:
        async with self.session_factory() as db:
            return await InventoryService(db).get_room_days(room_ids, days)

    async def pending_refunds(self) -> list[PendingRefund]:
        async with self.session_factory() as db:
            result = await db.execute(select(PendingRefund))
            return list(result.scalars())


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine; writers are serialized by BEGIN IMMEDIATE."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def rooms(session_factory) -> dict[str, Room]:
    """Seed rooms at both properties, keyed by room name."""
    seeded = {
        "lakeview": Room(id=uuid4(), property=Property.TAHOE.value, name="Lakeview", capacity_max=4),
        "pine": Room(id=uuid4(), property=Property.TAHOE.value, name="Pine", capacity_max=2),
        "cedar": Room(id=uuid4(), property=Property.TAHOE.value, name="Cedar", capacity_max=2),
        "dock": Room(id=uuid4(), property=Property.CLEAR_LAKE.value, name="Dock House", capacity_max=6),
    }
    async with session_factory() as db:
        db.add_all(seeded.values())
        await db.commit()
    return seeded


@pytest.fixture
def events():
    return RecordingEventPublisher()


@pytest.fixture
def payments():
    return InMemoryPaymentGateway()


@pytest.fixture
def price_lookup():
    return NightlyRatePriceLookup(rates=NIGHTLY_RATES)


@pytest.fixture
def locker(session_factory, price_lookup, events, rooms):
    return BookingLocker(
        session_factory=session_factory,
        price_lookup=price_lookup,
        event_publisher=events,
    )


@pytest.fixture
def policy_cache(session_factory):
    return RefundPolicyCache(DatabaseRefundPolicyLookup(session_factory), ttl_seconds=0)


@pytest.fixture
def resolver(locker, payments, policy_cache, events):
    return CancellationRefundResolver(locker, payments, policy_cache, events)


@pytest.fixture
def make_token():
    """Build bearer tokens signed with the configured secret."""

    def _make(user_id: str = "user-1", **claims: Any) -> str:
        return jwt.encode({"sub": user_id, **claims}, settings.bearer_token_secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory, price_lookup, payments, events, policy_cache, rooms):
    """Create the application wired to the test database and collaborator doubles."""
    from cabin_booking.main import create_app

    app = create_app(
        session_factory=session_factory,
        price_lookup=price_lookup,
        payment_gateway=payments,
        event_publisher=events,
        policy_lookup=policy_cache,
        run_workers=False,
    )
    yield app


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def inventory(session_factory):
    return InventoryReader(session_factory)
