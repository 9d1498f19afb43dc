"""Integration tests for the booking RPC endpoints."""

from datetime import date, timedelta
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from cabin_booking.core.clock import utcnow
from cabin_booking.models import BookingMode, Property
from cabin_booking.services.reference import generate_reference_id
from cabin_booking.services.refund_policy import RefundPolicyService

STAY = {"checkin_date": "2030-09-05", "checkout_date": "2030-09-07"}


async def _room_hold(client, headers, room_id, guests_count=2):
    return await client.post(
        "/v1/booking/room-hold",
        json={**STAY, "room_ids": [str(room_id)], "guests_count": guests_count},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_room_hold_endpoint(test_client, auth_headers, rooms):
    """Test the room hold endpoint."""
    response = await _room_hold(test_client, auth_headers, rooms["lakeview"].id, guests_count=3)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "hold"
    assert data["booking_mode"] == "room"
    assert data["property"] == "tahoe"
    assert data["user_id"] == "user-1"
    assert data["room_ids"] == [str(rooms["lakeview"].id)]
    assert data["total_price"] == {"amount": 20000, "currency": "USD"}
    assert data["hold_expires_at"] is not None
    assert data["reference_id"].startswith("BKG-")


@pytest.mark.asyncio
async def test_booking_requires_authentication(test_client, rooms, make_token):
    """Test booking without authentication."""
    response = await _room_hold(test_client, {}, rooms["pine"].id)

    assert response.status_code == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    data = response.json()
    assert data["status"] == 401
    assert "authentication" in data["title"].lower()

    forged = {"Authorization": "Bearer " + make_token()[:-4] + "abcd"}
    response = await _room_hold(test_client, forged, rooms["pine"].id)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_conflicting_room_hold_returns_problem_details(test_client, auth_headers, make_token, rooms):
    first = await _room_hold(test_client, auth_headers, rooms["pine"].id)
    assert first.status_code == 201

    other_user = {"Authorization": f"Bearer {make_token('user-2')}"}
    response = await _room_hold(test_client, other_user, rooms["pine"].id)

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "room_unavailable"
    assert data["retryable"] is False
    assert data["conflicting_resource"]["room_ids"] == [str(rooms["pine"].id)]


@pytest.mark.asyncio
async def test_per_guest_capacity_conflict(test_client, auth_headers):
    ok = await test_client.post(
        "/v1/booking/per-guest-hold",
        json={**STAY, "property": "clear_lake", "guests_count": 10},
        headers=auth_headers,
    )
    assert ok.status_code == 201
    assert ok.json()["total_price"]["amount"] == 10 * 2 * 5000

    response = await test_client.post(
        "/v1/booking/per-guest-hold",
        json={**STAY, "property": "clear_lake", "guests_count": 3},
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["code"] == "capacity_exceeded"


@pytest.mark.asyncio
async def test_buyout_then_confirm_twice(test_client, auth_headers):
    """Test that a repeated confirmation returns the same confirmed booking."""
    hold = await test_client.post(
        "/v1/booking/buyout-hold",
        json={**STAY, "property": "tahoe", "guests_count": 8},
        headers=auth_headers,
    )
    assert hold.status_code == 201
    booking_id = hold.json()["id"]

    first = await test_client.post("/v1/booking/confirm", json={"booking_id": booking_id}, headers=auth_headers)
    second = await test_client.post("/v1/booking/confirm", json={"booking_id": booking_id}, headers=auth_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json()["status"] == second.json()["status"] == "complete"
    assert second.json()["hold_expires_at"] is None


@pytest.mark.asyncio
async def test_release_and_get(test_client, auth_headers, make_token, rooms):
    hold = await _room_hold(test_client, auth_headers, rooms["cedar"].id)
    booking_id = hold.json()["id"]

    released = await test_client.post(
        "/v1/booking/release", json={"booking_id": booking_id, "reason": "changed plans"}, headers=auth_headers
    )
    assert released.status_code == 200
    assert released.json()["status"] == "canceled"

    fetched = await test_client.post("/v1/booking/get", json={"booking_id": booking_id}, headers=auth_headers)
    assert fetched.status_code == 200
    assert fetched.json()["status"] == "canceled"

    stranger = {"Authorization": f"Bearer {make_token('user-9')}"}
    hidden = await test_client.post("/v1/booking/get", json={"booking_id": booking_id}, headers=stranger)
    assert hidden.status_code == 404

    again = await test_client.post("/v1/booking/release", json={"booking_id": booking_id}, headers=auth_headers)
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_status"


@pytest.mark.asyncio
async def test_cancel_confirmed_booking_without_policy(test_client, auth_headers, payments, rooms):
    """Test that a cancellation outside any policy is refunded immediately."""
    hold = await _room_hold(test_client, auth_headers, rooms["lakeview"].id)
    booking = hold.json()
    await test_client.post("/v1/booking/confirm", json={"booking_id": booking["id"]}, headers=auth_headers)
    payments.record_payment(SimpleNamespace(id=UUID(booking["id"]), reference_id=booking["reference_id"]), 20000)

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking["id"], "reason": "Weather"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["booking"]["status"] == "canceled"
    assert data["refund"] == {"amount": 20000, "currency": "USD"}
    assert data["requires_review"] is False
    assert data["refund_id"] == "re_1"
    assert data["pending_refund_id"] is None
    assert data["days_before_checkin"] == (date(2030, 9, 5) - utcnow().date()).days


@pytest.mark.asyncio
async def test_invalid_requests(test_client, auth_headers, rooms):
    backwards = await test_client.post(
        "/v1/booking/room-hold",
        json={"checkin_date": "2030-09-07", "checkout_date": "2030-09-05", "room_ids": [str(rooms["pine"].id)], "guests_count": 1},
        headers=auth_headers,
    )
    assert backwards.status_code == 422

    unknown_property = await test_client.post(
        "/v1/booking/buyout-hold",
        json={**STAY, "property": "lake_placid", "guests_count": 2},
        headers=auth_headers,
    )
    assert unknown_property.status_code == 422

    missing_room = await _room_hold(test_client, auth_headers, uuid4())
    assert missing_room.status_code == 404
    assert missing_room.json()["resource_type"] == "room"

    missing_booking = await test_client.post(
        "/v1/booking/confirm", json={"booking_id": str(uuid4())}, headers=auth_headers
    )
    assert missing_booking.status_code == 404


@pytest.mark.asyncio
async def test_cancel_uses_server_date(test_client, auth_headers, payments, rooms, session_factory, policy_cache):
    """Test that a client-supplied cancellation date cannot move the booking out of its refund window."""
    async with session_factory() as db:
        await RefundPolicyService(db, cache=policy_cache).replace_active_policy(
            Property.TAHOE, BookingMode.ROOM, "Standard", [(30, 100), (14, 50), (7, 0)]
        )

    checkin = utcnow().date() + timedelta(days=3)
    hold = await test_client.post(
        "/v1/booking/room-hold",
        json={
            "checkin_date": checkin.isoformat(),
            "checkout_date": (checkin + timedelta(days=2)).isoformat(),
            "room_ids": [str(rooms["lakeview"].id)],
            "guests_count": 2,
        },
        headers=auth_headers,
    )
    booking = hold.json()
    await test_client.post("/v1/booking/confirm", json={"booking_id": booking["id"]}, headers=auth_headers)
    payments.record_payment(SimpleNamespace(id=UUID(booking["id"]), reference_id=booking["reference_id"]), 10000)

    response = await test_client.post(
        "/v1/booking/cancel",
        json={
            "booking_id": booking["id"],
            "reason": "Change of plans",
            "cancellation_date": (checkin - timedelta(days=90)).isoformat(),
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["days_before_checkin"] == 3
    assert data["applied_rule_days_before_checkin"] == 7
    assert data["refund"]["amount"] == 0
    assert data["requires_review"] is True
    assert payments.refunds == []


@pytest.mark.asyncio
async def test_confirm_requires_ownership(test_client, auth_headers, make_token, rooms):
    hold = await _room_hold(test_client, auth_headers, rooms["pine"].id)
    booking_id = hold.json()["id"]

    stranger = {"Authorization": f"Bearer {make_token('user-9')}"}
    response = await test_client.post("/v1/booking/confirm", json={"booking_id": booking_id}, headers=stranger)

    assert response.status_code == 404
    fetched = await test_client.post("/v1/booking/get", json={"booking_id": booking_id}, headers=auth_headers)
    assert fetched.json()["status"] == "hold"


@pytest.mark.asyncio
async def test_client_reference_ids(test_client, auth_headers, rooms):
    """Test that client references are validated and must be unique."""
    malformed = await test_client.post(
        "/v1/booking/room-hold",
        json={**STAY, "room_ids": [str(rooms["pine"].id)], "guests_count": 1, "reference_id": "DUP"},
        headers=auth_headers,
    )
    assert malformed.status_code == 400
    assert malformed.json()["code"] == "invalid_request"

    reference = generate_reference_id()
    first = await test_client.post(
        "/v1/booking/room-hold",
        json={**STAY, "room_ids": [str(rooms["pine"].id)], "guests_count": 1, "reference_id": reference},
        headers=auth_headers,
    )
    assert first.status_code == 201
    assert first.json()["reference_id"] == reference

    duplicate = await test_client.post(
        "/v1/booking/room-hold",
        json={**STAY, "room_ids": [str(rooms["cedar"].id)], "guests_count": 1, "reference_id": reference},
        headers=auth_headers,
    )
    assert duplicate.status_code == 409
    data = duplicate.json()
    assert data["code"] == "duplicate_reference"
    assert data["retryable"] is False
    assert data["conflicting_resource"]["reference_id"] == reference
