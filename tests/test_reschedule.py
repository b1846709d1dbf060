"""Tests for reschedule penalties, decisions and the reschedule router."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from Bookings.reschedule import (
    RescheduleDecision,
    calculate_reschedule_penalty,
    decision_updates,
    request_status_text,
)
from Database.rpc import BackendRPC
from Users.admin import AdminUser
from api.reschedule_routes import reschedule_router
from conftest import FakeDB, api_error, build_client

NOW = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("departure", "expected"),
    [
        (NOW + timedelta(hours=2), 500),
        (NOW + timedelta(hours=24), 500),
        (NOW + timedelta(hours=25), 0),
        (NOW - timedelta(hours=3), 500),
    ],
)
def test_reschedule_penalty_window(departure: datetime, expected: int) -> None:
    """Ensure the penalty applies within the window, including past departures."""
    penalty = calculate_reschedule_penalty(
        departure.date(), departure.strftime("%H:%M"), now=NOW, tz_name="UTC"
    )

    assert penalty == expected


def test_reschedule_penalty_uses_configured_amount() -> None:
    """Ensure amount and window come from the arguments."""
    departure = NOW + timedelta(hours=40)

    penalty = calculate_reschedule_penalty(
        departure.date(), departure.strftime("%H:%M"), 750, 48, now=NOW, tz_name="UTC"
    )

    assert penalty == 750


@pytest.mark.parametrize(("departure_time", "expected"), [("10:00", 500), ("12:00", 0)])
def test_reschedule_penalty_reads_departure_in_local_time(departure_time: str, expected: int) -> None:
    """Ensure a Nairobi departure is compared in East Africa Time, three hours ahead of UTC."""
    now = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)

    penalty = calculate_reschedule_penalty(date(2030, 1, 2), departure_time, now=now)

    assert penalty == expected
    assert calculate_reschedule_penalty(date(2030, 1, 2), "10:00", now=now, tz_name="UTC") == 0


def test_decision_updates() -> None:
    """Ensure approvals with a fee await payment and rejections drop the fee."""
    admin_id = uuid4()

    approved = decision_updates(RescheduleDecision(status="approved", fee_amount=500), admin_id, NOW)
    assert approved["payment_status"] == "awaiting_payment"
    assert approved["fee_amount"] == 500
    assert approved["processed_by"] == str(admin_id)
    assert approved["processed_at"] == NOW.isoformat()

    free = decision_updates(RescheduleDecision(status="approved"), admin_id, NOW)
    assert free["payment_status"] == "not_applicable"

    rejected = decision_updates(RescheduleDecision(status="rejected", fee_amount=500), admin_id, NOW)
    assert rejected["fee_amount"] == 0
    assert rejected["payment_status"] == "not_applicable"


@pytest.mark.parametrize(
    ("status", "payment_status", "text"),
    [
        ("approved", "awaiting_payment", "Approved - Awaiting Payment"),
        ("approved", "paid", "Paid & Rescheduled"),
        ("approved", "not_applicable", "Approved"),
        ("pending", None, "Pending"),
        ("rejected", None, "Rejected"),
    ],
)
def test_request_status_text(status: str, payment_status: str | None, text: str) -> None:
    """Ensure each status combination has a display label."""
    assert request_status_text(status, payment_status) == text


@pytest.fixture()
def client_and_db(fake_db: FakeDB, superadmin: AdminUser) -> tuple[TestClient, FakeDB]:
    return build_client(fake_db, reschedule_router, "/reschedule", admin=superadmin), fake_db


def _seed_booking(db: FakeDB, departure_date: date, departure_time: str = "08:00") -> dict[str, Any]:
    route_id = str(uuid4())
    db.rows("routes").append({"id": route_id})
    booking = {
        "id": str(uuid4()),
        "user_id": str(uuid4()),
        "route_id": route_id,
        "from_location": "Nairobi",
        "to_location": "Nakuru",
        "departure_date": departure_date.isoformat(),
        "departure_time": departure_time,
        "arrival_time": "18:00",
        "seat_numbers": ["2"],
        "price": 900,
        "status": "upcoming",
    }
    db.rows("bookings").append(booking)
    return booking


def _submission(booking: dict[str, Any], **overrides: Any) -> dict[str, Any]:
    payload = {
        "booking_id": booking["id"],
        "user_id": booking["user_id"],
        "requested_route_id": booking["route_id"],
        "requested_departure_date": (date.today() + timedelta(days=10)).isoformat(),
        "requested_departure_time": "10:00",
        "reason": "Meeting moved",
    }
    payload.update(overrides)
    return payload


def test_submit_far_from_departure_has_no_fee(client_and_db) -> None:
    """Ensure a request well ahead of departure is stored without a fee."""
    client, db = client_and_db
    booking = _seed_booking(db, date.today() + timedelta(days=7))

    response = client.post("/reschedule", json=_submission(booking))

    assert response.status_code == 201
    body = response.json()
    assert body["request"]["fee_amount"] == 0
    assert body["status_text"] == "Pending"
    stored = db.rows("reschedule_requests")[0]
    assert stored["current_departure_time"] == "08:00"
    assert stored["reason"] == "Meeting moved"


def test_submit_close_to_departure_requires_accepting_penalty(client_and_db) -> None:
    """Ensure the penalty must be accepted before the request is stored."""
    client, db = client_and_db
    booking = _seed_booking(db, date.today() - timedelta(days=1))

    refused = client.post("/reschedule", json=_submission(booking))
    assert refused.status_code == 409
    assert "KES 500" in refused.json()["detail"]
    assert db.rows("reschedule_requests") == []

    accepted = client.post("/reschedule", json=_submission(booking, accept_penalty=True))
    assert accepted.status_code == 201
    assert accepted.json()["request"]["fee_amount"] == 500


def test_submit_rejects_foreign_and_duplicate_requests(client_and_db) -> None:
    """Ensure passengers only reschedule their own bookings, once at a time."""
    client, db = client_and_db
    booking = _seed_booking(db, date.today() + timedelta(days=7))

    foreign = client.post("/reschedule", json=_submission(booking, user_id=str(uuid4())))
    assert foreign.status_code == 403

    assert client.post("/reschedule", json=_submission(booking)).status_code == 201
    duplicate = client.post("/reschedule", json=_submission(booking))
    assert duplicate.status_code == 409


def test_submit_unknown_booking_returns_404(client_and_db) -> None:
    """Ensure an unknown booking is a 404."""
    client, db = client_and_db
    booking = _seed_booking(db, date.today() + timedelta(days=7))

    response = client.post("/reschedule", json=_submission(booking, booking_id=str(uuid4())))

    assert response.status_code == 404


def test_decision_flow(client_and_db, superadmin: AdminUser) -> None:
    """Ensure an admin decides a pending request once."""
    client, db = client_and_db
    booking = _seed_booking(db, date.today() + timedelta(days=7))
    request_id = client.post("/reschedule", json=_submission(booking)).json()["request"]["id"]

    decided = client.put(
        f"/reschedule/{request_id}/decision",
        json={"status": "approved", "admin_notes": "Seat available", "fee_amount": 300},
    )
    assert decided.status_code == 200
    body = decided.json()
    assert body["request"]["status"] == "approved"
    assert body["request"]["payment_status"] == "awaiting_payment"
    assert body["status_text"] == "Approved - Awaiting Payment"
    assert db.rows("reschedule_requests")[0]["processed_by"] == str(superadmin.id)

    again = client.put(f"/reschedule/{request_id}/decision", json={"status": "rejected"})
    assert again.status_code == 409


def test_user_listing_filters_and_orders(client_and_db) -> None:
    """Ensure a passenger sees their requests newest first, optionally by status."""
    client, db = client_and_db
    user_id = str(uuid4())
    base = {
        "booking_id": str(uuid4()),
        "user_id": user_id,
        "current_route_id": str(uuid4()),
        "current_departure_date": "2030-01-01",
        "current_departure_time": "08:00",
        "requested_route_id": str(uuid4()),
        "requested_departure_date": "2030-01-02",
        "requested_departure_time": "08:00",
    }
    db.rows("reschedule_requests").extend(
        [
            {**base, "id": str(uuid4()), "status": "pending", "created_at": "2030-01-01T00:00:00+00:00"},
            {**base, "id": str(uuid4()), "status": "rejected", "created_at": "2030-01-03T00:00:00+00:00"},
        ]
    )

    everything = client.get(f"/reschedule/user/{user_id}").json()["requests"]
    pending = client.get(f"/reschedule/user/{user_id}", params={"status_filter": "pending"}).json()["requests"]

    assert [request["status"] for request in everything] == ["rejected", "pending"]
    assert [request["status"] for request in pending] == ["pending"]


def test_admin_listing_retries_after_session_refresh(fake_db: FakeDB, superadmin: AdminUser, monkeypatch) -> None:
    """Ensure an access-denied read refreshes the admin session and retries once."""
    client = build_client(fake_db, reschedule_router, "/reschedule", admin=superadmin)
    fake_db.failures["reschedule_requests"] = api_error("Access denied: admin session required")
    fake_db.rpc_handlers["establish_admin_session"] = lambda _: {"success": True}

    establish = BackendRPC.establish_admin_session

    def refresh(self, admin_user_id):
        fake_db.failures.pop("reschedule_requests", None)
        return establish(self, admin_user_id)

    monkeypatch.setattr(BackendRPC, "establish_admin_session", refresh)

    response = client.get("/reschedule/admin")

    assert response.status_code == 200
    assert response.json()["requests"] == []
    assert len(fake_db.calls("establish_admin_session")) == 1


def test_admin_listing_propagates_other_errors(fake_db: FakeDB, superadmin: AdminUser) -> None:
    """Ensure errors other than access denied are not retried."""
    client = build_client(fake_db, reschedule_router, "/reschedule", admin=superadmin)
    fake_db.failures["reschedule_requests"] = api_error("relation does not exist")

    response = client.get("/reschedule/admin")

    assert response.status_code == 500
    assert fake_db.calls("establish_admin_session") == []
