"""Endpoint tests for the booking router using a fake Supabase client."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from Fleet.structure import Route
from Users.admin import AdminUser
from api.booking_routes import booking_router
from conftest import FakeDB, api_error, build_client

DEPARTURE = date.today() + timedelta(days=5)


@pytest.fixture()
def route(fake_db: FakeDB) -> Route:
    route = Route(
        from_location="Nairobi",
        to_location="Kisumu",
        duration="6h",
        departure_times=["08:00", "20:00"],
        price=1200,
        branch_id=uuid4(),
    )
    fake_db.rows("routes").append(route.to_dict())
    return route


@pytest.fixture()
def client_and_db(fake_db: FakeDB, superadmin: AdminUser) -> tuple[TestClient, FakeDB]:
    """Create a TestClient with a fake database dependency override."""

    return build_client(fake_db, booking_router, "/bookings", admin=superadmin), fake_db


def _booking_payload(route: Route, **overrides: Any) -> dict[str, Any]:
    payload = {
        "user_id": str(uuid4()),
        "route_id": str(route.id),
        "departure_date": DEPARTURE.isoformat(),
        "departure_time": "08:00",
        "seat_numbers": [3, 4],
        "fleet_price_multiplier": 1.5,
        "payment_method": "card",
    }
    payload.update(overrides)
    return payload


def _assign(bus_id: str, fleet_name: str = "Executive", is_fallback: bool = False):
    return lambda _: [
        {"assigned_bus_id": bus_id, "fleet_name": fleet_name, "available_seats": 20, "is_fallback": is_fallback}
    ]


def test_create_booking_happy_path(client_and_db, route: Route) -> None:
    """Ensure a booking is created through the backend and the receipt is updated."""
    client, db = client_and_db
    bus_id = str(uuid4())
    booking_id = str(uuid4())
    receipt_id = str(uuid4())
    db.rows("receipts").append({"id": receipt_id, "payment_method": None})
    db.rpc_handlers["assign_bus_to_booking"] = _assign(bus_id)
    db.rpc_handlers["create_booking_with_branch"] = lambda params: {
        "booking_id": booking_id,
        "receipt_id": receipt_id,
        "receipt_number": "RCP-0001",
        "amount_paid": params["p_price"],
    }

    response = client.post("/bookings", json=_booking_payload(route))

    assert response.status_code == 201
    confirmation = response.json()["confirmation"]
    assert confirmation["booking_id"] == booking_id
    assert confirmation["amount_paid"] == 3600
    assert confirmation["bus"]["fleet_name"] == "Executive"
    assert confirmation["warning"] is None

    params = db.calls("create_booking_with_branch")[0]
    assert params["p_status"] == "upcoming"
    assert params["p_arrival_time"] == "18:00"
    assert params["p_seat_numbers"] == ["3", "4"]
    assert params["p_branch_id"] == str(route.branch_id)
    assert db.calls("initialize_seat_availability")[0]["p_bus_id"] == bus_id
    assert db.rows("receipts")[0]["payment_method"] == "card"


def test_create_booking_warns_when_preferred_bus_full(client_and_db, route: Route) -> None:
    """Ensure a fallback bus assignment is reported as a warning."""
    client, db = client_and_db
    db.rpc_handlers["assign_bus_to_booking"] = _assign(str(uuid4()), fleet_name="Standard", is_fallback=True)
    db.rpc_handlers["create_booking_with_branch"] = lambda _: {"booking_id": str(uuid4())}

    response = client.post("/bookings", json=_booking_payload(route, bus_id=str(uuid4())))

    assert response.status_code == 201
    assert response.json()["confirmation"]["warning"] == (
        "Your preferred bus was full. We've assigned you to Standard instead."
    )


def test_create_booking_over_seat_limit_returns_400(client_and_db, route: Route) -> None:
    """Ensure more seats than one booking may hold are refused before any bus is assigned."""
    client, db = client_and_db
    db.rpc_handlers["assign_bus_to_booking"] = _assign(str(uuid4()))

    response = client.post("/bookings", json=_booking_payload(route, seat_numbers=[1, 2, 3, 4, 5, 6]))

    assert response.status_code == 400
    assert response.json()["detail"] == "You can only select up to 5 seats"
    assert db.calls("assign_bus_to_booking") == []
    assert db.calls("create_booking_with_branch") == []


@pytest.mark.parametrize("rows", [[], [{"assigned_bus_id": str(uuid4()), "fleet_name": "null", "available_seats": 0}]])
def test_create_booking_without_bus_returns_503(client_and_db, route: Route, rows) -> None:
    """Ensure a missing or unnamed bus assignment is a 503."""
    client, db = client_and_db
    db.rpc_handlers["assign_bus_to_booking"] = lambda _: rows

    response = client.post("/bookings", json=_booking_payload(route))

    assert response.status_code == 503
    assert response.json()["detail"] == "No buses available for your selection"
    assert db.calls("create_booking_with_branch") == []


def test_create_booking_without_branch_returns_400(client_and_db, fake_db: FakeDB) -> None:
    """Ensure a booking needs a branch from the route or the backend."""
    client, db = client_and_db
    route = Route(from_location="Eldoret", to_location="Nakuru", duration="3h", departure_times=["09:00"], price=700)
    db.rows("routes").append(route.to_dict())
    db.rpc_handlers["assign_bus_to_booking"] = _assign(str(uuid4()))
    db.rpc_handlers["get_branches_for_booking"] = lambda _: []

    response = client.post("/bookings", json=_booking_payload(route))

    assert response.status_code == 400
    assert response.json()["detail"] == "No branch available for booking"


def test_create_booking_unknown_route_returns_404(client_and_db, route: Route) -> None:
    """Ensure an unknown route is a 404."""
    client, _ = client_and_db

    response = client.post("/bookings", json=_booking_payload(route, route_id=str(uuid4())))

    assert response.status_code == 404


def test_create_booking_backend_failure_returns_500(client_and_db, route: Route) -> None:
    """Ensure a failing booking procedure is a 500."""
    client, db = client_and_db
    db.rpc_handlers["assign_bus_to_booking"] = _assign(str(uuid4()))

    def fail(_: dict[str, Any]) -> Any:
        raise api_error("insert failed")

    db.rpc_handlers["create_booking_with_branch"] = fail

    response = client.post("/bookings", json=_booking_payload(route))

    assert response.status_code == 500


def test_manual_booking_creates_booking_record_and_receipt(client_and_db, route: Route, superadmin) -> None:
    """Ensure a walk-in booking writes the booking, the manual record and a paid receipt."""
    client, db = client_and_db

    response = client.post(
        "/bookings/manual",
        json={
            "passenger_name": "Otieno",
            "passenger_phone": "+254700000000",
            "from_location": "Nairobi",
            "to_location": "Kisumu",
            "departure_date": DEPARTURE.isoformat(),
            "departure_time": "20:00",
            "seat_numbers": "7, 8, x",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["booking"]["status"] == "confirmed"
    assert body["booking"]["seat_numbers"] == ["7", "8"]
    assert body["booking"]["price"] == 2400
    assert body["receipt_id"] == db.rows("receipts")[0]["id"]

    manual = db.rows("manual_bookings")[0]
    assert manual["admin_email"] == superadmin.email
    assert manual["passenger_email"] is None
    receipt = db.rows("receipts")[0]
    assert receipt["payment_status"] == "Paid"
    assert receipt["payment_method"] == "Manual"
    assert receipt["amount"] == 2400


@pytest.mark.parametrize(
    ("overrides", "detail"),
    [
        ({"passenger_name": ""}, "Passenger name is required"),
        ({"to_location": "Garissa"}, "Please select a valid route"),
        ({"seat_numbers": "aisle"}, "Please provide valid seat numbers"),
    ],
)
def test_manual_booking_validation(client_and_db, route: Route, overrides, detail) -> None:
    """Ensure manual booking problems are reported with a 400."""
    client, db = client_and_db
    form = {
        "passenger_name": "Otieno",
        "from_location": "Nairobi",
        "to_location": "Kisumu",
        "departure_date": DEPARTURE.isoformat(),
        "departure_time": "20:00",
        "seat_numbers": "1",
    }
    form.update(overrides)

    response = client.post("/bookings/manual", json=form)

    assert response.status_code == 400
    assert response.json()["detail"] == detail
    assert db.rows("bookings") == []


def _stored_booking(db: FakeDB, route: Route, user_id: str, status: str = "upcoming", created_at: str = "2024-01-01T00:00:00+00:00") -> str:
    booking_id = str(uuid4())
    db.rows("bookings").append(
        {
            "id": booking_id,
            "user_id": user_id,
            "route_id": str(route.id),
            "from_location": route.from_location,
            "to_location": route.to_location,
            "departure_date": DEPARTURE.isoformat(),
            "departure_time": "08:00",
            "arrival_time": "18:00",
            "seat_numbers": ["1"],
            "price": 1200,
            "status": status,
            "created_at": created_at,
            "updated_at": created_at,
        }
    )
    return booking_id


def test_list_user_bookings_newest_first(client_and_db, route: Route) -> None:
    """Ensure a passenger's bookings are listed newest first."""
    client, db = client_and_db
    user_id = str(uuid4())
    older = _stored_booking(db, route, user_id, created_at="2024-01-01T00:00:00+00:00")
    newer = _stored_booking(db, route, user_id, created_at="2024-02-01T00:00:00+00:00")
    _stored_booking(db, route, str(uuid4()))

    response = client.get(f"/bookings/user/{user_id}")

    assert response.status_code == 200
    assert [booking["id"] for booking in response.json()["bookings"]] == [newer, older]


def test_get_and_cancel_booking(client_and_db, route: Route) -> None:
    """Ensure a booking can be read and cancelled once."""
    client, db = client_and_db
    booking_id = _stored_booking(db, route, str(uuid4()))

    assert client.get(f"/bookings/{booking_id}").json()["booking"]["id"] == booking_id

    cancelled = client.put(f"/bookings/{booking_id}/cancel")
    assert cancelled.status_code == 200
    assert db.rows("bookings")[0]["status"] == "cancelled"

    again = client.put(f"/bookings/{booking_id}/cancel")
    assert again.status_code == 409


def test_cancel_booking_created_ahead_of_clock(client_and_db, route: Route) -> None:
    """Ensure a creation time from a clock running ahead never lands after the cancellation stamp."""
    client, db = client_and_db
    booking_id = _stored_booking(db, route, str(uuid4()), created_at="2099-01-01T00:00:00+00:00")

    cancelled = client.put(f"/bookings/{booking_id}/cancel")

    assert cancelled.status_code == 200
    stored = db.rows("bookings")[0]
    assert stored["status"] == "cancelled"
    assert stored["updated_at"] == "2099-01-01T00:00:00+00:00"


def test_get_booking_invalid_and_missing(client_and_db) -> None:
    """Ensure malformed and unknown booking ids are rejected."""
    client, _ = client_and_db

    assert client.get("/bookings/not-a-uuid").status_code == 400
    assert client.get(f"/bookings/{uuid4()}").status_code == 404


def test_booking_draft_roundtrip(client_and_db) -> None:
    """Ensure drafts are merged on save and removed on clear."""
    client, _ = client_and_db
    user_id = str(uuid4())

    assert client.get(f"/bookings/drafts/{user_id}").json()["draft"] is None

    client.put(f"/bookings/drafts/{user_id}", json={"from_location": "Nairobi", "step": 1})
    saved = client.put(f"/bookings/drafts/{user_id}", json={"seats": [2, 3], "step": 2}).json()["draft"]
    assert saved["from_location"] == "Nairobi"
    assert saved["seats"] == [2, 3]

    assert client.delete(f"/bookings/drafts/{user_id}").json()["message"] == "Booking draft cleared"
    assert client.get(f"/bookings/drafts/{user_id}").json()["draft"] is None


def test_successful_booking_clears_draft(client_and_db, route: Route) -> None:
    """Ensure the passenger's draft is dropped once the booking exists."""
    client, db = client_and_db
    payload = _booking_payload(route)
    db.rpc_handlers["assign_bus_to_booking"] = _assign(str(uuid4()))
    db.rpc_handlers["create_booking_with_branch"] = lambda _: {"booking_id": str(uuid4())}

    client.put(f"/bookings/drafts/{payload['user_id']}", json={"step": 3})
    assert client.post("/bookings", json=payload).status_code == 201

    assert client.get(f"/bookings/drafts/{payload['user_id']}").json()["draft"] is None
