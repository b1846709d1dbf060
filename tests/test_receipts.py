"""Tests for receipt verification helpers and the receipt router."""

import json
from uuid import uuid4

import pytest

from Bookings.receipts import is_valid_uuid, parse_verification_response
from api.receipt_routes import receipt_router
from conftest import FakeDB, build_client


def test_is_valid_uuid() -> None:
    assert is_valid_uuid(str(uuid4()))
    assert is_valid_uuid(f"  {str(uuid4()).upper()} ")
    assert not is_valid_uuid("RCP-0001")
    assert not is_valid_uuid("00000000-0000-0000-0000-000000000000")


@pytest.mark.parametrize(
    ("data", "valid", "message"),
    [
        ({"valid": True, "message": "Receipt is valid", "amount": 900}, True, "Receipt is valid"),
        (json.dumps({"valid": False, "message": "Booking mismatch"}), False, "Booking mismatch"),
        ("not json", False, "Invalid response format"),
        ("[1, 2]", False, "Invalid response format"),
        ({"unexpected": True}, False, "Invalid response format"),
        (None, False, "Receipt not found"),
        ([], False, "Receipt not found"),
    ],
)
def test_parse_verification_response(data, valid: bool, message: str) -> None:
    """Ensure every backend answer shape becomes a verification result."""
    verification = parse_verification_response(data)

    assert verification.valid is valid
    assert verification.message == message


@pytest.fixture()
def client_and_db(fake_db: FakeDB, superadmin):
    return build_client(fake_db, receipt_router, "/receipts", admin=superadmin), fake_db


def test_verify_endpoint(client_and_db) -> None:
    """Ensure verification forwards both ids and normalizes the answer."""
    client, db = client_and_db
    receipt_id = str(uuid4())
    booking_id = str(uuid4())
    db.rpc_handlers["verify_receipt"] = lambda _: {"valid": True, "message": "Receipt is valid", "receipt_number": "R-1"}

    response = client.post("/receipts/verify", json={"receipt_id": f" {receipt_id} ", "booking_id": booking_id})

    assert response.status_code == 200
    assert response.json()["verification"]["receipt_number"] == "R-1"
    assert db.calls("verify_receipt") == [{"p_receipt_id": receipt_id, "p_booking_id": booking_id}]


def test_verify_endpoint_rejects_malformed_id(client_and_db) -> None:
    """Ensure a malformed receipt id never reaches the backend."""
    client, db = client_and_db

    response = client.post("/receipts/verify", json={"receipt_id": "RCP-0001"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid receipt ID format. Please enter a valid UUID."
    assert db.calls("verify_receipt") == []


def test_receipt_details(client_and_db) -> None:
    """Ensure details are unwrapped from a list and missing receipts are a 404."""
    client, db = client_and_db
    receipt_id = str(uuid4())
    db.rpc_handlers["get_receipt_details"] = lambda _: [{"receipt_number": "R-7", "amount": 1200}]

    found = client.get(f"/receipts/{receipt_id}")
    assert found.status_code == 200
    assert found.json()["receipt"]["receipt_number"] == "R-7"

    db.rpc_handlers["get_receipt_details"] = lambda _: []
    assert client.get(f"/receipts/{receipt_id}").status_code == 404


def test_sign_off(client_and_db, superadmin) -> None:
    """Ensure the signing admin is passed to the backend."""
    client, db = client_and_db
    receipt_id = str(uuid4())
    db.rpc_handlers["sign_off_receipt"] = lambda _: {"valid": True, "message": "Receipt signed off"}

    response = client.post(f"/receipts/{receipt_id}/sign-off", json={"notes": "Checked at gate"})

    assert response.status_code == 200
    assert response.json()["verification"]["valid"] is True
    assert db.calls("sign_off_receipt") == [
        {"p_receipt_id": receipt_id, "p_admin_user_id": str(superadmin.id), "p_notes": "Checked at gate"}
    ]
