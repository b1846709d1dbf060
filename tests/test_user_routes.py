"""Endpoint tests for the passenger profile router using a fake Supabase client."""

from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from api.user_routes import user_router
from conftest import FakeDB, api_error, build_client


@pytest.fixture()
def client_and_db(fake_db: FakeDB) -> tuple[TestClient, FakeDB]:
    """Create a TestClient with a fake database dependency override."""

    return build_client(fake_db, user_router, "/users"), fake_db


def _seed_profile(db: FakeDB, **overrides) -> str:
    user_id = str(uuid4())
    db.rows("profiles").append(
        {"id": user_id, "full_name": "Njeri Wambui", "phone": None, "avatar_url": None, "booking_count": None, **overrides}
    )
    return user_id


def test_health_check(client_and_db) -> None:
    client, _ = client_and_db

    response = client.get("/users/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "User service is healthy"


def test_get_profile(client_and_db) -> None:
    """Ensure a stored profile is returned with defaults for null counters."""
    client, db = client_and_db
    user_id = _seed_profile(db)

    response = client.get(f"/users/{user_id}/profile")

    assert response.status_code == status.HTTP_200_OK
    profile = response.json()["profile"]
    assert profile["full_name"] == "Njeri Wambui"
    assert profile["booking_count"] == 0
    assert profile["is_online"] is False


def test_get_profile_invalid_and_missing(client_and_db) -> None:
    """Ensure malformed ids are a 400 and unknown users a 404."""
    client, _ = client_and_db

    invalid = client.get("/users/not-a-uuid/profile")
    missing = client.get(f"/users/{uuid4()}/profile")

    assert invalid.status_code == status.HTTP_400_BAD_REQUEST
    assert invalid.json()["detail"] == "The supplied user id is not a valid UUID4."
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_update_profile(client_and_db) -> None:
    """Ensure only the supplied fields change and the update is stamped."""
    client, db = client_and_db
    user_id = _seed_profile(db)

    response = client.put(f"/users/{user_id}/profile", json={"phone": "+254722000000"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["profile"]["phone"] == "+254722000000"
    stored = db.rows("profiles")[0]
    assert stored["full_name"] == "Njeri Wambui"
    assert "updated_at" in stored


def test_update_profile_requires_fields(client_and_db) -> None:
    client, db = client_and_db
    user_id = _seed_profile(db)

    response = client.put(f"/users/{user_id}/profile", json={})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "At least one field must be provided for update."


def test_update_profile_backend_failure(client_and_db) -> None:
    """Ensure database failures surface as a 500."""
    client, db = client_and_db
    user_id = _seed_profile(db)
    db.failures["profiles"] = api_error("connection refused")

    response = client.put(f"/users/{user_id}/profile", json={"full_name": "Njeri W."})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "Unable to update profile due to an internal error."
