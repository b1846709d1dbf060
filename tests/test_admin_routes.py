"""Tests for admin login, admin identity, branch scoping and the admin router."""

from __future__ import annotations

from uuid import UUID, uuid4

import pytest

from Fleet.structure import Branch
from Users.admin import AdminUser, BranchAccessError, BranchScope, session_established, with_session_retry
from api.admin_routes import admin_router
from conftest import FakeDB, api_error, build_client


def _seed_admin(db: FakeDB, email: str = "ops@example.com", role: str = "branch_admin", branch_id: UUID | None = None) -> str:
    admin_id = str(uuid4())
    db.rows("admin_users").append({"user_id": admin_id, "email": email, "role": role, "name": "Ops"})
    db.rows("admin_auth").append({"user_id": admin_id, "pass_key_hash": "hashed-secret"})
    if branch_id is not None:
        db.rows("branch_admins").append({"user_id": admin_id, "branch_id": str(branch_id)})
    return admin_id


@pytest.fixture()
def backend(fake_db: FakeDB) -> FakeDB:
    fake_db.rpc_handlers["verify_password"] = lambda params: (
        params["password"] == "secret" and params["hash"] == "hashed-secret"
    )
    fake_db.rpc_handlers["establish_admin_session"] = lambda _: {"success": True}
    return fake_db


def test_session_established_accepts_both_shapes() -> None:
    """Ensure dict and boolean answers are interpreted."""
    assert session_established({"success": True}) is True
    assert session_established({"success": False, "error": "expired"}) is False
    assert session_established(True) is True
    assert session_established(None) is False


def test_with_session_retry_retries_once_on_access_denied() -> None:
    """Ensure only access-denied errors trigger a refresh and a single retry."""
    attempts: list[int] = []
    refreshes: list[int] = []

    def operation() -> str:
        attempts.append(1)
        if len(attempts) == 1:
            raise api_error("Access denied")
        return "rows"

    def refresh() -> bool:
        refreshes.append(1)
        return True

    assert with_session_retry(operation, refresh) == "rows"
    assert len(attempts) == 2
    assert len(refreshes) == 1

    def broken() -> str:
        raise api_error("syntax error")

    with pytest.raises(Exception, match="syntax error"):
        with_session_retry(broken, refresh)
    assert len(refreshes) == 1


def test_branch_scope() -> None:
    """Ensure superadmins choose freely and branch admins are pinned."""
    branch_id = uuid4()
    other = uuid4()
    root = BranchScope(AdminUser(id=uuid4(), email="a@x.com", role="superadmin"))
    local = BranchScope(AdminUser(id=uuid4(), email="b@x.com", role="branch_admin", branch_id=branch_id))
    orphan = BranchScope(AdminUser(id=uuid4(), email="c@x.com", role="branch_admin"))

    assert root.resolve() is None
    assert root.resolve(other) == str(other)
    assert local.resolve() == str(branch_id)
    assert local.resolve(branch_id) == str(branch_id)
    with pytest.raises(BranchAccessError):
        local.resolve(other)
    with pytest.raises(BranchAccessError):
        orphan.resolve()


def test_login_success(backend: FakeDB) -> None:
    """Ensure valid credentials open a session and return the admin."""
    branch_id = uuid4()
    admin_id = _seed_admin(backend, branch_id=branch_id)
    client = build_client(backend, admin_router, "/admin")

    response = client.post("/admin/login", json={"email": " OPS@example.com ", "pass_key": "secret"})

    assert response.status_code == 200
    admin = response.json()["admin"]
    assert admin["id"] == admin_id
    assert admin["role"] == "branch_admin"
    assert admin["branch_id"] == str(branch_id)
    assert backend.calls("establish_admin_session") == [{"admin_user_id": admin_id}]


@pytest.mark.parametrize(
    ("email", "pass_key", "drop_auth", "reason"),
    [
        ("nobody@example.com", "secret", False, "admin not found"),
        ("ops@example.com", "secret", True, "authentication record not found"),
        ("ops@example.com", "guess", False, "wrong password"),
    ],
)
def test_login_rejections(backend: FakeDB, email: str, pass_key: str, drop_auth: bool, reason: str) -> None:
    """Ensure each failed login step is reported with a 401."""
    _seed_admin(backend)
    if drop_auth:
        backend.rows("admin_auth").clear()
    client = build_client(backend, admin_router, "/admin")

    response = client.post("/admin/login", json={"email": email, "pass_key": pass_key})

    assert response.status_code == 401
    assert response.json()["detail"] == f"Invalid admin credentials - {reason}"
    assert backend.calls("establish_admin_session") == []


def test_login_refused_session(backend: FakeDB) -> None:
    """Ensure a refused backend session fails the login."""
    _seed_admin(backend)
    backend.rpc_handlers["establish_admin_session"] = lambda _: {"success": False, "error": "disabled"}
    client = build_client(backend, admin_router, "/admin")

    response = client.post("/admin/login", json={"email": "ops@example.com", "pass_key": "secret"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Failed to establish admin session"


def test_current_admin_from_header(backend: FakeDB) -> None:
    """Ensure the admin is resolved from the request header."""
    admin_id = _seed_admin(backend, role="superadmin")
    client = build_client(backend, admin_router, "/admin")

    response = client.get("/admin/me", headers={"X-Admin-User-Id": admin_id})

    assert response.status_code == 200
    assert response.json()["admin"]["role"] == "superadmin"
    assert len(backend.calls("establish_admin_session")) == 1


def test_current_admin_rejections(backend: FakeDB) -> None:
    """Ensure missing, unknown and session-less admins are refused."""
    admin_id = _seed_admin(backend)
    client = build_client(backend, admin_router, "/admin")

    assert client.get("/admin/me").status_code == 403
    assert client.get("/admin/me", headers={"X-Admin-User-Id": str(uuid4())}).status_code == 403
    assert client.get("/admin/me", headers={"X-Admin-User-Id": "admin"}).status_code == 400

    backend.rpc_handlers["establish_admin_session"] = lambda _: False
    assert client.get("/admin/me", headers={"X-Admin-User-Id": admin_id}).status_code == 401


def _seed_branch(db: FakeDB, code: str = "NBO", name: str = "Nairobi") -> Branch:
    branch = Branch(name=name, code=code, city=name, address="Main street")
    db.rows("branches").append(branch.to_dict())
    return branch


def test_create_admin(fake_db: FakeDB, superadmin: AdminUser) -> None:
    """Ensure a superadmin creates a branch admin with a hashed pass key."""
    branch = _seed_branch(fake_db)
    fake_db.rpc_handlers["hash_password"] = lambda params: f"hash:{params['password']}"
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)

    response = client.post(
        "/admin/admins",
        json={"email": "New@Example.com", "password": "longenough", "branch_id": str(branch.id)},
    )

    assert response.status_code == 201
    created = response.json()["admin"]
    assert created["email"] == "new@example.com"
    assert fake_db.rows("admin_auth")[0]["pass_key_hash"] == "hash:longenough"
    assert fake_db.rows("branch_admins")[0] == {
        "id": fake_db.rows("branch_admins")[0]["id"],
        "user_id": created["id"],
        "branch_id": str(branch.id),
        "is_superadmin": False,
    }

    duplicate = client.post(
        "/admin/admins",
        json={"email": "new@example.com", "password": "longenough", "branch_id": str(branch.id)},
    )
    assert duplicate.status_code == 409


def test_create_admin_removes_partial_rows_when_auth_insert_fails(fake_db: FakeDB, superadmin: AdminUser) -> None:
    """Ensure a failed pass key write leaves no admin account without credentials."""
    branch = _seed_branch(fake_db)
    fake_db.rpc_handlers["hash_password"] = lambda params: f"hash:{params['password']}"
    fake_db.failures["admin_auth"] = api_error("connection reset")
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)

    response = client.post(
        "/admin/admins",
        json={"email": "new@example.com", "password": "longenough", "branch_id": str(branch.id)},
    )

    assert response.status_code == 500
    assert fake_db.rows("admin_users") == []
    assert fake_db.rows("branch_admins") == []


def test_create_admin_removes_partial_rows_when_branch_link_fails(fake_db: FakeDB, superadmin: AdminUser) -> None:
    """Ensure a failed branch assignment removes the account and its credentials."""
    branch = _seed_branch(fake_db)
    fake_db.rpc_handlers["hash_password"] = lambda params: f"hash:{params['password']}"
    fake_db.failures["branch_admins"] = api_error("connection reset")
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)

    response = client.post(
        "/admin/admins",
        json={"email": "new@example.com", "password": "longenough", "branch_id": str(branch.id)},
    )

    assert response.status_code == 500
    assert fake_db.rows("admin_users") == []
    assert fake_db.rows("admin_auth") == []

    del fake_db.failures["branch_admins"]
    retried = client.post(
        "/admin/admins",
        json={"email": "new@example.com", "password": "longenough", "branch_id": str(branch.id)},
    )
    assert retried.status_code == 201


def test_create_admin_validation(fake_db: FakeDB, superadmin: AdminUser, branch_admin: AdminUser) -> None:
    """Ensure branch admins need a known branch and only superadmins create admins."""
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)

    missing_branch = client.post("/admin/admins", json={"email": "x@example.com", "password": "longenough"})
    unknown_branch = client.post(
        "/admin/admins",
        json={"email": "x@example.com", "password": "longenough", "branch_id": str(uuid4())},
    )
    assert missing_branch.status_code == 400
    assert unknown_branch.status_code == 404

    restricted = build_client(fake_db, admin_router, "/admin", admin=branch_admin)
    response = restricted.post(
        "/admin/admins", json={"email": "x@example.com", "password": "longenough", "role": "superadmin"}
    )
    assert response.status_code == 403
    assert fake_db.rows("admin_users") == []


def test_reports_are_branch_scoped(fake_db: FakeDB, branch_admin: AdminUser) -> None:
    """Ensure a branch admin's reports are filtered to their branch."""
    fake_db.rpc_handlers["get_admin_bookings"] = lambda _: [{"booking_id": "b1"}]
    fake_db.rpc_handlers["get_admin_analytics"] = lambda _: {"total_bookings": 1}
    client = build_client(fake_db, admin_router, "/admin", admin=branch_admin)

    bookings = client.get("/admin/bookings")
    analytics = client.get("/admin/analytics")
    foreign = client.get("/admin/receipts", params={"branch_id": str(uuid4())})

    assert bookings.status_code == 200
    assert bookings.json()["branch_id"] == str(branch_admin.branch_id)
    assert bookings.json()["rows"] == [{"booking_id": "b1"}]
    assert fake_db.calls("get_admin_bookings") == [{"p_branch_id": str(branch_admin.branch_id)}]
    assert analytics.json()["analytics"] == {"total_bookings": 1}
    assert foreign.status_code == 403
    assert fake_db.calls("get_admin_receipts") == []


def test_superadmin_reports_cover_all_branches(fake_db: FakeDB, superadmin: AdminUser) -> None:
    """Ensure a superadmin without a filter sees every branch."""
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)

    response = client.get("/admin/receipts")

    assert response.status_code == 200
    assert response.json()["branch_id"] is None
    assert fake_db.calls("get_admin_receipts") == [{"p_branch_id": None}]


def test_export_validates_range(fake_db: FakeDB, superadmin: AdminUser) -> None:
    """Ensure the export date range is checked before querying."""
    fake_db.rpc_handlers["export_bookings_data"] = lambda _: [{"passenger": "Wanjiru"}]
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)

    reversed_range = client.get("/admin/export", params={"start_date": "2030-02-01", "end_date": "2030-01-01"})
    valid = client.get("/admin/export", params={"start_date": "2030-01-01", "end_date": "2030-02-01"})

    assert reversed_range.status_code == 400
    assert valid.status_code == 200
    assert fake_db.calls("export_bookings_data") == [
        {"p_start_date": "2030-01-01", "p_end_date": "2030-02-01", "p_branch_id": None}
    ]


def test_seat_map_report(fake_db: FakeDB, superadmin: AdminUser) -> None:
    """Ensure the admin seat map normalizes the departure time."""
    fake_db.rpc_handlers["get_admin_seat_map"] = lambda _: [{"seat_number": 1, "passenger_name": "Kamau"}]
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)
    route_id = str(uuid4())

    response = client.get(
        "/admin/seat-map",
        params={"route_id": route_id, "departure_date": "2030-01-01", "departure_time": "7:00"},
    )

    assert response.status_code == 200
    assert fake_db.calls("get_admin_seat_map")[0]["p_departure_time"] == "07:00"


def test_branch_management(fake_db: FakeDB, superadmin: AdminUser, branch_admin: AdminUser) -> None:
    """Ensure superadmins manage branches and branch admins only edit their own."""
    client = build_client(fake_db, admin_router, "/admin", admin=superadmin)

    created = client.post(
        "/admin/branches", json={"name": "Mombasa", "code": "msa", "city": "Mombasa", "address": "Moi Avenue"}
    )
    assert created.status_code == 201
    assert created.json()["branch"]["code"] == "MSA"
    branch_id = created.json()["branch"]["id"]

    duplicate = client.post(
        "/admin/branches", json={"name": "Mombasa 2", "code": "MSA", "city": "Mombasa", "address": "Nyali"}
    )
    assert duplicate.status_code == 409

    updated = client.put(f"/admin/branches/{branch_id}", json={"phone": "+254711000000"})
    assert updated.json()["branch"]["phone"] == "+254711000000"
    assert client.put(f"/admin/branches/{branch_id}", json={}).status_code == 400

    restricted = build_client(fake_db, admin_router, "/admin", admin=branch_admin)
    assert restricted.put(f"/admin/branches/{branch_id}", json={"phone": "0"}).status_code == 403
    assert restricted.delete(f"/admin/branches/{branch_id}").status_code == 403
    assert restricted.get("/admin/branches").json()["branches"] == []

    assert client.delete(f"/admin/branches/{branch_id}").status_code == 200
    assert fake_db.rows("branches") == []
