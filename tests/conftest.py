"""Shared fixtures: an in-memory fake of the Supabase client and app builders."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Any, Callable, Optional
from uuid import uuid4

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from Bookings.drafts import BookingDraftStore  # noqa: E402
from Database.config import BookingSettings  # noqa: E402
from Database.deps import get_db, get_settings  # noqa: E402
from Users.admin import AdminUser  # noqa: E402
from api.security import get_current_admin  # noqa: E402


def api_error(message: str, code: str = "P0001") -> APIError:
    """Build a postgrest APIError the way the client raises it."""

    return APIError({"message": message, "code": code, "hint": None, "details": None})


class FakeSupabaseResponse:
    """Minimal Supabase-like response wrapper."""

    def __init__(self, data: Any) -> None:
        self.data = data


class FakeQuery:
    """In-memory table query with the subset of the postgrest builder the routers use."""

    def __init__(self, db: "FakeDB", table_name: str) -> None:
        self._db = db
        self._table_name = table_name
        self._store = db.tables.setdefault(table_name, [])
        self._action: str | None = None
        self._filters: list[Callable[[dict[str, Any]], bool]] = []
        self._orders: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._single = False
        self._payload: Any = None

    def select(self, *_: str) -> "FakeQuery":
        self._action = "select"
        return self

    def insert(self, payload: dict[str, Any] | list[dict[str, Any]]) -> "FakeQuery":
        self._action = "insert"
        self._payload = payload
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self._action = "update"
        self._payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self._action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: str(row.get(column)) == str(value))
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        wanted = {str(value) for value in values}
        self._filters.append(lambda row: str(row.get(column)) in wanted)
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) is not None and str(row.get(column)) >= str(value))
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) is not None and str(row.get(column)) <= str(value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._orders.append((column, desc))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def single(self) -> "FakeQuery":
        self._single = True
        return self

    def _filter_rows(self) -> list[dict[str, Any]]:
        return [row for row in self._store if all(check(row) for check in self._filters)]

    def _check_unique(self, rows: list[dict[str, Any]]) -> None:
        for column in self._db.unique.get(self._table_name, ()):
            for row in rows:
                if any(str(existing.get(column)) == str(row.get(column)) for existing in self._store):
                    raise api_error("duplicate key value violates unique constraint", code="23505")

    def execute(self) -> FakeSupabaseResponse:
        failure = self._db.failures.get(self._table_name)
        if failure is not None:
            raise failure

        if self._action == "select":
            data = self._filter_rows()
            for column, desc in reversed(self._orders):
                data.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
            if self._limit is not None:
                data = data[: self._limit]
        elif self._action == "insert":
            rows = self._payload if isinstance(self._payload, list) else [self._payload]
            rows = [{"id": str(uuid4()), **row} for row in rows]
            self._check_unique(rows)
            self._store.extend(rows)
            data = rows
        elif self._action == "update":
            data = self._filter_rows()
            for row in data:
                row.update(self._payload or {})
        elif self._action == "delete":
            data = self._filter_rows()
            for row in data:
                self._store.remove(row)
        else:
            raise ValueError("Unsupported action for FakeQuery.")

        if self._single:
            data = data[0] if data else None
        return FakeSupabaseResponse(data)


class FakeRPC:

    def __init__(self, db: "FakeDB", name: str, params: dict[str, Any]) -> None:
        self._db = db
        self._name = name
        self._params = params

    def execute(self) -> FakeSupabaseResponse:
        self._db.rpc_calls.append((self._name, self._params))
        handler = self._db.rpc_handlers.get(self._name)
        if handler is None:
            return FakeSupabaseResponse(None)
        return FakeSupabaseResponse(handler(self._params))


class FakeDB:
    """Simplified Supabase client exposing table(...) and rpc(...)."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.unique: dict[str, tuple[str, ...]] = {}
        self.failures: dict[str, Exception] = {}
        self.rpc_handlers: dict[str, Callable[[dict[str, Any]], Any]] = {}
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> FakeRPC:
        return FakeRPC(self, name, params or {})

    def rows(self, name: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def calls(self, name: str) -> list[dict[str, Any]]:
        return [params for called, params in self.rpc_calls if called == name]


def build_client(
    fake_db: FakeDB,
    router: APIRouter,
    prefix: str,
    admin: Optional[AdminUser] = None,
    settings: Optional[BookingSettings] = None,
) -> TestClient:
    """Mount one router on a bare app wired to the fake database."""

    app = FastAPI()
    app.state.drafts = BookingDraftStore()
    app.dependency_overrides[get_db] = lambda: fake_db  # type: ignore[assignment]
    app.dependency_overrides[get_settings] = lambda: settings or BookingSettings()
    if admin is not None:
        app.dependency_overrides[get_current_admin] = lambda: admin
    app.include_router(router, prefix=prefix)
    return TestClient(app)


@pytest.fixture()
def fake_db() -> FakeDB:
    return FakeDB()


@pytest.fixture()
def superadmin() -> AdminUser:
    return AdminUser(id=uuid4(), email="root@example.com", role="superadmin")


@pytest.fixture()
def branch_admin() -> AdminUser:
    return AdminUser(id=uuid4(), email="branch@example.com", role="branch_admin", branch_id=uuid4())
