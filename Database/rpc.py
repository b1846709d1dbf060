"""
Typed access to the remote procedures exposed by the Supabase backend.

Every method maps Python arguments onto the ``p_*`` parameter names the
backend functions declare and returns the ``data`` payload of the response.
Backend errors (``postgrest.exceptions.APIError``) are not caught here; the
caller decides whether a failure is fatal or degradable.
"""

import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

DateLike = date | str
Identifier = UUID | str


def _as_date(value: DateLike) -> str:
    return value.isoformat() if isinstance(value, date) else value


def _as_id(value: Optional[Identifier]) -> Optional[str]:
    return None if value is None else str(value)


class BackendRPC:
    """Thin typed client over ``client.rpc(name, params).execute()``."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def call(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        logger.debug("Calling remote procedure", extra={"procedure": name})
        response = self._client.rpc(name, params or {}).execute()
        return response.data

    # --- seats ---

    def get_seat_availability(
        self,
        route_id: Identifier,
        departure_date: DateLike,
        departure_time: str,
        bus_id: Optional[Identifier] = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "p_route_id": _as_id(route_id),
            "p_departure_date": _as_date(departure_date),
            "p_departure_time": departure_time,
        }
        if bus_id is not None:
            params["p_bus_id"] = _as_id(bus_id)
        return self.call("get_seat_availability", params) or []

    def lock_seat(
        self,
        route_id: Identifier,
        departure_date: DateLike,
        departure_time: str,
        seat_number: int,
        user_id: Identifier,
        lock_duration_minutes: int = 10,
    ) -> bool:
        data = self.call(
            "lock_seat",
            {
                "p_route_id": _as_id(route_id),
                "p_departure_date": _as_date(departure_date),
                "p_departure_time": departure_time,
                "p_seat_number": seat_number,
                "p_user_id": _as_id(user_id),
                "p_lock_duration_minutes": lock_duration_minutes,
            },
        )
        return data is True

    def release_expired_locks(self) -> int:
        return int(self.call("release_expired_locks") or 0)

    def initialize_seat_availability(
        self,
        route_id: Identifier,
        departure_date: DateLike,
        departure_time: str,
        total_seats: Optional[int] = None,
        bus_id: Optional[Identifier] = None,
    ) -> None:
        params: dict[str, Any] = {
            "p_route_id": _as_id(route_id),
            "p_departure_date": _as_date(departure_date),
            "p_departure_time": departure_time,
        }
        if total_seats is not None:
            params["p_total_seats"] = total_seats
        if bus_id is not None:
            params["p_bus_id"] = _as_id(bus_id)
        self.call("initialize_seat_availability", params)

    def get_admin_seat_map(
        self,
        route_id: Identifier,
        departure_date: DateLike,
        departure_time: str,
        bus_id: Optional[Identifier] = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "p_route_id": _as_id(route_id),
            "p_departure_date": _as_date(departure_date),
            "p_departure_time": departure_time,
        }
        if bus_id is not None:
            params["p_bus_id"] = _as_id(bus_id)
        return self.call("get_admin_seat_map", params) or []

    # --- fleet & bookings ---

    def assign_bus_to_booking(
        self,
        route_id: Identifier,
        departure_date: DateLike,
        departure_time: str,
        preferred_bus_id: Optional[Identifier] = None,
        required_seats: int = 1,
    ) -> list[dict[str, Any]]:
        return self.call(
            "assign_bus_to_booking",
            {
                "p_route_id": _as_id(route_id),
                "p_departure_date": _as_date(departure_date),
                "p_departure_time": departure_time,
                "p_preferred_bus_id": _as_id(preferred_bus_id),
                "p_required_seats": required_seats,
            },
        ) or []

    def get_available_fleet_for_route(
        self, route_id: Identifier, departure_date: DateLike, departure_time: str
    ) -> list[dict[str, Any]]:
        return self.call(
            "get_available_fleet_for_route",
            {
                "p_route_id": _as_id(route_id),
                "p_departure_date": _as_date(departure_date),
                "p_departure_time": departure_time,
            },
        ) or []

    def create_booking_with_branch(
        self,
        user_id: Identifier,
        route_id: Identifier,
        from_location: str,
        to_location: str,
        departure_date: DateLike,
        departure_time: str,
        arrival_time: str,
        seat_numbers: list[str],
        price: float,
        status: str,
        branch_id: Identifier,
    ) -> dict[str, Any]:
        return self.call(
            "create_booking_with_branch",
            {
                "p_user_id": _as_id(user_id),
                "p_route_id": _as_id(route_id),
                "p_from_location": from_location,
                "p_to_location": to_location,
                "p_departure_date": _as_date(departure_date),
                "p_departure_time": departure_time,
                "p_arrival_time": arrival_time,
                "p_seat_numbers": seat_numbers,
                "p_price": price,
                "p_status": status,
                "p_branch_id": _as_id(branch_id),
            },
        ) or {}

    def get_branches_for_booking(self) -> list[dict[str, Any]]:
        return self.call("get_branches_for_booking") or []

    # --- admin ---

    def get_admin_bookings(self, branch_id: Optional[Identifier] = None) -> list[dict[str, Any]]:
        return self.call("get_admin_bookings", {"p_branch_id": _as_id(branch_id)}) or []

    def get_admin_receipts(self, branch_id: Optional[Identifier] = None) -> list[dict[str, Any]]:
        return self.call("get_admin_receipts", {"p_branch_id": _as_id(branch_id)}) or []

    def get_admin_analytics(self, branch_id: Optional[Identifier] = None) -> dict[str, Any]:
        return self.call("get_admin_analytics", {"p_branch_id": _as_id(branch_id)}) or {}

    def export_bookings_data(
        self,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        branch_id: Optional[Identifier] = None,
    ) -> list[dict[str, Any]]:
        return self.call(
            "export_bookings_data",
            {
                "p_start_date": None if start_date is None else _as_date(start_date),
                "p_end_date": None if end_date is None else _as_date(end_date),
                "p_branch_id": _as_id(branch_id),
            },
        ) or []

    def establish_admin_session(self, admin_user_id: Identifier) -> Any:
        return self.call("establish_admin_session", {"admin_user_id": _as_id(admin_user_id)})

    def hash_password(self, password: str) -> str:
        return self.call("hash_password", {"password": password})

    def verify_password(self, password: str, password_hash: str) -> bool:
        return self.call("verify_password", {"password": password, "hash": password_hash}) is True

    # --- receipts ---

    def get_receipt_details(self, receipt_id: Identifier) -> Any:
        return self.call("get_receipt_details", {"p_receipt_id": _as_id(receipt_id)})

    def verify_receipt(
        self,
        receipt_id: Identifier,
        booking_id: Optional[Identifier] = None,
        admin_user_id: Optional[Identifier] = None,
    ) -> Any:
        params: dict[str, Any] = {"p_receipt_id": _as_id(receipt_id)}
        if booking_id is not None:
            params["p_booking_id"] = _as_id(booking_id)
        if admin_user_id is not None:
            params["p_admin_user_id"] = _as_id(admin_user_id)
        return self.call("verify_receipt", params)

    def sign_off_receipt(
        self, receipt_id: Identifier, admin_user_id: Identifier, notes: Optional[str] = None
    ) -> Any:
        return self.call(
            "sign_off_receipt",
            {
                "p_receipt_id": _as_id(receipt_id),
                "p_admin_user_id": _as_id(admin_user_id),
                "p_notes": notes,
            },
        )
