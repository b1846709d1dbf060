"""
Seat availability and temporary seat holds.

Lock expiry and conflict resolution live in the backend's ``lock_seat`` and
``release_expired_locks`` procedures. This module only sequences the calls and
degrades gracefully: an unreadable seat map falls back to a default layout,
and a lock the backend refuses to write is kept as a local-only reservation.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, field_validator

from Database.config import BookingSettings
from Database.rpc import BackendRPC
from utils import normalize_time

logger = logging.getLogger(__name__)

LAYOUT_INITIALIZED = "Seat layout initialized for this route."
LAYOUT_FALLBACK = "Using default seat layout due to loading error"
LOCAL_RESERVATION_WARNING = "Seat reserved locally (database write may be restricted)"


class SeatInfo(BaseModel):

    seat_number : int
    status : str = "available"
    is_available : bool = True
    bus_id : Optional[UUID] = None


class SeatMap(BaseModel):

    route_id : UUID
    departure_date : date
    departure_time : str
    seats : list[SeatInfo]
    fallback : bool = False
    message : Optional[str] = None

    @computed_field
    @property
    def available_count(self) -> int:
        return sum(1 for seat in self.seats if seat.is_available)


class SeatLockRequest(BaseModel):

    route_id : UUID
    departure_date : date
    departure_time : str
    seat_number : int = Field(gt=0)
    user_id : UUID
    selected_seats : list[int] = Field(default_factory=list)

    @field_validator("departure_time")
    @classmethod
    def normalize_departure(cls, value: str) -> str:
        return normalize_time(value)


class SeatLockResult(BaseModel):

    seat_number : int
    action : Literal['locked', 'released']
    locked : bool
    local_only : bool = False
    locked_until : Optional[datetime] = None
    selected_seats : list[int]
    warning : Optional[str] = None


class SeatUnavailableError(Exception):
    """Raised when a seat cannot be held for the caller."""


class SeatLimitError(Exception):
    """Raised when the caller already holds the maximum number of seats."""


def generate_fallback_seats(total_seats: int = 40) -> list[SeatInfo]:
    return [SeatInfo(seat_number=number) for number in range(1, total_seats + 1)]


class SeatService:
    """Seat flow used by the booking wizard."""

    def __init__(self, rpc: BackendRPC, settings: BookingSettings) -> None:
        self._rpc = rpc
        self._settings = settings

    def ensure_seat_availability(
        self,
        route_id: UUID,
        departure_date: date,
        departure_time: str,
        total_seats: Optional[int] = None,
        bus_id: Optional[UUID] = None,
    ) -> bool:
        """Ask the backend to create seat rows for a departure; False when it refuses."""
        try:
            self._rpc.initialize_seat_availability(
                route_id,
                departure_date,
                departure_time,
                total_seats=total_seats or self._settings.default_total_seats,
                bus_id=bus_id,
            )
        except Exception:
            logger.exception(
                "Failed to initialize seat availability",
                extra={"route_id": str(route_id), "departure_date": str(departure_date)},
            )
            return False
        return True

    def fetch_seat_availability(
        self,
        route_id: UUID,
        departure_date: date,
        departure_time: str,
        bus_id: Optional[UUID] = None,
    ) -> SeatMap:
        """
        Load the seat map for a departure.

        Seats are initialized first. If the backend fails or returns nothing,
        a default layout of ``default_total_seats`` available seats is returned
        and flagged as a fallback.

        Returns:
            SeatMap for the departure.
        """
        self.ensure_seat_availability(route_id, departure_date, departure_time, bus_id=bus_id)

        base = {
            "route_id": route_id,
            "departure_date": departure_date,
            "departure_time": departure_time,
        }
        try:
            rows = self._rpc.get_seat_availability(route_id, departure_date, departure_time, bus_id)
        except Exception:
            logger.warning(
                "Seat availability unavailable, using default layout",
                extra={"route_id": str(route_id), "departure_date": str(departure_date)},
                exc_info=True,
            )
            return SeatMap(
                **base,
                seats=generate_fallback_seats(self._settings.default_total_seats),
                fallback=True,
                message=LAYOUT_FALLBACK,
            )

        if not rows:
            logger.info("No seat rows returned, using default layout", extra={"route_id": str(route_id)})
            return SeatMap(
                **base,
                seats=generate_fallback_seats(self._settings.default_total_seats),
                fallback=True,
                message=LAYOUT_INITIALIZED,
            )

        seats = sorted((SeatInfo(**row) for row in rows), key=lambda seat: seat.seat_number)
        return SeatMap(**base, seats=seats)

    def lock_seat(self, request: SeatLockRequest, seat_map: Optional[SeatMap] = None) -> SeatLockResult:
        """
        Toggle a seat in the caller's selection, holding it on the backend when added.

        Args:
            request: Seat and current selection of the caller.
            seat_map: Known seat states; a seat missing from the map counts as available.

        Returns:
            SeatLockResult describing the new selection.

        Raises:
            SeatUnavailableError: The seat is booked or held by someone else.
            SeatLimitError: The selection is already full.
        """
        selection = list(request.selected_seats)
        seat_number = request.seat_number

        if seat_map is not None:
            seat = next((item for item in seat_map.seats if item.seat_number == seat_number), None)
            if seat is not None and not seat.is_available and seat.status == "booked":
                raise SeatUnavailableError("This seat is already booked")

        if seat_number in selection:
            selection.remove(seat_number)
            return SeatLockResult(
                seat_number=seat_number, action="released", locked=False, selected_seats=selection
            )

        limit = self._settings.max_seats_per_booking
        if len(selection) >= limit:
            raise SeatLimitError(f"You can only select up to {limit} seats")

        minutes = self._settings.seat_lock_minutes
        try:
            locked = self._rpc.lock_seat(
                request.route_id,
                request.departure_date,
                request.departure_time,
                seat_number,
                request.user_id,
                lock_duration_minutes=minutes,
            )
        except Exception:
            logger.warning(
                "Seat lock not written, keeping local reservation",
                extra={"route_id": str(request.route_id), "seat_number": seat_number},
                exc_info=True,
            )
            return SeatLockResult(
                seat_number=seat_number,
                action="locked",
                locked=True,
                local_only=True,
                selected_seats=selection + [seat_number],
                warning=LOCAL_RESERVATION_WARNING,
            )

        if not locked:
            raise SeatUnavailableError("Seat is no longer available")

        logger.info("Seat locked", extra={"route_id": str(request.route_id), "seat_number": seat_number})
        return SeatLockResult(
            seat_number=seat_number,
            action="locked",
            locked=True,
            locked_until=datetime.now(timezone.utc) + timedelta(minutes=minutes),
            selected_seats=selection + [seat_number],
        )

    def release_expired_locks(self) -> int:
        try:
            released = self._rpc.release_expired_locks()
        except Exception:
            logger.exception("Failed to release expired seat locks")
            return 0
        logger.info("Expired seat locks released", extra={"released": released})
        return released
