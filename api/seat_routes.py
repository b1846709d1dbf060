"""Seat availability and seat hold FastAPI routes."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from Bookings.seats import (
    SeatInfo,
    SeatLimitError,
    SeatLockRequest,
    SeatMap,
    SeatService,
    SeatUnavailableError,
)
from Database.config import BookingSettings
from Database.deps import get_rpc, get_settings
from Database.rpc import BackendRPC
from utils import normalize_time

from .models import MessageResponse, ReleasedLocksResponse, SeatLockResponse, SeatMapResponse
from .utils import _parse_id

logger = logging.getLogger(__name__)

ROUTE = "route"

# mount api router
seat_router = APIRouter()


def get_seat_service(
    rpc: BackendRPC = Depends(get_rpc),
    settings: BookingSettings = Depends(get_settings),
) -> SeatService:
    return SeatService(rpc, settings)


def _parse_time(value: str) -> str:
    try:
        return normalize_time(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _current_seat_map(rpc: BackendRPC, request: SeatLockRequest) -> Optional[SeatMap]:
    """Seat states for a lock decision, read without initializing; None when unreadable."""
    try:
        rows = rpc.get_seat_availability(request.route_id, request.departure_date, request.departure_time)
    except Exception:
        logger.warning(
            "Could not read seat states before locking",
            extra={"route_id": str(request.route_id), "seat_number": request.seat_number},
            exc_info=True,
        )
        return None
    return SeatMap(
        route_id=request.route_id,
        departure_date=request.departure_date,
        departure_time=request.departure_time,
        seats=[SeatInfo(**row) for row in rows],
    )


@seat_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the seat service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Seat service is healthy")


@seat_router.get("/availability", response_model=SeatMapResponse)
async def get_seat_availability(
    route_id: str,
    departure_date: date,
    departure_time: str,
    bus_id: Optional[str] = None,
    service: SeatService = Depends(get_seat_service),
) -> SeatMapResponse:
    """
    Seat map for one departure.

    Never fails because of the backend: an unreadable or empty seat map is
    replaced by the default layout and flagged with ``fallback``.

    Args:
        route_id: UUID4 of the route.
        departure_date: Day of travel.
        departure_time: Departure time as HH:MM.
        bus_id: Optional bus to restrict the map to.
        service: Seat service injected via dependency.

    Returns:
        SeatMapResponse wrapping the seat map.
    """

    guid = _parse_id(route_id, logger, ROUTE)
    bus_guid = None if bus_id is None else _parse_id(bus_id, logger, "fleet")
    time_value = _parse_time(departure_time)

    seat_map = await run_in_threadpool(
        service.fetch_seat_availability, guid, departure_date, time_value, bus_guid
    )
    return SeatMapResponse(status=status.HTTP_200_OK, seat_map=seat_map)


@seat_router.post("/lock", response_model=SeatLockResponse)
async def lock_seat(
    request: SeatLockRequest,
    rpc: BackendRPC = Depends(get_rpc),
    service: SeatService = Depends(get_seat_service),
) -> SeatLockResponse:
    """
    Add a seat to the caller's selection and hold it, or drop it if already selected.

    Raises:
        HTTPException: 409 when the seat is booked or held by someone else,
            400 when the selection is already full.
    """

    seat_map = await run_in_threadpool(_current_seat_map, rpc, request)
    try:
        result = await run_in_threadpool(service.lock_seat, request, seat_map)
    except SeatUnavailableError as exc:
        logger.info(
            "Seat lock refused",
            extra={"route_id": str(request.route_id), "seat_number": request.seat_number},
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SeatLimitError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return SeatLockResponse(status=status.HTTP_200_OK, result=result)


@seat_router.post("/release-expired", response_model=ReleasedLocksResponse)
async def release_expired_locks(service: SeatService = Depends(get_seat_service)) -> ReleasedLocksResponse:
    released = await run_in_threadpool(service.release_expired_locks)
    return ReleasedLocksResponse(status=status.HTTP_200_OK, released=released)


@seat_router.post("/initialize", response_model=MessageResponse)
async def initialize_seats(
    route_id: str,
    departure_date: date,
    departure_time: str,
    total_seats: Optional[int] = None,
    bus_id: Optional[str] = None,
    service: SeatService = Depends(get_seat_service),
) -> MessageResponse:
    guid = _parse_id(route_id, logger, ROUTE)
    bus_guid = None if bus_id is None else _parse_id(bus_id, logger, "fleet")
    time_value = _parse_time(departure_time)
    if total_seats is not None and total_seats <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Total seats must be a positive integer.",
        )

    initialized = await run_in_threadpool(
        service.ensure_seat_availability, guid, departure_date, time_value, total_seats, bus_guid
    )
    if not initialized:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to initialize seats due to an internal error.",
        )
    return MessageResponse(status=status.HTTP_200_OK, message="Seat layout initialized for this route.")
