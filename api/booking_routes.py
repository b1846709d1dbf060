"""Booking-related FastAPI routes: passenger bookings, walk-in bookings and drafts."""

import logging
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from Bookings.booking import (
    Booking,
    BookingConfirmation,
    BookingRequest,
    BusAssignment,
    ManualBookingForm,
    ManualBookingRecord,
    parse_seat_numbers,
    validate_manual_booking,
)
from Bookings.drafts import BookingDraftFields, BookingDraftStore
from Bookings.seats import SeatService
from Database.config import BookingSettings
from Database.deps import get_db, get_draft_store, get_rpc, get_settings
from Database.rpc import BackendRPC
from Fleet.pricing import calculate_total_price, find_route, get_target_branch_id
from Fleet.structure import Route
from Users.admin import AdminUser
from utils import normalize_time

from .models import (
    BookingConfirmationResponse,
    BookingDraftResponse,
    BookingListResponse,
    BookingResponse,
    ManualBookingResponse,
    MessageResponse,
)
from .security import get_current_admin
from .utils import _execute, _fetch_record, _parse_id

logger = logging.getLogger(__name__)

BOOKINGS_TABLE_NAME = "bookings"
ROUTES_TABLE_NAME = "routes"
RECEIPTS_TABLE_NAME = "receipts"
MANUAL_BOOKINGS_TABLE_NAME = "manual_bookings"
BOOKING = "booking"
USER = "user"

NO_BUS_AVAILABLE = "No buses available for your selection"

# mount api router
booking_router = APIRouter()


async def _fetch_booking(db: Any, guid: UUID, action: str) -> Booking:
    record = await _fetch_record(
        db,
        BOOKINGS_TABLE_NAME,
        guid,
        not_found_detail=f"No booking found with id {guid}",
        failure_detail=f"Unable to {action} booking due to an internal error.",
        log_context={"booking_id": str(guid)},
    )
    return Booking(**record)


async def _assign_bus(rpc: BackendRPC, request: BookingRequest) -> BusAssignment:
    """Pick the bus for a booking, raising 503 when none can take the seats."""

    rows = await _execute(
        lambda: rpc.assign_bus_to_booking(
            request.route_id,
            request.departure_date,
            request.departure_time,
            preferred_bus_id=request.bus_id,
            required_seats=len(request.seat_numbers),
        ),
        "Failed to assign bus",
        "Error assigning bus",
        {"route_id": str(request.route_id)},
    )
    if not rows:
        logger.warning("No bus available for booking", extra={"route_id": str(request.route_id)})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=NO_BUS_AVAILABLE)
    try:
        return BusAssignment(**rows[0])
    except ValidationError as exc:
        logger.error("Bus assignment returned an invalid fleet", extra={"assignment": rows[0]})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=NO_BUS_AVAILABLE) from exc


def _branches_for_booking(rpc: BackendRPC) -> list[dict[str, Any]]:
    try:
        return rpc.get_branches_for_booking()
    except Exception:
        logger.warning("Could not load branches for booking", exc_info=True)
        return []


def _record_payment_method(db: Any, receipt_id: Any, payment_method: str) -> None:
    try:
        db.table(RECEIPTS_TABLE_NAME).update({"payment_method": payment_method}).eq("id", str(receipt_id)).execute()
    except Exception:
        logger.warning(
            "Failed to update payment method", extra={"receipt_id": str(receipt_id)}, exc_info=True
        )


@booking_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the booking service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Booking service is healthy")


@booking_router.post(
    "",
    response_model=BookingConfirmationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    request: BookingRequest,
    db=Depends(get_db),
    rpc: BackendRPC = Depends(get_rpc),
    settings: BookingSettings = Depends(get_settings),
    drafts: BookingDraftStore = Depends(get_draft_store),
) -> BookingConfirmationResponse:
    """
    Book seats on a departure.

    A bus is assigned first; when the preferred bus is full another one is
    chosen and the confirmation carries a warning. The booking is owned by the
    route's branch, or the first branch known to the backend.

    Args:
        request: Booking submitted by the passenger.
        db: Supabase client injected via dependency.
        rpc: Backend procedures injected via dependency.
        settings: Runtime settings.
        drafts: Draft store cleared once the booking exists.

    Returns:
        BookingConfirmationResponse with the receipt details.

    Raises:
        HTTPException: 400 for more seats than one booking may hold, 404 for an
            unknown route, 503 when no bus can take the seats, 400 when no branch
            can own the booking, 500 on backend errors.
    """

    limit = settings.max_seats_per_booking
    if len(request.seat_numbers) > limit:
        logger.info(
            "Booking rejected over the seat limit",
            extra={"route_id": str(request.route_id), "seats": len(request.seat_numbers), "limit": limit},
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"You can only select up to {limit} seats",
        )

    record = await _fetch_record(
        db,
        ROUTES_TABLE_NAME,
        request.route_id,
        not_found_detail=f"No route found with id {request.route_id}",
        failure_detail="Unable to create booking due to an internal error.",
        log_context={"route_id": str(request.route_id)},
    )
    route = Route(**record)

    assignment = await _assign_bus(rpc, request)
    seats = SeatService(rpc, settings)
    await run_in_threadpool(
        seats.ensure_seat_availability,
        route.id,
        request.departure_date,
        request.departure_time,
        None,
        assignment.assigned_bus_id,
    )

    warning = None
    if assignment.is_fallback and request.bus_id is not None:
        warning = f"Your preferred bus was full. We've assigned you to {assignment.fleet_name} instead."
        logger.warning("Preferred bus full, fallback assigned", extra={"bus_id": str(assignment.assigned_bus_id)})

    branches = await run_in_threadpool(_branches_for_booking, rpc)
    branch_id = get_target_branch_id(route, branches)
    if branch_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No branch available for booking",
        )

    price = calculate_total_price(route, request.fleet_price_multiplier, len(request.seat_numbers))
    seat_numbers = [str(seat) for seat in request.seat_numbers]
    result = await _execute(
        lambda: rpc.create_booking_with_branch(
            user_id=request.user_id,
            route_id=route.id,
            from_location=route.from_location,
            to_location=route.to_location,
            departure_date=request.departure_date,
            departure_time=request.departure_time,
            arrival_time=settings.default_arrival_time,
            seat_numbers=seat_numbers,
            price=price,
            status="upcoming",
            branch_id=branch_id,
        ),
        "Unable to create booking due to an internal error.",
        "Failed to create booking",
        {"route_id": str(route.id), "user_id": str(request.user_id)},
    )

    receipt_id = result.get("receipt_id")
    if receipt_id:
        await run_in_threadpool(_record_payment_method, db, receipt_id, request.payment_method)
    drafts.clear(request.user_id)

    confirmation = BookingConfirmation(
        **{
            "from_location": route.from_location,
            "to_location": route.to_location,
            "departure_date": request.departure_date,
            "departure_time": request.departure_time,
            "seat_numbers": seat_numbers,
            "branch_id": branch_id,
            "amount_paid": price,
            **{key: value for key, value in result.items() if value is not None},
        },
        bus=assignment,
        warning=warning,
    )
    logger.info(
        "Booking created",
        extra={"booking_id": str(confirmation.booking_id), "user_id": str(request.user_id)},
    )
    return BookingConfirmationResponse(status=status.HTTP_201_CREATED, confirmation=confirmation)


@booking_router.post(
    "/manual",
    response_model=ManualBookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_manual_booking(
    form: ManualBookingForm,
    db=Depends(get_db),
    settings: BookingSettings = Depends(get_settings),
    admin: AdminUser = Depends(get_current_admin),
) -> ManualBookingResponse:
    """
    Record a walk-in booking taken by an admin.

    The booking is confirmed immediately and a paid receipt is issued.

    Raises:
        HTTPException: 400 with the first problem found in the form.
    """

    routes = await _execute(
        lambda: db.table(ROUTES_TABLE_NAME)
        .select("*")
        .eq("from_location", form.from_location)
        .eq("to_location", form.to_location)
        .execute(),
        "Unable to create booking due to an internal error.",
        "Failed to look up route for manual booking",
        {"from_location": form.from_location, "to_location": form.to_location},
    )
    route = find_route((Route(**row) for row in routes.data), form.from_location, form.to_location)

    problem = validate_manual_booking(form, route)
    if problem is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=problem)

    seat_numbers = parse_seat_numbers(form.seat_numbers)
    if not seat_numbers:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please provide valid seat numbers")

    try:
        departure_date = date.fromisoformat(form.departure_date)
        departure_time = normalize_time(form.departure_time)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    amount = route.price * len(seat_numbers)
    booking = Booking(
        user_id=admin.id,
        route_id=route.id,
        from_location=form.from_location,
        to_location=form.to_location,
        departure_date=departure_date,
        departure_time=departure_time,
        arrival_time=settings.default_arrival_time,
        seat_numbers=seat_numbers,
        price=amount,
        status="confirmed",
        branch_id=route.branch_id,
    )
    context = {"booking_id": str(booking.id), "admin_id": str(admin.id)}
    failure_detail = "Unable to create booking due to an internal error."

    await _execute(
        lambda: db.table(BOOKINGS_TABLE_NAME).insert(booking.to_dict()).execute(),
        failure_detail,
        "Failed to insert manual booking",
        context,
    )
    manual_record = ManualBookingRecord(
        booking_id=booking.id,
        admin_email=admin.email,
        passenger_name=form.passenger_name.strip(),
        passenger_phone=form.passenger_phone,
        passenger_email=form.passenger_email,
        branch_id=route.branch_id,
    )
    await _execute(
        lambda: db.table(MANUAL_BOOKINGS_TABLE_NAME).insert(manual_record.to_dict()).execute(),
        failure_detail,
        "Failed to insert manual booking record",
        context,
    )
    receipt = await _execute(
        lambda: db.table(RECEIPTS_TABLE_NAME)
        .insert(
            {
                "booking_id": str(booking.id),
                "user_id": str(admin.id),
                "amount": amount,
                "payment_status": "Paid",
                "payment_method": "Manual",
            }
        )
        .execute(),
        failure_detail,
        "Failed to insert manual booking receipt",
        context,
    )

    receipt_id = receipt.data[0].get("id") if receipt.data else None
    logger.info("Manual booking created", extra=context)
    return ManualBookingResponse(status=status.HTTP_201_CREATED, booking=booking, receipt_id=receipt_id)


@booking_router.get("/user/{user_id}", response_model=BookingListResponse)
async def list_user_bookings(user_id: str, db=Depends(get_db)) -> BookingListResponse:
    """Bookings of one passenger, newest first."""

    guid = _parse_id(user_id, logger, USER)
    result = await _execute(
        lambda: db.table(BOOKINGS_TABLE_NAME)
        .select("*")
        .eq("user_id", str(guid))
        .order("created_at", desc=True)
        .execute(),
        "Unable to retrieve bookings due to an internal error.",
        "Failed to list user bookings",
        {"user_id": user_id},
    )
    return BookingListResponse(
        status=status.HTTP_200_OK, bookings=[Booking(**row) for row in result.data]
    )


@booking_router.get("/drafts/{user_id}", response_model=BookingDraftResponse)
async def get_draft(user_id: str, drafts: BookingDraftStore = Depends(get_draft_store)) -> BookingDraftResponse:
    guid = _parse_id(user_id, logger, USER)
    return BookingDraftResponse(status=status.HTTP_200_OK, draft=drafts.get(guid))


@booking_router.put("/drafts/{user_id}", response_model=BookingDraftResponse)
async def save_draft(
    user_id: str,
    fields: BookingDraftFields,
    drafts: BookingDraftStore = Depends(get_draft_store),
) -> BookingDraftResponse:
    """Save the booking wizard's progress so it can resume after login."""

    guid = _parse_id(user_id, logger, USER)
    return BookingDraftResponse(status=status.HTTP_200_OK, draft=drafts.save(guid, fields))


@booking_router.delete("/drafts/{user_id}", response_model=MessageResponse)
async def clear_draft(user_id: str, drafts: BookingDraftStore = Depends(get_draft_store)) -> MessageResponse:
    guid = _parse_id(user_id, logger, USER)
    removed = drafts.clear(guid)
    message = "Booking draft cleared" if removed else "No booking draft to clear"
    return MessageResponse(status=status.HTTP_200_OK, message=message)


@booking_router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: str, db=Depends(get_db)) -> BookingResponse:
    guid = _parse_id(booking_id, logger, BOOKING)
    booking = await _fetch_booking(db, guid, "retrieve")
    logger.info("Booking retrieved", extra={"booking_id": booking_id})
    return BookingResponse(status=status.HTTP_200_OK, booking=booking)


@booking_router.put("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: str, db=Depends(get_db)) -> BookingResponse:
    """
    Cancel a booking that has not been travelled yet.

    Raises:
        HTTPException: 404 when missing, 409 when already cancelled or completed.
    """

    guid = _parse_id(booking_id, logger, BOOKING)
    booking = await _fetch_booking(db, guid, "cancel")
    if booking.status in ("cancelled", "completed"):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Booking {booking_id} is already {booking.status}",
        )

    booking.update_status("cancelled")
    await _execute(
        lambda: db.table(BOOKINGS_TABLE_NAME)
        .update({"status": booking.status, "updated_at": booking.updated_at.isoformat()})
        .eq("id", str(guid))
        .execute(),
        "Unable to cancel booking due to an internal error.",
        "Failed to cancel booking",
        {"booking_id": booking_id},
    )
    logger.info("Booking cancelled", extra={"booking_id": booking_id})
    return BookingResponse(status=status.HTTP_200_OK, booking=booking)
