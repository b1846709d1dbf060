"""Reschedule request FastAPI routes for passengers and admins."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from Bookings.booking import Booking
from Bookings.reschedule import (
    RequestStatus,
    RescheduleDecision,
    RescheduleRequest,
    RescheduleSubmission,
    calculate_reschedule_penalty,
    decision_updates,
    request_status_text,
)
from Database.config import BookingSettings
from Database.deps import get_db, get_rpc, get_settings
from Database.rpc import BackendRPC
from Users.admin import AdminUser

from .models import MessageResponse, RescheduleListResponse, RescheduleResponse
from .security import get_current_admin, run_with_session_retry
from .utils import _execute, _fetch_record, _parse_id

logger = logging.getLogger(__name__)

REQUESTS_TABLE_NAME = "reschedule_requests"
BOOKINGS_TABLE_NAME = "bookings"
ROUTES_TABLE_NAME = "routes"
REQUEST = "reschedule_request"
USER = "user"

# mount api router
reschedule_router = APIRouter()


def _respond(record: dict[str, Any], status_code: int) -> RescheduleResponse:
    request = RescheduleRequest(**record)
    return RescheduleResponse(
        status=status_code,
        request=request,
        status_text=request_status_text(request.status, request.payment_status),
    )


async def _fetch_request(db: Any, request_id: str, action: str) -> dict[str, Any]:
    guid = _parse_id(request_id, logger, REQUEST)
    return await _fetch_record(
        db,
        REQUESTS_TABLE_NAME,
        guid,
        not_found_detail=f"No reschedule request found with id {request_id}",
        failure_detail=f"Unable to {action} reschedule request due to an internal error.",
        log_context={"request_id": request_id},
    )


@reschedule_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the reschedule service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Reschedule service is healthy")


@reschedule_router.post(
    "",
    response_model=RescheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_reschedule_request(
    submission: RescheduleSubmission,
    db=Depends(get_db),
    settings: BookingSettings = Depends(get_settings),
) -> RescheduleResponse:
    """
    Ask to move a booking to another departure.

    A flat penalty applies when the original departure is close; the caller
    has to accept it explicitly before the request is stored.

    Args:
        submission: Booking and the requested departure.
        db: Supabase client injected via dependency.
        settings: Runtime settings carrying the penalty policy.

    Returns:
        RescheduleResponse wrapping the pending request.

    Raises:
        HTTPException: 404 for an unknown booking or route, 403 for someone
            else's booking, 409 for a closed booking, a duplicate request or
            an unaccepted penalty.
    """

    context = {"booking_id": str(submission.booking_id), "user_id": str(submission.user_id)}
    failure_detail = "Unable to submit reschedule request due to an internal error."

    record = await _fetch_record(
        db,
        BOOKINGS_TABLE_NAME,
        submission.booking_id,
        not_found_detail=f"No booking found with id {submission.booking_id}",
        failure_detail=failure_detail,
        log_context=context,
    )
    booking = Booking(**record)
    if booking.user_id != submission.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only reschedule your own bookings",
        )
    if booking.status in ("cancelled", "completed"):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A {booking.status} booking cannot be rescheduled",
        )

    await _fetch_record(
        db,
        ROUTES_TABLE_NAME,
        submission.requested_route_id,
        not_found_detail=f"No route found with id {submission.requested_route_id}",
        failure_detail=failure_detail,
        log_context=context,
    )

    pending = await _execute(
        lambda: db.table(REQUESTS_TABLE_NAME)
        .select("*")
        .eq("booking_id", str(booking.id))
        .eq("status", "pending")
        .execute(),
        failure_detail,
        "Failed to query pending reschedule requests",
        context,
    )
    if pending.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A reschedule request for this booking is already pending",
        )

    penalty = calculate_reschedule_penalty(
        booking.departure_date,
        booking.departure_time,
        penalty_amount=settings.reschedule_penalty_amount,
        window_hours=settings.reschedule_penalty_window_hours,
        tz_name=settings.timezone,
    )
    if penalty > 0 and not submission.accept_penalty:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"A penalty of KES {penalty} will be applied for rescheduling within "
                f"{settings.reschedule_penalty_window_hours} hours of departure. "
                "Resubmit with accept_penalty to continue."
            ),
        )

    request = RescheduleRequest(
        booking_id=booking.id,
        user_id=submission.user_id,
        reason=submission.reason,
        fee_amount=penalty,
        current_route_id=booking.route_id,
        current_departure_date=booking.departure_date,
        current_departure_time=booking.departure_time,
        requested_route_id=submission.requested_route_id,
        requested_departure_date=submission.requested_departure_date,
        requested_departure_time=submission.requested_departure_time,
    )
    result = await _execute(
        lambda: db.table(REQUESTS_TABLE_NAME).insert(request.to_dict()).execute(),
        failure_detail,
        "Failed to insert reschedule request",
        context,
    )

    logger.info("Reschedule request submitted", extra={**context, "fee_amount": penalty})
    return _respond(result.data[0] if result.data else request.to_dict(), status.HTTP_201_CREATED)


@reschedule_router.get("/user/{user_id}", response_model=RescheduleListResponse)
async def list_user_requests(
    user_id: str, status_filter: Optional[RequestStatus] = None, db=Depends(get_db)
) -> RescheduleListResponse:
    """A passenger's reschedule requests, newest first."""

    guid = _parse_id(user_id, logger, USER)

    def query():
        builder = db.table(REQUESTS_TABLE_NAME).select("*").eq("user_id", str(guid))
        if status_filter is not None:
            builder = builder.eq("status", status_filter)
        return builder.order("created_at", desc=True).execute()

    result = await _execute(
        query,
        "Unable to retrieve reschedule requests due to an internal error.",
        "Failed to list user reschedule requests",
        {"user_id": user_id},
    )
    return RescheduleListResponse(
        status=status.HTTP_200_OK, requests=[RescheduleRequest(**row) for row in result.data]
    )


@reschedule_router.get("/admin", response_model=RescheduleListResponse)
async def list_all_requests(
    status_filter: Optional[RequestStatus] = None,
    db=Depends(get_db),
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> RescheduleListResponse:
    """Every reschedule request for the admin queue, newest first."""

    def query():
        builder = db.table(REQUESTS_TABLE_NAME).select("*")
        if status_filter is not None:
            builder = builder.eq("status", status_filter)
        return builder.order("created_at", desc=True).execute()

    result = await run_with_session_retry(
        rpc,
        admin,
        query,
        "Failed to fetch reschedule requests",
        {"admin_id": str(admin.id)},
    )
    return RescheduleListResponse(
        status=status.HTTP_200_OK, requests=[RescheduleRequest(**row) for row in result.data]
    )


@reschedule_router.get("/{request_id}", response_model=RescheduleResponse)
async def get_request(request_id: str, db=Depends(get_db)) -> RescheduleResponse:
    record = await _fetch_request(db, request_id, "retrieve")
    return _respond(record, status.HTTP_200_OK)


@reschedule_router.put("/{request_id}/decision", response_model=RescheduleResponse)
async def decide_request(
    request_id: str,
    decision: RescheduleDecision,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> RescheduleResponse:
    """
    Approve or reject a pending request.

    An approval with a fee leaves the request awaiting payment.

    Raises:
        HTTPException: 404 when missing, 409 when the request was already decided.
    """

    record = await _fetch_request(db, request_id, "update")
    if record.get("status") != "pending":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Reschedule request {request_id} has already been {record.get('status')}",
        )

    updates = decision_updates(decision, admin.id)
    await _execute(
        lambda: db.table(REQUESTS_TABLE_NAME).update(updates).eq("id", str(record["id"])).execute(),
        "Failed to process request",
        "Failed to update reschedule request",
        {"request_id": request_id, "admin_id": str(admin.id)},
    )

    refreshed = await _fetch_request(db, request_id, "update")
    logger.info(
        "Reschedule request decided",
        extra={"request_id": request_id, "decision": decision.status, "admin_id": str(admin.id)},
    )
    return _respond(refreshed, status.HTTP_200_OK)
