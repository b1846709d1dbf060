"""Driver accounts, route assignments and the driver dashboard manifest."""

import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, status

from Database.deps import get_db, get_rpc
from Database.rpc import BackendRPC
from Users.admin import AdminUser
from Users.driver import (
    Driver,
    DriverAssignment,
    DriverCreate,
    DriverStatus,
    PassengerManifest,
    group_manifest,
)

from .models import (
    AssignmentRequest,
    DriverAssignmentListResponse,
    DriverAssignmentResponse,
    DriverFields,
    DriverListResponse,
    DriverResponse,
    ManifestResponse,
    MessageResponse,
)
from .security import get_current_admin, resolve_branch
from .utils import _execute, _fetch_record, _parse_id, _require_updates

logger = logging.getLogger(__name__)

DRIVERS_TABLE_NAME = "drivers"
DRIVER_AUTH_TABLE_NAME = "driver_auth"
ASSIGNMENTS_TABLE_NAME = "driver_assignments"
BRANCHES_TABLE_NAME = "branches"
SEATS_TABLE_NAME = "seat_availability"
DRIVER = "driver"
ASSIGNMENT = "assignment"

MANIFEST_COLUMNS = (
    "seat_number, route_id, "
    "bookings(id, user_id, from_location, to_location, departure_time, profiles(full_name, phone))"
)

# mount api router
driver_router = APIRouter()


async def _fetch_driver(db: Any, driver_id: str, action: str) -> Driver:
    guid = _parse_id(driver_id, logger, DRIVER)
    record = await _fetch_record(
        db,
        DRIVERS_TABLE_NAME,
        guid,
        not_found_detail=f"No driver found with id {driver_id}",
        failure_detail=f"Unable to {action} driver due to an internal error.",
        log_context={"driver_id": driver_id},
    )
    return Driver(**record)


def _check_driver_scope(admin: AdminUser, driver: Driver) -> None:
    if admin.is_superadmin or driver.branch_id == admin.branch_id:
        return
    logger.warning(
        "Branch scope violation", extra={"admin_id": str(admin.id), "driver_id": str(driver.id)}
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Branch admins can only manage drivers of their own branch.",
    )


@driver_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the driver service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Driver service is healthy")


@driver_router.get("/{driver_id}/manifest", response_model=ManifestResponse)
async def get_manifest(driver_id: str, db=Depends(get_db)) -> ManifestResponse:
    """
    Today's passengers on the routes the driver is actively assigned to.

    Booked seats are grouped per passenger; a driver without an active
    assignment gets an empty manifest.

    Args:
        driver_id: UUID4 of the driver.
        db: Supabase client injected via dependency.

    Returns:
        ManifestResponse with the passenger list and totals.
    """

    guid = _parse_id(driver_id, logger, DRIVER)
    context = {"driver_id": driver_id}
    failure_detail = "Unable to load passenger manifest due to an internal error."

    record = await _fetch_record(
        db,
        DRIVERS_TABLE_NAME,
        guid,
        not_found_detail=f"No driver found with id {driver_id}",
        failure_detail=failure_detail,
        log_context=context,
    )
    driver = Driver(**record)
    today = date.today().isoformat()

    assignments = await _execute(
        lambda: db.table(ASSIGNMENTS_TABLE_NAME)
        .select("*")
        .eq("driver_id", str(driver.id))
        .eq("status", "active")
        .execute(),
        failure_detail,
        "Failed to fetch driver assignments",
        context,
    )
    route_ids = sorted({str(row["route_id"]) for row in assignments.data if row.get("route_id")})
    if not route_ids:
        logger.info("Driver has no active assignment", extra=context)
        return ManifestResponse(
            status=status.HTTP_200_OK,
            manifest=PassengerManifest(driver_id=driver.id, departure_date=today, passengers=[]),
        )

    seats = await _execute(
        lambda: db.table(SEATS_TABLE_NAME)
        .select(MANIFEST_COLUMNS)
        .eq("departure_date", today)
        .eq("status", "booked")
        .in_("route_id", route_ids)
        .order("seat_number")
        .execute(),
        failure_detail,
        "Failed to fetch booked seats",
        context,
    )

    manifest = PassengerManifest(
        driver_id=driver.id,
        departure_date=today,
        passengers=group_manifest(seats.data),
    )
    logger.info(
        "Passenger manifest built",
        extra={**context, "passengers": manifest.total_passengers, "seats": manifest.total_seats},
    )
    return ManifestResponse(status=status.HTTP_200_OK, manifest=manifest)


@driver_router.post(
    "",
    response_model=DriverResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_driver(
    payload: DriverCreate,
    db=Depends(get_db),
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> DriverResponse:
    """
    Register a driver with dashboard credentials.

    Branch admins add drivers to their own branch; a superadmin names the
    branch. The password is hashed by the backend and stored as the driver's
    pass key.

    Raises:
        HTTPException: 400 without a branch, 403 for another branch, 404 for an
            unknown branch, 409 when the email is taken, 500 when a write fails.
    """

    failure_detail = "Unable to create driver due to an internal error."
    context = {"email": payload.email, "admin_id": str(admin.id)}

    requested = None if payload.branch_id is None else str(payload.branch_id)
    branch_id = resolve_branch(admin, requested)
    if branch_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Branch selection is required for the driver.",
        )
    await _fetch_record(
        db,
        BRANCHES_TABLE_NAME,
        UUID(branch_id),
        not_found_detail=f"No branch found with id {branch_id}",
        failure_detail=failure_detail,
        log_context=context,
    )

    existing = await _execute(
        lambda: db.table(DRIVERS_TABLE_NAME).select("id").eq("email", payload.email).execute(),
        failure_detail,
        "Driver lookup failed",
        context,
    )
    if existing.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A driver with email {payload.email} already exists",
        )

    pass_key = await _execute(
        lambda: rpc.hash_password(payload.password),
        failure_detail,
        "Password hashing failed",
        context,
    )

    driver_id = uuid4()
    record = payload.model_copy(update={"branch_id": UUID(branch_id)}).to_record(driver_id)
    await _execute(
        lambda: db.table(DRIVERS_TABLE_NAME).insert(record).execute(),
        failure_detail,
        "Failed to insert driver",
        context,
    )
    try:
        await _execute(
            lambda: db.table(DRIVER_AUTH_TABLE_NAME)
            .insert({"driver_id": str(driver_id), "email": payload.email, "pass_key": pass_key})
            .execute(),
            failure_detail,
            "Failed to insert driver auth record",
            context,
        )
    except HTTPException:
        await _execute(
            lambda: db.table(DRIVERS_TABLE_NAME).delete().eq("id", str(driver_id)).execute(),
            failure_detail,
            "Failed to remove driver without credentials",
            {**context, "driver_id": str(driver_id)},
        )
        raise

    logger.info("Driver created", extra={**context, "driver_id": str(driver_id)})
    return DriverResponse(status=status.HTTP_201_CREATED, driver=Driver(**record))


@driver_router.get("", response_model=DriverListResponse)
async def list_drivers(
    branch_id: Optional[str] = None,
    status_filter: Optional[DriverStatus] = None,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> DriverListResponse:
    """Drivers by name within the admin's branch scope, optionally one status only."""

    scope = resolve_branch(admin, branch_id)

    def query():
        builder = db.table(DRIVERS_TABLE_NAME).select("*")
        if scope is not None:
            builder = builder.eq("branch_id", scope)
        if status_filter is not None:
            builder = builder.eq("status", status_filter)
        return builder.order("full_name").execute()

    result = await _execute(
        query,
        "Unable to retrieve drivers due to an internal error.",
        "Failed to list drivers",
        {"branch_id": scope, "admin_id": str(admin.id)},
    )
    return DriverListResponse(status=status.HTTP_200_OK, drivers=[Driver(**row) for row in result.data])


@driver_router.get("/{driver_id}", response_model=DriverResponse)
async def get_driver(
    driver_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> DriverResponse:
    driver = await _fetch_driver(db, driver_id, "retrieve")
    _check_driver_scope(admin, driver)
    return DriverResponse(status=status.HTTP_200_OK, driver=driver)


@driver_router.put("/{driver_id}", response_model=DriverResponse)
async def update_driver(
    driver_id: str,
    fields: DriverFields,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> DriverResponse:
    """Edit a driver's details or switch them between active and inactive."""

    updates = _require_updates(fields)
    driver = await _fetch_driver(db, driver_id, "update")
    _check_driver_scope(admin, driver)
    if "branch_id" in updates:
        resolve_branch(admin, updates["branch_id"])

    await _execute(
        lambda: db.table(DRIVERS_TABLE_NAME).update(updates).eq("id", str(driver.id)).execute(),
        "Unable to update driver due to an internal error.",
        "Failed to update driver",
        {"driver_id": driver_id},
    )
    updated = await _fetch_driver(db, driver_id, "update")
    logger.info("Driver updated", extra={"driver_id": driver_id, "admin_id": str(admin.id)})
    return DriverResponse(status=status.HTTP_200_OK, driver=updated)


@driver_router.delete("/{driver_id}", response_model=MessageResponse)
async def delete_driver(
    driver_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> MessageResponse:
    """Remove a driver with their credentials and assignment history."""

    driver = await _fetch_driver(db, driver_id, "delete")
    _check_driver_scope(admin, driver)
    failure_detail = "Unable to delete driver due to an internal error."
    context = {"driver_id": driver_id}

    for table, column in (
        (ASSIGNMENTS_TABLE_NAME, "driver_id"),
        (DRIVER_AUTH_TABLE_NAME, "driver_id"),
        (DRIVERS_TABLE_NAME, "id"),
    ):
        await _execute(
            lambda: db.table(table).delete().eq(column, str(driver.id)).execute(),
            failure_detail,
            f"Failed to delete {table} rows",
            context,
        )
    logger.info("Driver deleted", extra={**context, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Driver {driver_id} deleted")


@driver_router.post(
    "/{driver_id}/assignments",
    response_model=DriverAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_driver(
    driver_id: str,
    request: AssignmentRequest,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> DriverAssignmentResponse:
    """
    Put a driver on a bus and/or route.

    Any assignment still active for the driver is completed first, so the
    new one is the only active assignment.
    """

    driver = await _fetch_driver(db, driver_id, "assign")
    _check_driver_scope(admin, driver)
    try:
        assignment = DriverAssignment(driver_id=driver.id, bus_id=request.bus_id, route_id=request.route_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    failure_detail = "Unable to assign driver due to an internal error."
    context = {"driver_id": driver_id, "admin_id": str(admin.id)}
    await _execute(
        lambda: db.table(ASSIGNMENTS_TABLE_NAME)
        .update({"status": "completed"})
        .eq("driver_id", str(driver.id))
        .eq("status", "active")
        .execute(),
        failure_detail,
        "Failed to complete existing assignments",
        context,
    )
    insert_result = await _execute(
        lambda: db.table(ASSIGNMENTS_TABLE_NAME).insert(assignment.to_dict()).execute(),
        failure_detail,
        "Failed to insert driver assignment",
        context,
    )
    created = DriverAssignment(**(insert_result.data[0] if insert_result.data else assignment.to_dict()))
    logger.info("Driver assigned", extra={**context, "assignment_id": str(created.id)})
    return DriverAssignmentResponse(status=status.HTTP_201_CREATED, assignment=created)


@driver_router.get("/{driver_id}/assignments", response_model=DriverAssignmentListResponse)
async def list_assignments(
    driver_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> DriverAssignmentListResponse:
    driver = await _fetch_driver(db, driver_id, "retrieve")
    _check_driver_scope(admin, driver)
    result = await _execute(
        lambda: db.table(ASSIGNMENTS_TABLE_NAME)
        .select("*")
        .eq("driver_id", str(driver.id))
        .order("assigned_at", desc=True)
        .execute(),
        "Unable to retrieve assignments due to an internal error.",
        "Failed to list driver assignments",
        {"driver_id": driver_id},
    )
    return DriverAssignmentListResponse(
        status=status.HTTP_200_OK, assignments=[DriverAssignment(**row) for row in result.data]
    )


@driver_router.put("/{driver_id}/assignments/{assignment_id}/complete", response_model=DriverAssignmentResponse)
async def complete_assignment(
    driver_id: str,
    assignment_id: str,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> DriverAssignmentResponse:
    """End an active assignment; its route then drops off the driver's manifest."""

    driver = await _fetch_driver(db, driver_id, "update")
    _check_driver_scope(admin, driver)
    guid = _parse_id(assignment_id, logger, ASSIGNMENT)
    fetch_args = dict(
        not_found_detail=f"No assignment found with id {assignment_id}",
        failure_detail="Unable to update assignment due to an internal error.",
        log_context={"driver_id": driver_id, "assignment_id": assignment_id},
    )
    assignment = DriverAssignment(**await _fetch_record(db, ASSIGNMENTS_TABLE_NAME, guid, **fetch_args))
    if assignment.driver_id != driver.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No assignment found with id {assignment_id}",
        )
    if assignment.status != "active":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Assignment {assignment_id} is already {assignment.status}",
        )

    await _execute(
        lambda: db.table(ASSIGNMENTS_TABLE_NAME).update({"status": "completed"}).eq("id", str(guid)).execute(),
        "Unable to update assignment due to an internal error.",
        "Failed to complete assignment",
        {"assignment_id": assignment_id},
    )
    completed = DriverAssignment(**await _fetch_record(db, ASSIGNMENTS_TABLE_NAME, guid, **fetch_args))
    logger.info("Assignment completed", extra={"assignment_id": assignment_id, "admin_id": str(admin.id)})
    return DriverAssignmentResponse(status=status.HTTP_200_OK, assignment=completed)
