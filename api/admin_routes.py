"""Admin FastAPI routes: login, branch-scoped reporting, admin accounts and branches."""

import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from Database.deps import get_db, get_rpc
from Database.rpc import BackendRPC
from Fleet.structure import Branch
from Users.admin import AdminCreate, AdminCredentials, AdminUser, session_established
from utils import normalize_time

from .models import (
    AdminResponse,
    AdminRowsResponse,
    AnalyticsResponse,
    BranchFields,
    BranchListResponse,
    BranchResponse,
    MessageResponse,
)
from .security import (
    get_current_admin,
    load_admin,
    require_superadmin,
    resolve_branch,
    run_with_session_retry,
)
from .utils import _execute, _fetch_record, _parse_id, _require_updates

logger = logging.getLogger(__name__)

ADMIN_USERS_TABLE_NAME = "admin_users"
ADMIN_AUTH_TABLE_NAME = "admin_auth"
BRANCH_ADMINS_TABLE_NAME = "branch_admins"
BRANCHES_TABLE_NAME = "branches"
BRANCH = "branch"
INVALID_CREDENTIALS = "Invalid admin credentials"

# mount api router
admin_router = APIRouter()


def _unauthorized(reason: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=f"{INVALID_CREDENTIALS} - {reason}",
    )


async def _discard_admin_rows(db: Any, admin_id: UUID, tables: list[str], context: dict[str, Any]) -> None:
    """Delete the rows of a half-created admin, newest first; failures are logged."""
    for table in reversed(tables):
        try:
            await run_in_threadpool(
                lambda: db.table(table).delete().eq("user_id", str(admin_id)).execute()
            )
        except Exception:
            logger.exception(
                "Failed to remove partial admin record", extra={**context, "table": table, "admin_id": str(admin_id)}
            )


async def _fetch_branch(db: Any, branch_id: str, action: str) -> dict[str, Any]:
    guid = _parse_id(branch_id, logger, BRANCH)
    return await _fetch_record(
        db,
        BRANCHES_TABLE_NAME,
        guid,
        not_found_detail=f"No branch found with id {branch_id}",
        failure_detail=f"Unable to {action} branch due to an internal error.",
        log_context={"branch_id": branch_id},
    )


@admin_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the admin service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Admin service is healthy")


@admin_router.post("/login", response_model=AdminResponse)
async def login(
    credentials: AdminCredentials,
    db=Depends(get_db),
    rpc: BackendRPC = Depends(get_rpc),
) -> AdminResponse:
    """
    Authenticate an admin with email and pass key.

    The pass key is checked by the backend against the stored hash, then a
    backend session is opened for the admin.

    Args:
        credentials: Email and pass key.
        db: Supabase client injected via dependency.
        rpc: Backend procedures injected via dependency.

    Returns:
        AdminResponse with the admin's role and branch.

    Raises:
        HTTPException: 401 naming the step that rejected the credentials.
    """

    failure_detail = "Error verifying credentials"
    context = {"email": credentials.email}

    admin_rows = await _execute(
        lambda: db.table(ADMIN_USERS_TABLE_NAME)
        .select("user_id, email, role")
        .eq("email", credentials.email)
        .execute(),
        failure_detail,
        "Admin lookup failed",
        context,
    )
    if not admin_rows.data:
        logger.warning("Admin user not found", extra=context)
        raise _unauthorized("admin not found")
    admin_id = _parse_id(str(admin_rows.data[0]["user_id"]), logger, "admin")

    auth_rows = await _execute(
        lambda: db.table(ADMIN_AUTH_TABLE_NAME)
        .select("user_id, pass_key_hash")
        .eq("user_id", str(admin_id))
        .execute(),
        failure_detail,
        "Admin auth lookup failed",
        context,
    )
    if not auth_rows.data:
        logger.warning("Admin auth record not found", extra=context)
        raise _unauthorized("authentication record not found")

    password_hash = auth_rows.data[0]["pass_key_hash"]
    valid = await _execute(
        lambda: rpc.verify_password(credentials.pass_key, password_hash),
        failure_detail,
        "Password verification error",
        context,
    )
    if not valid:
        logger.warning("Admin password verification failed", extra=context)
        raise _unauthorized("wrong password")

    session = await _execute(
        lambda: rpc.establish_admin_session(admin_id),
        "Failed to establish admin session",
        "Exception establishing admin session",
        context,
    )
    if not session_established(session):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Failed to establish admin session",
        )

    admin = await load_admin(db, admin_id)
    if admin is None:
        raise _unauthorized("admin not found")
    logger.info("Admin logged in", extra={"admin_id": str(admin_id), "role": admin.role})
    return AdminResponse(status=status.HTTP_200_OK, admin=admin)


@admin_router.get("/me", response_model=AdminResponse)
async def current_admin(admin: AdminUser = Depends(get_current_admin)) -> AdminResponse:
    return AdminResponse(status=status.HTTP_200_OK, admin=admin)


@admin_router.post(
    "/admins",
    response_model=AdminResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_admin(
    payload: AdminCreate,
    db=Depends(get_db),
    rpc: BackendRPC = Depends(get_rpc),
    creator: AdminUser = Depends(require_superadmin),
) -> AdminResponse:
    """
    Create an admin account; the pass key is hashed by the backend.

    Raises:
        HTTPException: 400 for a branch admin without a branch, 404 for an
            unknown branch, 409 when the email is taken, 500 when a write
            fails; rows already written for the new admin are removed again.
    """

    failure_detail = "Unable to create admin due to an internal error."
    context = {"email": payload.email, "created_by": str(creator.id)}

    if payload.role == "branch_admin" and payload.branch_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Branch admins must be assigned to a branch.",
        )
    if payload.branch_id is not None:
        await _fetch_branch(db, str(payload.branch_id), "assign")

    existing = await _execute(
        lambda: db.table(ADMIN_USERS_TABLE_NAME).select("user_id").eq("email", payload.email).execute(),
        failure_detail,
        "Admin lookup failed",
        context,
    )
    if existing.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"An admin with email {payload.email} already exists",
        )

    password_hash = await _execute(
        lambda: rpc.hash_password(payload.password),
        failure_detail,
        "Password hashing failed",
        context,
    )

    admin_id = uuid4()
    await _execute(
        lambda: db.table(ADMIN_USERS_TABLE_NAME)
        .insert({"user_id": str(admin_id), "email": payload.email, "role": payload.role, "name": payload.name})
        .execute(),
        failure_detail,
        "Failed to insert admin user",
        context,
    )
    inserted = [ADMIN_USERS_TABLE_NAME]
    try:
        await _execute(
            lambda: db.table(ADMIN_AUTH_TABLE_NAME)
            .insert({"user_id": str(admin_id), "pass_key_hash": password_hash})
            .execute(),
            failure_detail,
            "Failed to insert admin auth record",
            context,
        )
        inserted.append(ADMIN_AUTH_TABLE_NAME)
        if payload.branch_id is not None:
            await _execute(
                lambda: db.table(BRANCH_ADMINS_TABLE_NAME)
                .insert(
                    {
                        "user_id": str(admin_id),
                        "branch_id": str(payload.branch_id),
                        "is_superadmin": payload.role == "superadmin",
                    }
                )
                .execute(),
                failure_detail,
                "Failed to assign admin to branch",
                context,
            )
    except HTTPException:
        await _discard_admin_rows(db, admin_id, inserted, context)
        raise

    admin = AdminUser(
        id=admin_id,
        email=payload.email,
        role=payload.role,
        branch_id=payload.branch_id,
        name=payload.name,
    )
    logger.info("Admin created", extra={**context, "admin_id": str(admin_id)})
    return AdminResponse(status=status.HTTP_201_CREATED, admin=admin)


@admin_router.get("/seat-map", response_model=AdminRowsResponse)
async def get_admin_seat_map(
    route_id: str,
    departure_date: date,
    departure_time: str,
    bus_id: Optional[str] = None,
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> AdminRowsResponse:
    """Seat map with passenger details for one departure."""

    guid = _parse_id(route_id, logger, "route")
    bus_guid = None if bus_id is None else _parse_id(bus_id, logger, "fleet")
    try:
        time_value = normalize_time(departure_time)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    rows = await run_with_session_retry(
        rpc,
        admin,
        lambda: rpc.get_admin_seat_map(guid, departure_date, time_value, bus_guid),
        "Failed to load seat map",
        {"admin_id": str(admin.id), "route_id": route_id},
    )
    return AdminRowsResponse(status=status.HTTP_200_OK, rows=rows)


@admin_router.get("/bookings", response_model=AdminRowsResponse)
async def get_admin_bookings(
    branch_id: Optional[str] = None,
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> AdminRowsResponse:
    """Bookings visible to the admin, limited to one branch unless a superadmin asks for all."""

    scope = resolve_branch(admin, branch_id)
    rows = await run_with_session_retry(
        rpc,
        admin,
        lambda: rpc.get_admin_bookings(scope),
        "Failed to load bookings",
        {"admin_id": str(admin.id), "branch_id": scope},
    )
    return AdminRowsResponse(status=status.HTTP_200_OK, branch_id=scope, rows=rows)


@admin_router.get("/receipts", response_model=AdminRowsResponse)
async def get_admin_receipts(
    branch_id: Optional[str] = None,
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> AdminRowsResponse:
    scope = resolve_branch(admin, branch_id)
    rows = await run_with_session_retry(
        rpc,
        admin,
        lambda: rpc.get_admin_receipts(scope),
        "Failed to load receipts",
        {"admin_id": str(admin.id), "branch_id": scope},
    )
    return AdminRowsResponse(status=status.HTTP_200_OK, branch_id=scope, rows=rows)


@admin_router.get("/analytics", response_model=AnalyticsResponse)
async def get_admin_analytics(
    branch_id: Optional[str] = None,
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> AnalyticsResponse:
    scope = resolve_branch(admin, branch_id)
    analytics = await run_with_session_retry(
        rpc,
        admin,
        lambda: rpc.get_admin_analytics(scope),
        "Failed to load analytics",
        {"admin_id": str(admin.id), "branch_id": scope},
    )
    return AnalyticsResponse(status=status.HTTP_200_OK, branch_id=scope, analytics=analytics)


@admin_router.get("/export", response_model=AdminRowsResponse)
async def export_bookings(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    branch_id: Optional[str] = None,
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> AdminRowsResponse:
    """Booking rows for a spreadsheet export, optionally within a date range."""

    if start_date is not None and end_date is not None and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date cannot be before start date.",
        )
    scope = resolve_branch(admin, branch_id)
    rows = await run_with_session_retry(
        rpc,
        admin,
        lambda: rpc.export_bookings_data(start_date, end_date, scope),
        "Failed to export data",
        {"admin_id": str(admin.id), "branch_id": scope},
    )
    logger.info("Bookings exported", extra={"admin_id": str(admin.id), "rows": len(rows)})
    return AdminRowsResponse(status=status.HTTP_200_OK, branch_id=scope, rows=rows)


@admin_router.get("/branches", response_model=BranchListResponse)
async def list_branches(
    db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> BranchListResponse:
    """Branches the admin may work with: all for a superadmin, their own otherwise."""

    def query():
        builder = db.table(BRANCHES_TABLE_NAME).select("*")
        if not admin.is_superadmin:
            builder = builder.eq("id", str(admin.branch_id))
        return builder.order("name").execute()

    result = await _execute(
        query,
        "Unable to retrieve branches due to an internal error.",
        "Failed to list branches",
        {"admin_id": str(admin.id)},
    )
    return BranchListResponse(status=status.HTTP_200_OK, branches=[Branch(**row) for row in result.data])


@admin_router.post(
    "/branches",
    response_model=BranchResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_branch(
    branch: Branch, db=Depends(get_db), admin: AdminUser = Depends(require_superadmin)
) -> BranchResponse:
    failure_detail = "Unable to create branch due to an internal error."
    existing = await _execute(
        lambda: db.table(BRANCHES_TABLE_NAME).select("id").eq("code", branch.code).execute(),
        failure_detail,
        "Failed to query existing branches",
        {"code": branch.code},
    )
    if existing.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Branch with code {branch.code} already exists",
        )

    result = await _execute(
        lambda: db.table(BRANCHES_TABLE_NAME).insert(branch.to_dict()).execute(),
        failure_detail,
        "Failed to insert branch",
        {"code": branch.code},
    )
    created = Branch(**(result.data[0] if result.data else branch.to_dict()))
    logger.info("Branch created", extra={"branch_id": str(created.id), "admin_id": str(admin.id)})
    return BranchResponse(status=status.HTTP_201_CREATED, branch=created)


@admin_router.put("/branches/{branch_id}", response_model=BranchResponse)
async def update_branch(
    branch_id: str,
    fields: BranchFields,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> BranchResponse:
    """Update a branch; branch admins may only edit their own."""

    resolve_branch(admin, branch_id)
    updates = _require_updates(fields)
    record = await _fetch_branch(db, branch_id, "update")

    await _execute(
        lambda: db.table(BRANCHES_TABLE_NAME).update(updates).eq("id", str(record["id"])).execute(),
        "Unable to update branch due to an internal error.",
        "Failed to update branch",
        {"branch_id": branch_id, "updates": updates},
    )
    refreshed = await _fetch_branch(db, branch_id, "update")
    logger.info("Branch updated", extra={"branch_id": branch_id, "admin_id": str(admin.id)})
    return BranchResponse(status=status.HTTP_200_OK, branch=Branch(**refreshed))


@admin_router.delete("/branches/{branch_id}", response_model=MessageResponse)
async def delete_branch(
    branch_id: str, db=Depends(get_db), admin: AdminUser = Depends(require_superadmin)
) -> MessageResponse:
    record = await _fetch_branch(db, branch_id, "delete")
    await _execute(
        lambda: db.table(BRANCHES_TABLE_NAME).delete().eq("id", str(record["id"])).execute(),
        "Unable to delete branch due to an internal error.",
        "Unable to delete branch",
        {"branch_id": branch_id},
    )
    logger.info("Branch deleted", extra={"branch_id": branch_id, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Branch {branch_id} deleted")
