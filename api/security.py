"""Admin identity resolution shared by the admin-facing routers."""

import logging
from typing import Any, Callable, Optional, TypeVar
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from Database.deps import get_db, get_rpc
from Database.rpc import BackendRPC
from Users.admin import (
    AdminUser,
    BranchAccessError,
    BranchScope,
    session_established,
    with_session_retry,
)

from .utils import _execute, _parse_id

logger = logging.getLogger(__name__)

ADMIN_USERS_TABLE_NAME = "admin_users"
BRANCH_ADMINS_TABLE_NAME = "branch_admins"

T = TypeVar("T")


def _establish_session(rpc: BackendRPC, admin_id: UUID) -> bool:
    try:
        return session_established(rpc.establish_admin_session(admin_id))
    except Exception:
        logger.exception("Exception establishing admin session", extra={"admin_id": str(admin_id)})
        return False


async def load_admin(db: Any, admin_id: UUID) -> Optional[AdminUser]:
    """Build an AdminUser from ``admin_users`` and the branch assignment in ``branch_admins``."""

    result = await _execute(
        lambda: db.table(ADMIN_USERS_TABLE_NAME).select("*").eq("user_id", str(admin_id)).execute(),
        "Unable to load admin due to an internal error.",
        "Failed to fetch admin user",
        {"admin_id": str(admin_id)},
    )
    if not result.data:
        return None
    record = result.data[0]

    assignment = await _execute(
        lambda: db.table(BRANCH_ADMINS_TABLE_NAME).select("*").eq("user_id", str(admin_id)).execute(),
        "Unable to load admin due to an internal error.",
        "Failed to fetch branch assignment",
        {"admin_id": str(admin_id)},
    )
    branch_id = assignment.data[0].get("branch_id") if assignment.data else None

    return AdminUser(
        id=admin_id,
        email=record["email"],
        role=record.get("role", "branch_admin"),
        branch_id=branch_id,
        name=record.get("name"),
    )


async def get_current_admin(
    x_admin_user_id: Optional[str] = Header(default=None),
    db=Depends(get_db),
    rpc: BackendRPC = Depends(get_rpc),
) -> AdminUser:
    """
    Resolve the admin making the request from the ``X-Admin-User-Id`` header.

    The backend session is re-established on every request so row-level
    security sees the admin.

    Raises:
        HTTPException: 403 without the header or for an unknown admin,
            401 when the backend refuses the session.
    """

    if not x_admin_user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    admin_id = _parse_id(x_admin_user_id, logger, "admin")

    admin = await load_admin(db, admin_id)
    if admin is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin user not found. Please log in again.",
        )

    if not await run_in_threadpool(_establish_session, rpc, admin_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Failed to establish admin session",
        )
    return admin


def require_superadmin(admin: AdminUser = Depends(get_current_admin)) -> AdminUser:
    if not admin.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin privileges required",
        )
    return admin


def resolve_branch(admin: AdminUser, requested_branch_id: Optional[str]) -> Optional[str]:
    """Branch filter for an admin query, mapping scope violations to 403."""

    requested = None if requested_branch_id is None else _parse_id(requested_branch_id, logger, "branch")
    try:
        return BranchScope(admin).resolve(requested)
    except BranchAccessError as exc:
        logger.warning(
            "Branch scope violation",
            extra={"admin_id": str(admin.id), "requested_branch_id": requested_branch_id},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


async def run_with_session_retry(
    rpc: BackendRPC,
    admin: AdminUser,
    operation: Callable[[], T],
    failure_detail: str,
    log_context: dict[str, Any],
) -> T:
    """Run an admin read with one session refresh on access-denied errors."""

    return await _execute(
        lambda: with_session_retry(operation, lambda: _establish_session(rpc, admin.id)),
        failure_detail,
        "Admin query failed",
        log_context,
    )
