"""Admin identity, backend session handling and branch scoping."""

import logging
from typing import Any, Callable, Literal, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from Users.user import normalize_email

logger = logging.getLogger(__name__)

AdminRole = Literal['superadmin', 'branch_admin']
T = TypeVar("T")

ACCESS_DENIED_MARKERS = ("Access denied", "privileges required")


class AdminUser(BaseModel):

    id : UUID
    email : str
    role : AdminRole
    branch_id : Optional[UUID] = None
    name : Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == 'superadmin'


class AdminCredentials(BaseModel):

    email : str
    pass_key : str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, value: str) -> str:
        return normalize_email(value)


class AdminCreate(BaseModel):

    email : str
    password : str = Field(min_length=8)
    name : Optional[str] = None
    role : AdminRole = 'branch_admin'
    branch_id : Optional[UUID] = None

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, value: str) -> str:
        return normalize_email(value)


class BranchAccessError(Exception):
    """Raised when an admin asks for data outside their branch."""


def session_established(response: Any) -> bool:
    """
    Interpret the answer of ``establish_admin_session``.

    Newer backends return ``{"success": bool, "error": str}``; older ones a
    bare boolean.
    """
    if isinstance(response, dict):
        if response.get("success"):
            return True
        logger.error("Admin session refused", extra={"error": response.get("error")})
        return False
    return response is True


def is_access_denied(error: Exception) -> bool:
    message = str(getattr(error, "message", None) or error)
    return any(marker in message for marker in ACCESS_DENIED_MARKERS)


def with_session_retry(operation: Callable[[], T], refresh_session: Callable[[], bool]) -> T:
    """
    Run ``operation``; on an access-denied error refresh the session and retry once.

    Any other error, a failed refresh, or a second failure propagates.
    """
    try:
        return operation()
    except Exception as exc:
        if not is_access_denied(exc):
            raise
        logger.info("Access denied, refreshing admin session and retrying")
        if not refresh_session():
            raise
        return operation()


class BranchScope:
    """Branch filter an admin's queries run under."""

    def __init__(self, admin: AdminUser) -> None:
        self.admin = admin

    def resolve(self, requested_branch_id: Optional[UUID] = None) -> Optional[str]:
        """
        Branch id to filter by, or None for every branch.

        A superadmin sees all branches unless one is requested. A branch admin
        is pinned to their own branch.

        Raises:
            BranchAccessError: A branch admin asked for another branch, or has none.
        """
        if self.admin.is_superadmin:
            return None if requested_branch_id is None else str(requested_branch_id)

        if self.admin.branch_id is None:
            raise BranchAccessError("No branch is assigned to this admin.")
        if requested_branch_id is not None and requested_branch_id != self.admin.branch_id:
            raise BranchAccessError("Branch admins can only access their own branch.")
        return str(self.admin.branch_id)
