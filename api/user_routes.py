"""Passenger profile FastAPI routes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from Database.deps import get_db
from Users.user import Profile

from .models import MessageResponse, ProfileFields, ProfileResponse
from .utils import _execute, _fetch_record, _parse_id, _require_updates

logger = logging.getLogger(__name__)

PROFILES_TABLE_NAME = "profiles"
USER = "user"

# mount api router
user_router = APIRouter()


@user_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    return MessageResponse(status=status.HTTP_200_OK, message="User service is healthy")


@user_router.get("/{user_id}/profile", response_model=ProfileResponse)
async def get_profile(user_id: str, db=Depends(get_db)) -> ProfileResponse:
    guid = _parse_id(user_id, logger, USER)
    record = await _fetch_record(
        db,
        PROFILES_TABLE_NAME,
        guid,
        not_found_detail=f"No profile found for user {user_id}",
        failure_detail="Unable to retrieve profile due to an internal error.",
        log_context={"user_id": user_id},
    )
    logger.info("Profile retrieved", extra={"user_id": user_id})
    return ProfileResponse(status=status.HTTP_200_OK, profile=Profile(**record))


@user_router.put("/{user_id}/profile", response_model=ProfileResponse)
async def update_profile(user_id: str, fields: ProfileFields, db=Depends(get_db)) -> ProfileResponse:
    """
    Update a passenger's name, phone or avatar.

    Args:
        user_id: UUID4 of the passenger.
        fields: Partial update payload.
        db: Supabase client injected via dependency.

    Returns:
        ProfileResponse wrapping the updated profile.
    """

    guid = _parse_id(user_id, logger, USER)
    updates = _require_updates(fields)
    context = {"user_id": user_id}
    fetch_args = dict(
        not_found_detail=f"No profile found for user {user_id}",
        failure_detail="Unable to update profile due to an internal error.",
        log_context=context,
    )

    await _fetch_record(db, PROFILES_TABLE_NAME, guid, **fetch_args)
    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    await _execute(
        lambda: db.table(PROFILES_TABLE_NAME).update(updates).eq("id", str(guid)).execute(),
        "Unable to update profile due to an internal error.",
        "Failed to update profile",
        context,
    )

    refreshed = await _fetch_record(db, PROFILES_TABLE_NAME, guid, **fetch_args)
    logger.info("Profile updated", extra=context)
    return ProfileResponse(status=status.HTTP_200_OK, profile=Profile(**refreshed))
