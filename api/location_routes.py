"""Origin and destination locations offered per branch."""

import logging
from typing import Any, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from Database.deps import get_db
from Fleet.structure import Location
from Users.admin import AdminUser

from .models import LocationFields, LocationListResponse, LocationResponse, MessageResponse
from .security import get_current_admin, resolve_branch
from .utils import _execute, _fetch_record, _parse_id, _require_updates

logger = logging.getLogger(__name__)

LOCATIONS_TABLE_NAME = "locations"
ROUTES_TABLE_NAME = "routes"
LOCATION = "location"

# mount api router
location_router = APIRouter()


async def _fetch_location(db: Any, guid: UUID, action: str) -> Location:
    record = await _fetch_record(
        db,
        LOCATIONS_TABLE_NAME,
        guid,
        not_found_detail=f"No location found with id {guid}",
        failure_detail=f"Unable to {action} location due to an internal error.",
        log_context={"location_id": str(guid)},
    )
    return Location(**record)


async def _ensure_unique_location(db: Any, location: Location, failure_detail: str) -> None:
    """A branch lists each name at most once per type."""

    def query():
        builder = (
            db.table(LOCATIONS_TABLE_NAME)
            .select("id")
            .eq("name", location.name)
            .eq("type", location.type)
        )
        if location.branch_id is not None:
            builder = builder.eq("branch_id", str(location.branch_id))
        return builder.execute()

    existing = await _execute(query, failure_detail, "Failed to query existing locations", {"name": location.name})
    if any(str(row.get("id")) != str(location.id) for row in existing.data):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A '{location.type}' location named {location.name} already exists for this branch",
        )


def _check_location_scope(admin: AdminUser, location: Location) -> None:
    if admin.is_superadmin or location.branch_id == admin.branch_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Branch admins can only manage locations of their own branch.",
    )


@location_router.get("", response_model=LocationListResponse)
async def list_locations(
    type: Optional[Literal['from', 'to']] = None,
    branch_id: Optional[str] = None,
    db=Depends(get_db),
) -> LocationListResponse:
    """Locations by name, optionally only origins or destinations, or one branch's."""

    def query():
        builder = db.table(LOCATIONS_TABLE_NAME).select("*")
        if type is not None:
            builder = builder.eq("type", type)
        if branch_id is not None:
            builder = builder.eq("branch_id", str(_parse_id(branch_id, logger, "branch")))
        return builder.order("name").execute()

    result = await _execute(
        query,
        "Unable to retrieve locations due to an internal error.",
        "Failed to list locations",
        {"type": type, "branch_id": branch_id},
    )
    return LocationListResponse(status=status.HTTP_200_OK, locations=[Location(**row) for row in result.data])


@location_router.post(
    "",
    response_model=LocationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_location(
    location: Location, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> LocationResponse:
    """
    Add an origin or destination to a branch.

    Branch admins always add to their own branch.

    Raises:
        HTTPException: 403 for another branch, 409 when the branch already lists
            the name for that type.
    """

    requested = None if location.branch_id is None else str(location.branch_id)
    branch_id = resolve_branch(admin, requested)
    location = location.model_copy(update={"branch_id": None if branch_id is None else UUID(branch_id)})
    failure_detail = "Unable to create location due to an internal error."
    await _ensure_unique_location(db, location, failure_detail)

    insert_result = await _execute(
        lambda: db.table(LOCATIONS_TABLE_NAME).insert(location.to_dict()).execute(),
        failure_detail,
        "Failed to insert location",
        {"name": location.name, "type": location.type},
    )
    created = Location(**(insert_result.data[0] if insert_result.data else location.to_dict()))
    logger.info("Location created", extra={"location_id": str(created.id), "admin_id": str(admin.id)})
    return LocationResponse(status=status.HTTP_201_CREATED, location=created)


@location_router.put("/{location_id}", response_model=LocationResponse)
async def update_location(
    location_id: str,
    fields: LocationFields,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> LocationResponse:
    guid = _parse_id(location_id, logger, LOCATION)
    updates = _require_updates(fields)
    current = await _fetch_location(db, guid, "update")
    _check_location_scope(admin, current)
    if "branch_id" in updates:
        resolve_branch(admin, updates["branch_id"])
    try:
        candidate = Location(**{**current.to_dict(), **updates})
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    await _ensure_unique_location(db, candidate, "Unable to update location due to an internal error.")

    changes = {key: value for key, value in candidate.to_dict().items() if key != "id"}
    await _execute(
        lambda: db.table(LOCATIONS_TABLE_NAME).update(changes).eq("id", str(guid)).execute(),
        "Unable to update location due to an internal error.",
        "Failed to update location",
        {"location_id": location_id},
    )
    updated = await _fetch_location(db, guid, "update")
    logger.info("Location updated", extra={"location_id": location_id, "admin_id": str(admin.id)})
    return LocationResponse(status=status.HTTP_200_OK, location=updated)


@location_router.delete("/{location_id}", response_model=MessageResponse)
async def delete_location(
    location_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> MessageResponse:
    """
    Remove a location no route still uses.

    Raises:
        HTTPException: 409 while a route of the branch starts or ends there.
    """

    guid = _parse_id(location_id, logger, LOCATION)
    location = await _fetch_location(db, guid, "delete")
    _check_location_scope(admin, location)
    failure_detail = "Unable to delete location due to an internal error."

    def routes_using(column: str):
        def query():
            builder = db.table(ROUTES_TABLE_NAME).select("id").eq(column, location.name)
            if location.branch_id is not None:
                builder = builder.eq("branch_id", str(location.branch_id))
            return builder.execute()
        return query

    in_use = 0
    for column in ("from_location", "to_location"):
        result = await _execute(
            routes_using(column),
            failure_detail,
            "Failed to query routes using location",
            {"location_id": location_id},
        )
        in_use += len(result.data)
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Location {location.name} is used by {in_use} route(s) of its branch",
        )

    await _execute(
        lambda: db.table(LOCATIONS_TABLE_NAME).delete().eq("id", str(guid)).execute(),
        failure_detail,
        "Unable to delete location",
        {"location_id": location_id},
    )
    logger.info("Location deleted", extra={"location_id": location_id, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Location {location_id} deleted")
