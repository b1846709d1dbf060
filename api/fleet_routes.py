"""Route, fleet type, fleet pricing and bus schedule FastAPI routes."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from postgrest.exceptions import APIError

from Database.deps import get_db, get_rpc
from Database.rpc import BackendRPC
from Fleet.pricing import build_fleet_options, location_options, missing_fleet_pricing
from Fleet.structure import BusSchedule, FleetType, Route, RouteFleetPricing
from Users.admin import AdminUser
from utils import normalize_time

from .models import (
    AvailableFleetResponse,
    FleetFields,
    FleetOptionsResponse,
    FleetTypeListResponse,
    FleetTypeResponse,
    LocationOptionsResponse,
    MessageResponse,
    PricingBackfillResponse,
    RouteFields,
    RouteListResponse,
    RouteResponse,
    ScheduleFields,
    ScheduleListResponse,
    ScheduleResponse,
)
from .security import get_current_admin
from .utils import _execute, _fetch_record, _is_unique_violation, _parse_id, _require_updates

logger = logging.getLogger(__name__)

ROUTES_TABLE_NAME = "routes"
FLEET_TABLE_NAME = "fleet"
PRICING_TABLE_NAME = "route_fleet_pricing"
SCHEDULES_TABLE_NAME = "bus_schedules"
ROUTE = "route"
SCHEDULE = "schedule"
FLEET = "fleet"

# mount api router
fleet_router = APIRouter()


async def _fetch_route(db: Any, guid: UUID, action: str) -> Route:
    record = await _fetch_record(
        db,
        ROUTES_TABLE_NAME,
        guid,
        not_found_detail=f"No route found with id {guid}",
        failure_detail=f"Unable to {action} route due to an internal error.",
        log_context={"route_id": str(guid)},
    )
    return Route(**record)


async def _fetch_fleet_types(db: Any, failure_detail: str) -> list[FleetType]:
    result = await _execute(
        lambda: db.table(FLEET_TABLE_NAME).select("*").order("base_price_multiplier").execute(),
        failure_detail,
        "Failed to fetch fleet types",
        {},
    )
    return [FleetType(**row) for row in result.data]


async def _fetch_fleet_type(db: Any, guid: UUID, action: str) -> FleetType:
    record = await _fetch_record(
        db,
        FLEET_TABLE_NAME,
        guid,
        not_found_detail=f"No fleet type found with id {guid}",
        failure_detail=f"Unable to {action} fleet type due to an internal error.",
        log_context={"fleet_id": str(guid)},
    )
    return FleetType(**record)


async def _ensure_unique_fleet_name(db: Any, fleet: FleetType, failure_detail: str) -> None:
    existing = await _execute(
        lambda: db.table(FLEET_TABLE_NAME).select("id").eq("name", fleet.name).execute(),
        failure_detail,
        "Failed to query existing fleet types",
        {"fleet_name": fleet.name},
    )
    if any(str(row.get("id")) != str(fleet.id) for row in existing.data):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A fleet type named '{fleet.name}' already exists",
        )


async def _fetch_route_pricing(db: Any, route_id: UUID, failure_detail: str) -> list[RouteFleetPricing]:
    result = await _execute(
        lambda: db.table(PRICING_TABLE_NAME).select("*").eq("route_id", str(route_id)).execute(),
        failure_detail,
        "Failed to fetch route fleet pricing",
        {"route_id": str(route_id)},
    )
    return [RouteFleetPricing(**row) for row in result.data]


async def _backfill_route_pricing(db: Any, route: Route, fleet_types: list[FleetType]) -> int:
    failure_detail = "Unable to populate fleet pricing due to an internal error."
    existing = await _fetch_route_pricing(db, route.id, failure_detail)
    rows = missing_fleet_pricing(route.id, route.price, fleet_types, [entry.fleet_id for entry in existing])
    if rows:
        await _execute(
            lambda: db.table(PRICING_TABLE_NAME).insert([row.to_dict() for row in rows]).execute(),
            failure_detail,
            "Failed to insert default fleet pricing",
            {"route_id": str(route.id)},
        )
    return len(rows)


async def _ensure_unique_pair(db: Any, route: Route, failure_detail: str) -> None:
    existing = await _execute(
        lambda: db.table(ROUTES_TABLE_NAME)
        .select("*")
        .eq("from_location", route.from_location)
        .eq("to_location", route.to_location)
        .execute(),
        failure_detail,
        "Failed to query existing routes",
        {"from_location": route.from_location, "to_location": route.to_location},
    )
    if any(str(row.get("id")) != str(route.id) for row in existing.data):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Route {route.from_location} to {route.to_location} already exists",
        )


@fleet_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the route service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Route service is healthy")


@fleet_router.get("/locations", response_model=LocationOptionsResponse)
async def get_locations(db=Depends(get_db)) -> LocationOptionsResponse:
    """Origins and destinations offered by the booking form."""

    result = await _execute(
        lambda: db.table(ROUTES_TABLE_NAME).select("*").order("from_location").execute(),
        "Unable to load locations due to an internal error.",
        "Failed to fetch routes for locations",
        {},
    )
    options = location_options(Route(**row) for row in result.data)
    return LocationOptionsResponse(status=status.HTTP_200_OK, **options)


@fleet_router.post("/fleet-pricing/backfill", response_model=PricingBackfillResponse)
async def backfill_all_pricing(
    db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> PricingBackfillResponse:
    """Give every route a price for every fleet type that lacks one."""

    failure_detail = "Unable to populate fleet pricing due to an internal error."
    routes = await _execute(
        lambda: db.table(ROUTES_TABLE_NAME).select("*").execute(),
        failure_detail,
        "Failed to fetch routes for pricing backfill",
        {},
    )
    fleet_types = await _fetch_fleet_types(db, failure_detail)
    created = 0
    for row in routes.data:
        created += await _backfill_route_pricing(db, Route(**row), fleet_types)

    logger.info("Default fleet pricing populated", extra={"created": created, "admin_id": str(admin.id)})
    return PricingBackfillResponse(status=status.HTTP_200_OK, created=created)


@fleet_router.get("/fleet", response_model=FleetTypeListResponse)
async def list_fleet_types(branch_id: Optional[str] = None, db=Depends(get_db)) -> FleetTypeListResponse:
    """Fleet types by name, optionally one branch's."""

    def query():
        builder = db.table(FLEET_TABLE_NAME).select("*")
        if branch_id is not None:
            builder = builder.eq("branch_id", str(_parse_id(branch_id, logger, "branch")))
        return builder.order("name").execute()

    result = await _execute(
        query,
        "Unable to retrieve fleet types due to an internal error.",
        "Failed to list fleet types",
        {"branch_id": branch_id},
    )
    return FleetTypeListResponse(status=status.HTTP_200_OK, fleet=[FleetType(**row) for row in result.data])


@fleet_router.post(
    "/fleet",
    response_model=FleetTypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_fleet_type(
    fleet: FleetType, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> FleetTypeResponse:
    """
    Add a fleet type and price it on every existing route.

    Raises:
        HTTPException: 409 when the name is taken, 500 on backend errors.
    """

    failure_detail = "Unable to create fleet type due to an internal error."
    await _ensure_unique_fleet_name(db, fleet, failure_detail)

    log_context = {"fleet_name": fleet.name}
    try:
        insert_result = await run_in_threadpool(
            lambda: db.table(FLEET_TABLE_NAME).insert(fleet.to_dict()).execute()
        )
    except APIError as exc:
        if _is_unique_violation(exc):
            logger.info("Duplicate fleet type blocked by unique constraint", extra=log_context)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A fleet type named '{fleet.name}' already exists",
            ) from exc
        logger.exception("Failed to insert fleet type", extra=log_context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=failure_detail,
        ) from exc
    except Exception as exc:
        logger.exception("Failed to insert fleet type", extra=log_context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=failure_detail,
        ) from exc

    created = FleetType(**(insert_result.data[0] if insert_result.data else fleet.to_dict()))
    routes = await _execute(
        lambda: db.table(ROUTES_TABLE_NAME).select("*").execute(),
        failure_detail,
        "Failed to fetch routes for fleet pricing",
        {"fleet_id": str(created.id)},
    )
    priced = 0
    for row in routes.data:
        priced += await _backfill_route_pricing(db, Route(**row), [created])

    logger.info(
        "Fleet type created",
        extra={"fleet_id": str(created.id), "routes_priced": priced, "admin_id": str(admin.id)},
    )
    return FleetTypeResponse(status=status.HTTP_201_CREATED, fleet=created)


@fleet_router.put("/fleet/{fleet_id}", response_model=FleetTypeResponse)
async def update_fleet_type(
    fleet_id: str,
    fields: FleetFields,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> FleetTypeResponse:
    guid = _parse_id(fleet_id, logger, FLEET)
    updates = _require_updates(fields)
    current = await _fetch_fleet_type(db, guid, "update")
    try:
        candidate = FleetType(**{**current.to_dict(), **updates})
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    if candidate.name != current.name:
        await _ensure_unique_fleet_name(db, candidate, "Unable to update fleet type due to an internal error.")

    changes = {key: value for key, value in candidate.to_dict().items() if key != "id"}
    await _execute(
        lambda: db.table(FLEET_TABLE_NAME).update(changes).eq("id", str(guid)).execute(),
        "Unable to update fleet type due to an internal error.",
        "Failed to update fleet type",
        {"fleet_id": fleet_id},
    )
    updated = await _fetch_fleet_type(db, guid, "update")
    logger.info("Fleet type updated", extra={"fleet_id": fleet_id, "admin_id": str(admin.id)})
    return FleetTypeResponse(status=status.HTTP_200_OK, fleet=updated)


@fleet_router.delete("/fleet/{fleet_id}", response_model=MessageResponse)
async def delete_fleet_type(
    fleet_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> MessageResponse:
    """Remove a fleet type together with its route prices."""

    guid = _parse_id(fleet_id, logger, FLEET)
    await _fetch_fleet_type(db, guid, "delete")
    failure_detail = "Unable to delete fleet type due to an internal error."
    context = {"fleet_id": fleet_id}

    await _execute(
        lambda: db.table(PRICING_TABLE_NAME).delete().eq("fleet_id", str(guid)).execute(),
        failure_detail,
        "Failed to delete fleet pricing",
        context,
    )
    await _execute(
        lambda: db.table(FLEET_TABLE_NAME).delete().eq("id", str(guid)).execute(),
        failure_detail,
        "Unable to delete fleet type",
        context,
    )
    logger.info("Fleet type deleted", extra={**context, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Fleet type {fleet_id} deleted")


@fleet_router.post(
    "/schedules",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_schedule(
    schedule: BusSchedule, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> ScheduleResponse:
    """Schedule a bus on a route for one departure."""

    await _fetch_route(db, schedule.route_id, "schedule")
    failure_detail = "Unable to create schedule due to an internal error."
    existing = await _execute(
        lambda: db.table(SCHEDULES_TABLE_NAME)
        .select("*")
        .eq("bus_id", str(schedule.bus_id))
        .eq("departure_date", schedule.departure_date.isoformat())
        .eq("departure_time", schedule.departure_time)
        .execute(),
        failure_detail,
        "Failed to query existing schedules",
        {"bus_id": str(schedule.bus_id)},
    )
    if existing.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This bus is already scheduled for that departure",
        )

    insert_result = await _execute(
        lambda: db.table(SCHEDULES_TABLE_NAME).insert(schedule.to_dict()).execute(),
        failure_detail,
        "Failed to insert schedule",
        {"route_id": str(schedule.route_id)},
    )
    created = BusSchedule(**(insert_result.data[0] if insert_result.data else schedule.to_dict()))
    logger.info("Schedule created", extra={"schedule_id": str(created.id), "admin_id": str(admin.id)})
    return ScheduleResponse(status=status.HTTP_201_CREATED, schedule=created)


@fleet_router.put("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: str,
    fields: ScheduleFields,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> ScheduleResponse:
    guid = _parse_id(schedule_id, logger, SCHEDULE)
    updates = _require_updates(fields)
    context = {"schedule_id": schedule_id}

    current = await _fetch_record(
        db, SCHEDULES_TABLE_NAME, guid,
        not_found_detail=f"No schedule found with id {schedule_id}",
        failure_detail="Unable to update schedule due to an internal error.",
        log_context=context,
    )
    try:
        BusSchedule(**{**current, **updates})
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    await _execute(
        lambda: db.table(SCHEDULES_TABLE_NAME).update(updates).eq("id", str(guid)).execute(),
        "Unable to update schedule due to an internal error.",
        "Failed to update schedule",
        context,
    )
    refreshed = await _fetch_record(
        db, SCHEDULES_TABLE_NAME, guid,
        not_found_detail=f"No schedule found with id {schedule_id}",
        failure_detail="Unable to update schedule due to an internal error.",
        log_context=context,
    )
    logger.info("Schedule updated", extra={**context, "admin_id": str(admin.id)})
    return ScheduleResponse(status=status.HTTP_200_OK, schedule=BusSchedule(**refreshed))


@fleet_router.delete("/schedules/{schedule_id}", response_model=MessageResponse)
async def delete_schedule(
    schedule_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> MessageResponse:
    guid = _parse_id(schedule_id, logger, SCHEDULE)
    context = {"schedule_id": schedule_id}
    await _fetch_record(
        db, SCHEDULES_TABLE_NAME, guid,
        not_found_detail=f"No schedule found with id {schedule_id}",
        failure_detail="Unable to delete schedule due to an internal error.",
        log_context=context,
    )
    await _execute(
        lambda: db.table(SCHEDULES_TABLE_NAME).delete().eq("id", str(guid)).execute(),
        "Unable to delete schedule due to an internal error.",
        "Unable to delete schedule",
        context,
    )
    logger.info("Schedule deleted", extra={**context, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Schedule {schedule_id} deleted")


@fleet_router.post(
    "",
    response_model=RouteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_route(
    route: Route, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> RouteResponse:
    """
    Add a Route to the database if the origin/destination pair is new.

    Default prices for every fleet type are created alongside the route.

    Args:
        route: Route payload to persist.
        db: Supabase client injected via dependency.
        admin: Admin performing the change.

    Returns:
        RouteResponse wrapping the created route.
    """

    failure_detail = "Unable to create route due to an internal error."
    await _ensure_unique_pair(db, route, failure_detail)

    log_context = {"from_location": route.from_location, "to_location": route.to_location}
    try:
        insert_result = await run_in_threadpool(
            lambda: db.table(ROUTES_TABLE_NAME).insert(route.to_dict()).execute()
        )
    except APIError as exc:
        if _is_unique_violation(exc):
            logger.info("Duplicate route creation blocked by unique constraint", extra=log_context)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Route {route.from_location} to {route.to_location} already exists",
            ) from exc
        logger.exception("Failed to insert route", extra=log_context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=failure_detail,
        ) from exc
    except Exception as exc:
        logger.exception("Failed to insert route", extra=log_context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=failure_detail,
        ) from exc

    created_route = Route(**(insert_result.data[0] if insert_result.data else route.to_dict()))
    fleet_types = await _fetch_fleet_types(db, failure_detail)
    await _backfill_route_pricing(db, created_route, fleet_types)

    logger.info(
        "Route created", extra={"route_id": str(created_route.id), "admin_id": str(admin.id)}
    )
    return RouteResponse(status=status.HTTP_201_CREATED, route=created_route)


@fleet_router.get("", response_model=RouteListResponse)
async def list_routes(
    popular: Optional[bool] = None,
    branch_id: Optional[str] = None,
    db=Depends(get_db),
) -> RouteListResponse:
    """List routes ordered by origin, optionally only popular ones or one branch's."""

    def query():
        builder = db.table(ROUTES_TABLE_NAME).select("*")
        if popular is not None:
            builder = builder.eq("is_popular", popular)
        if branch_id is not None:
            builder = builder.eq("branch_id", str(_parse_id(branch_id, logger, "branch")))
        return builder.order("from_location").execute()

    result = await _execute(
        query,
        "Unable to retrieve routes due to an internal error.",
        "Failed to list routes",
        {"popular": popular, "branch_id": branch_id},
    )
    return RouteListResponse(status=status.HTTP_200_OK, routes=[Route(**row) for row in result.data])


@fleet_router.get("/{route_id}", response_model=RouteResponse)
async def get_route(route_id: str, db=Depends(get_db)) -> RouteResponse:
    guid = _parse_id(route_id, logger, ROUTE)
    route = await _fetch_route(db, guid, "retrieve")
    logger.info("Route retrieved", extra={"route_id": route_id})
    return RouteResponse(status=status.HTTP_200_OK, route=route)


@fleet_router.put("/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: str,
    fields: RouteFields,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> RouteResponse:
    """
    Update mutable fields on an existing route.

    Args:
        route_id: UUID4 of the route to update.
        fields: Partial update payload with allowed fields.
        db: Supabase client injected via dependency.
        admin: Admin performing the change.

    Returns:
        RouteResponse wrapping the updated route.
    """

    guid = _parse_id(route_id, logger, ROUTE)
    updates = _require_updates(fields)
    updates["updated_at"] = datetime.now(timezone.utc).isoformat()

    existing = await _fetch_route(db, guid, "update")
    try:
        candidate = Route(**{**existing.model_dump(), **updates})
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    updates["departure_times"] = candidate.departure_times

    if "from_location" in updates or "to_location" in updates:
        await _ensure_unique_pair(db, candidate, "Unable to update route due to an internal error.")

    await _execute(
        lambda: db.table(ROUTES_TABLE_NAME).update(updates).eq("id", str(guid)).execute(),
        "Unable to update route due to an internal error.",
        "Failed to update route",
        {"route_id": route_id, "updates": updates},
    )

    updated_route = await _fetch_route(db, guid, "update")
    logger.info("Route updated", extra={"route_id": route_id, "admin_id": str(admin.id)})
    return RouteResponse(status=status.HTTP_200_OK, route=updated_route)


@fleet_router.delete("/{route_id}", response_model=MessageResponse)
async def delete_route(
    route_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> MessageResponse:
    guid = _parse_id(route_id, logger, ROUTE)
    await _fetch_route(db, guid, "delete")

    await _execute(
        lambda: db.table(ROUTES_TABLE_NAME).delete().eq("id", str(guid)).execute(),
        "Unable to delete route due to an internal error.",
        "Unable to delete route",
        {"route_id": route_id},
    )
    logger.info("Route deleted", extra={"route_id": route_id, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Route {route_id} deleted")


@fleet_router.get("/{route_id}/fleet-options", response_model=FleetOptionsResponse)
async def get_fleet_options(route_id: str, db=Depends(get_db)) -> FleetOptionsResponse:
    """Price of each fleet type on a route."""

    guid = _parse_id(route_id, logger, ROUTE)
    failure_detail = "Unable to retrieve fleet options due to an internal error."
    route = await _fetch_route(db, guid, "retrieve")
    fleet_types = await _fetch_fleet_types(db, failure_detail)
    pricing = await _fetch_route_pricing(db, guid, failure_detail)

    return FleetOptionsResponse(
        status=status.HTTP_200_OK,
        route_id=guid,
        fleet_options=build_fleet_options(route, fleet_types, pricing),
    )


@fleet_router.post("/{route_id}/fleet-pricing/backfill", response_model=PricingBackfillResponse)
async def backfill_route_pricing(
    route_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> PricingBackfillResponse:
    guid = _parse_id(route_id, logger, ROUTE)
    route = await _fetch_route(db, guid, "price")
    fleet_types = await _fetch_fleet_types(db, "Unable to populate fleet pricing due to an internal error.")
    created = await _backfill_route_pricing(db, route, fleet_types)
    logger.info("Route fleet pricing populated", extra={"route_id": route_id, "created": created})
    return PricingBackfillResponse(status=status.HTTP_200_OK, created=created)


@fleet_router.get("/{route_id}/available-fleet", response_model=AvailableFleetResponse)
async def get_available_fleet(
    route_id: str,
    departure_date: date,
    departure_time: str,
    rpc: BackendRPC = Depends(get_rpc),
) -> AvailableFleetResponse:
    """Buses that still have seats for one departure, as reported by the backend."""

    guid = _parse_id(route_id, logger, ROUTE)
    try:
        time_value = normalize_time(departure_time)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    buses = await _execute(
        lambda: rpc.get_available_fleet_for_route(guid, departure_date, time_value),
        "Failed to fetch available buses",
        "Failed to fetch available fleet",
        {"route_id": route_id},
    )
    return AvailableFleetResponse(status=status.HTTP_200_OK, buses=buses)


@fleet_router.get("/{route_id}/schedules", response_model=ScheduleListResponse)
async def list_schedules(
    route_id: str, departure_date: Optional[date] = None, db=Depends(get_db)
) -> ScheduleListResponse:
    guid = _parse_id(route_id, logger, ROUTE)

    def query():
        builder = db.table(SCHEDULES_TABLE_NAME).select("*").eq("route_id", str(guid))
        if departure_date is not None:
            builder = builder.eq("departure_date", departure_date.isoformat())
        return builder.order("departure_date").order("departure_time").execute()

    result = await _execute(
        query,
        "Unable to retrieve schedules due to an internal error.",
        "Failed to list schedules",
        {"route_id": route_id},
    )
    return ScheduleListResponse(
        status=status.HTTP_200_OK, schedules=[BusSchedule(**row) for row in result.data]
    )
