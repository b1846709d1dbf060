"""Fare arithmetic and route option helpers shared by booking and admin routes."""

from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from Fleet.structure import FleetOption, FleetType, Route, RouteFleetPricing
from utils import normalize_time


def parse_departure_times(text: str) -> list[str]:
    '''Parse the comma-separated departure times typed into the route form.'''
    times = [normalize_time(part) for part in text.split(",") if part.strip()]
    if not times:
        raise ValueError("At least one departure time is required.")
    return sorted(set(times))


def calculate_total_price(
    route: Optional[Route], fleet_price_multiplier: float, seat_count: int
) -> float:
    """Fare for ``seat_count`` seats on ``route`` in a fleet priced at ``fleet_price_multiplier``."""
    if route is None:
        return 0
    return round(route.price * fleet_price_multiplier * seat_count, 2)


def get_target_branch_id(route: Optional[Route], branches: Sequence[dict[str, Any]]) -> Optional[str]:
    """Branch that owns a booking: the route's branch, otherwise the first known branch."""
    if route is not None and route.branch_id is not None:
        return str(route.branch_id)
    if branches:
        first = branches[0].get("id")
        return None if first is None else str(first)
    return None


def build_fleet_options(
    route: Route,
    fleet_types: Iterable[FleetType],
    pricing: Iterable[RouteFleetPricing],
) -> list[FleetOption]:
    """
    Price every fleet type for a route.

    A custom price configured for the route wins; otherwise the route's base
    price is scaled by the fleet's multiplier.

    Args:
        route: Route being priced.
        fleet_types: All fleet types on offer.
        pricing: Custom prices stored for this route.

    Returns:
        Fleet options ordered by ascending price multiplier.
    """
    custom = {entry.fleet_id: entry.custom_price for entry in pricing if entry.route_id == route.id}
    options = []
    for fleet in sorted(fleet_types, key=lambda item: item.base_price_multiplier):
        has_custom = fleet.id in custom
        price = custom[fleet.id] if has_custom else round(route.price * fleet.base_price_multiplier, 2)
        options.append(
            FleetOption(
                id=fleet.id,
                name=fleet.name,
                price=price,
                features=fleet.features,
                base_price_multiplier=fleet.base_price_multiplier,
                is_custom_price=has_custom,
            )
        )
    return options


def missing_fleet_pricing(
    route_id: UUID,
    base_price: float,
    fleet_types: Iterable[FleetType],
    existing_fleet_ids: Iterable[UUID | str],
) -> list[RouteFleetPricing]:
    """Default price rows for the fleet types a route has no price for yet."""
    existing = {str(fleet_id) for fleet_id in existing_fleet_ids}
    return [
        RouteFleetPricing(
            route_id=route_id,
            fleet_id=fleet.id,
            custom_price=round(base_price * fleet.base_price_multiplier, 2),
        )
        for fleet in fleet_types
        if str(fleet.id) not in existing
    ]


def location_options(routes: Iterable[Route]) -> dict[str, list[str]]:
    routes = list(routes)
    origins = {route.from_location for route in routes if route.from_location}
    destinations = {route.to_location for route in routes if route.to_location}
    return {
        "from_locations": sorted(origins),
        "to_locations": sorted(destinations),
        "all_locations": sorted(origins | destinations),
    }


def find_route(routes: Iterable[Route], from_location: str, to_location: str) -> Optional[Route]:
    '''Route matching an origin/destination pair, if any.'''
    for route in routes:
        if route.from_location == from_location and route.to_location == to_location:
            return route
    return None
