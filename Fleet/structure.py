'''
Structure classes for the Fleet module: branches, locations, fleet types,
routes and the bus schedules that run them.
'''
from uuid import UUID, uuid4
from typing import Any, Literal, Optional
from datetime import date, datetime, timezone
from pydantic import BaseModel, Field, field_validator, model_validator
from utils import normalize_time, validate_timestamps


class Branch(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    name : str
    code : str
    city : str
    address : str
    phone : Optional[str] = None
    email : Optional[str] = None
    is_active : bool = True

    @field_validator("code")
    @classmethod
    def code_uppercase(cls, value: str) -> str:
        code = value.strip().upper()
        if not code:
            raise ValueError("Branch code must not be empty.")
        return code

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "code": self.code,
            "city": self.city,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "is_active": self.is_active,
        }


class Location(BaseModel):
    """A named stop offered as an origin (``from``) or destination (``to``) of a branch."""

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    name : str
    type : Literal['from', 'to']
    branch_id : Optional[UUID] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("Location name is required.")
        return name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "type": self.type,
            "branch_id": None if self.branch_id is None else str(self.branch_id),
        }


class FleetType(BaseModel):
    """A bus class (e.g. Standard, VIP) with its seating and price multiplier."""

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    name : str
    description : str = ""
    capacity : int
    features : list[str] = Field(default_factory=list)
    image_url : Optional[str] = None
    base_price_multiplier : float = 1.0
    branch_id : Optional[UUID] = None

    @field_validator("base_price_multiplier", mode="before")
    @classmethod
    def default_multiplier(cls, value: Any) -> Any:
        return 1.0 if value is None else value

    @field_validator("features", mode="before")
    @classmethod
    def split_features(cls, value: Any) -> Any:
        '''Accept the comma-separated feature list typed into the fleet form.'''
        if isinstance(value, str):
            return [feature.strip() for feature in value.split(",") if feature.strip()]
        return [] if value is None else value

    @model_validator(mode="after")
    def validate_structure(self):
        if not self.name.strip():
            raise ValueError("Fleet name is required.")
        if self.capacity <= 0:
            raise ValueError("Fleet capacity must be a positive integer.")
        if self.base_price_multiplier <= 0:
            raise ValueError("Fleet price multiplier must be positive.")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "capacity": self.capacity,
            "features": self.features,
            "image_url": self.image_url,
            "base_price_multiplier": self.base_price_multiplier,
            "branch_id": None if self.branch_id is None else str(self.branch_id),
        }


class Route(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    from_location : str
    to_location : str
    duration : str
    departure_times : list[str]
    price : float
    branch_id : Optional[UUID] = None
    is_popular : bool = False
    created_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc), frozen=True)
    updated_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("is_popular", mode="before")
    @classmethod
    def default_popular(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("departure_times")
    @classmethod
    def normalize_departure_times(cls, value: list[str]) -> list[str]:
        """
        Normalize departure times to sorted, unique HH:MM strings.

        Raises:
            ValueError: If no time is given or a time is malformed.
        """
        times = sorted({normalize_time(item) for item in value if item.strip()})
        if not times:
            raise ValueError("At least one departure time is required.")
        return times

    @model_validator(mode="after")
    def validate_structure(self):
        if self.from_location.strip().lower() == self.to_location.strip().lower():
            raise ValueError("Route origin and destination must differ.")
        if self.price <= 0:
            raise ValueError("Route price must be positive.")
        validate_timestamps(self.created_at, self.updated_at)
        return self

    @property
    def name(self) -> str:
        return f"{self.from_location} → {self.to_location}"

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the route into a dictionary.

        Returns:
            dict[str, Any]: Mapping with stringified identifiers and timestamps.
        """
        return {
            "id": str(self.id),
            "from_location": self.from_location,
            "to_location": self.to_location,
            "duration": self.duration,
            "departure_times": self.departure_times,
            "price": self.price,
            "branch_id": None if self.branch_id is None else str(self.branch_id),
            "is_popular": self.is_popular,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class RouteFleetPricing(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    route_id : UUID
    fleet_id : UUID
    custom_price : float

    @model_validator(mode="after")
    def validate_structure(self):
        if self.custom_price <= 0:
            raise ValueError("Fleet price must be positive.")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "route_id": str(self.route_id),
            "fleet_id": str(self.fleet_id),
            "custom_price": self.custom_price,
        }


class FleetOption(BaseModel):
    """Price of one fleet type on one route, as offered to a passenger."""

    id : UUID
    name : str
    price : float
    features : list[str] = Field(default_factory=list)
    base_price_multiplier : float = 1.0
    is_custom_price : bool = False


class BusSchedule(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    route_id : UUID
    bus_id : UUID
    departure_date : date
    departure_time : str
    available_seats : int
    status : Literal['active', 'maintenance', 'cancelled'] = 'active'

    @field_validator("departure_time")
    @classmethod
    def normalize_departure(cls, value: str) -> str:
        return normalize_time(value)

    @model_validator(mode="after")
    def validate_structure(self):
        if self.available_seats < 0:
            raise ValueError("Available seats cannot be negative.")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "route_id": str(self.route_id),
            "bus_id": str(self.bus_id),
            "departure_date": self.departure_date.isoformat(),
            "departure_time": self.departure_time,
            "available_seats": self.available_seats,
            "status": self.status,
        }
