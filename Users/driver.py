"""Driver records, route assignments and the passenger manifest shown on the driver dashboard."""
from typing import Any, Iterable, Literal, Optional
from uuid import UUID, uuid4
from datetime import datetime, timezone
from pydantic import BaseModel, Field, computed_field, field_validator, model_validator
from Users.user import normalize_email

DriverStatus = Literal['active', 'inactive', 'suspended']
AssignmentStatus = Literal['active', 'completed']


class Driver(BaseModel):

    id : UUID
    full_name : str
    email : str
    phone : Optional[str] = None
    license_number : str
    experience_years : Optional[int] = None
    status : DriverStatus = "active"
    branch_id : Optional[UUID] = None


class DriverCreate(BaseModel):
    """Account details for a new driver; the password becomes the driver's pass key."""

    full_name : str
    email : str
    phone : Optional[str] = None
    license_number : str = Field(min_length=5)
    experience_years : Optional[int] = Field(default=None, ge=0)
    password : str = Field(min_length=8)
    branch_id : Optional[UUID] = None

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, value: str) -> str:
        return normalize_email(value)

    def to_record(self, driver_id: UUID) -> dict[str, Any]:
        return {
            "id": str(driver_id),
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "license_number": self.license_number,
            "experience_years": self.experience_years,
            "status": "active",
            "branch_id": None if self.branch_id is None else str(self.branch_id),
        }


class DriverAssignment(BaseModel):
    """A driver put on a bus, a route, or both; a driver holds one active assignment at a time."""

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    driver_id : UUID
    bus_id : Optional[UUID] = None
    route_id : Optional[UUID] = None
    status : AssignmentStatus = 'active'
    assigned_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def validate_target(self):
        if self.bus_id is None and self.route_id is None:
            raise ValueError("An assignment needs a bus or a route.")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "driver_id": str(self.driver_id),
            "bus_id": None if self.bus_id is None else str(self.bus_id),
            "route_id": None if self.route_id is None else str(self.route_id),
            "status": self.status,
            "assigned_at": self.assigned_at.isoformat(),
        }


class PassengerInfo(BaseModel):

    booking_id : Optional[str] = None
    user_id : str
    full_name : Optional[str] = None
    phone : Optional[str] = None
    from_location : str
    to_location : str
    departure_time : str
    seat_numbers : list[str] = Field(default_factory=list)


class PassengerManifest(BaseModel):

    driver_id : UUID
    departure_date : str
    passengers : list[PassengerInfo]

    @computed_field
    @property
    def total_passengers(self) -> int:
        return len(self.passengers)

    @computed_field
    @property
    def total_seats(self) -> int:
        return sum(len(passenger.seat_numbers) for passenger in self.passengers)


def group_manifest(seat_rows: Iterable[dict[str, Any]]) -> list[PassengerInfo]:
    """
    Group booked seat rows by the booking that holds them.

    Each row carries ``seat_number`` and a nested ``bookings`` record with the
    passenger's ``profiles``. Rows without a booking are skipped. A passenger
    with two bookings on the day is listed once per booking. Bookings keep the
    order of their first seat.
    """
    grouped: dict[tuple[str, ...], PassengerInfo] = {}
    for row in seat_rows:
        booking = row.get("bookings")
        if not booking:
            continue
        user_id = str(booking.get("user_id"))
        if booking.get("id") is not None:
            key = ("booking", str(booking["id"]))
        else:
            key = ("passenger", user_id, str(row.get("route_id")))
        passenger = grouped.get(key)
        if passenger is None:
            profile = booking.get("profiles") or {}
            passenger = PassengerInfo(
                booking_id=booking.get("id"),
                user_id=user_id,
                full_name=profile.get("full_name"),
                phone=profile.get("phone"),
                from_location=booking.get("from_location", ""),
                to_location=booking.get("to_location", ""),
                departure_time=booking.get("departure_time", ""),
            )
            grouped[key] = passenger
        passenger.seat_numbers.append(str(row.get("seat_number")))
    return list(grouped.values())
