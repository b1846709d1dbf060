import re
from uuid import UUID, uuid4
from typing import Any, Literal, Optional
from datetime import date, datetime, timezone
from pydantic import BaseModel, Field, field_validator, model_validator
from Fleet.structure import Route
from utils import normalize_time, validate_timestamps

BookingStatus = Literal['upcoming', 'confirmed', 'completed', 'cancelled']
PaymentMethod = Literal['mpesa', 'card', 'cash', 'Manual']

SEAT_TOKEN = re.compile(r"^[+-]?\d")


class Booking(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    user_id : UUID
    route_id : UUID
    from_location : str
    to_location : str
    departure_date : date
    departure_time : str
    arrival_time : str
    seat_numbers : list[str]
    price : float
    status : BookingStatus
    branch_id : Optional[UUID] = None
    created_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("seat_numbers", mode="before")
    @classmethod
    def stringify_seats(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(item) for item in value]
        return value

    @model_validator(mode="after")
    def validate_booking(self):
        if not self.seat_numbers:
            raise ValueError("A booking must hold at least one seat.")
        if self.price < 0:
            raise ValueError("Booking price cannot be negative.")
        try:
            validate_timestamps(self.created_at, self.updated_at)
        except ValueError as e:
            raise ValueError(f"Booking {self.id} has invalid timestamps: {e}")
        return self

    def update_status(self, new_status: BookingStatus):
        ''' Update the status of the booking. '''
        self.status = new_status
        # never stamp earlier than a creation time set by a skewed clock
        self.updated_at = max(datetime.now(timezone.utc), self.created_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "route_id": str(self.route_id),
            "from_location": self.from_location,
            "to_location": self.to_location,
            "departure_date": self.departure_date.isoformat(),
            "departure_time": self.departure_time,
            "arrival_time": self.arrival_time,
            "seat_numbers": self.seat_numbers,
            "price": self.price,
            "status": self.status,
            "branch_id": None if self.branch_id is None else str(self.branch_id),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class BookingRequest(BaseModel):
    """Passenger booking submitted at the end of the booking wizard."""

    user_id : UUID
    route_id : UUID
    departure_date : date
    departure_time : str
    seat_numbers : list[int] = Field(min_length=1)
    bus_id : Optional[UUID] = None
    fleet_price_multiplier : float = 1.0
    payment_method : PaymentMethod = 'mpesa'

    @field_validator("departure_time")
    @classmethod
    def normalize_departure(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator("departure_date")
    @classmethod
    def not_in_past(cls, value: date) -> date:
        if value < date.today():
            raise ValueError("Departure date cannot be in the past.")
        return value

    @field_validator("seat_numbers")
    @classmethod
    def validate_seats(cls, value: list[int]) -> list[int]:
        if any(seat <= 0 for seat in value):
            raise ValueError("Seat numbers must be positive integers.")
        if len(set(value)) != len(value):
            raise ValueError("Seat numbers must be unique.")
        return value

    @model_validator(mode="after")
    def validate_multiplier(self):
        if self.fleet_price_multiplier <= 0:
            raise ValueError("Fleet price multiplier must be positive.")
        return self


class BusAssignment(BaseModel):

    assigned_bus_id : UUID
    fleet_name : str
    available_seats : int
    is_fallback : bool = False

    @field_validator("fleet_name", mode="before")
    @classmethod
    def fleet_name_present(cls, value: Any) -> Any:
        if value is None or value == "null" or value == "":
            raise ValueError("Bus assignment returned no fleet name.")
        return value


class BookingConfirmation(BaseModel):

    booking_id : UUID
    receipt_id : Optional[UUID] = None
    receipt_number : Optional[str] = None
    amount_paid : float
    from_location : str
    to_location : str
    departure_date : date
    departure_time : str
    seat_numbers : list[str]
    branch_id : Optional[UUID] = None
    bus : Optional[BusAssignment] = None
    warning : Optional[str] = None


class ManualBookingForm(BaseModel):
    """Walk-in booking captured by an admin on behalf of a passenger."""

    passenger_name : str = ""
    passenger_phone : str = ""
    passenger_email : str = ""
    from_location : str = ""
    to_location : str = ""
    departure_date : str = ""
    departure_time : str = ""
    seat_numbers : str = ""


def validate_manual_booking(form: ManualBookingForm, route: Optional[Route]) -> Optional[str]:
    """
    Check a manual booking form field by field.

    Returns:
        The first validation message, or None when the form is complete.
    """

    if not form.passenger_name.strip():
        return "Passenger name is required"
    if not form.from_location or not form.to_location:
        return "Please select both departure and destination locations"
    if not form.departure_date:
        return "Please select a departure date"
    if not form.departure_time:
        return "Please select a departure time"
    if not form.seat_numbers.strip():
        return "Please provide seat numbers"
    if route is None:
        return "Please select a valid route"
    return None


def parse_seat_numbers(seat_numbers: str) -> list[str]:
    '''Split "1, 2,3" into ["1", "2", "3"], dropping entries that do not start with a number.'''
    return [
        token
        for token in (part.strip() for part in seat_numbers.split(","))
        if token and SEAT_TOKEN.match(token)
    ]


class ManualBookingRecord(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    booking_id : UUID
    admin_email : str
    passenger_name : str
    passenger_phone : Optional[str] = None
    passenger_email : Optional[str] = None
    branch_id : Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "booking_id": str(self.booking_id),
            "admin_email": self.admin_email,
            "passenger_name": self.passenger_name,
            "passenger_phone": self.passenger_phone or None,
            "passenger_email": self.passenger_email or None,
            "branch_id": None if self.branch_id is None else str(self.branch_id),
        }
