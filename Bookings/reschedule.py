from uuid import UUID, uuid4
from typing import Any, Literal, Optional
from datetime import date, datetime, timedelta, timezone
from pydantic import BaseModel, Field, field_validator, model_validator
from utils import DEFAULT_TIMEZONE, departure_datetime, normalize_time

RequestStatus = Literal['pending', 'approved', 'rejected', 'completed']
PaymentStatus = Literal['not_applicable', 'awaiting_payment', 'paid', 'failed']


class RescheduleRequest(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    booking_id : UUID
    user_id : UUID
    status : RequestStatus = 'pending'
    reason : Optional[str] = None
    admin_notes : Optional[str] = None
    fee_amount : float = 0
    payment_status : Optional[PaymentStatus] = None
    current_route_id : UUID
    current_departure_date : date
    current_departure_time : str
    requested_route_id : UUID
    requested_departure_date : date
    requested_departure_time : str
    processed_at : Optional[datetime] = None
    processed_by : Optional[UUID] = None
    created_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("fee_amount", mode="before")
    @classmethod
    def default_fee(cls, value: Any) -> Any:
        return 0 if value is None else value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "booking_id": str(self.booking_id),
            "user_id": str(self.user_id),
            "status": self.status,
            "reason": self.reason,
            "admin_notes": self.admin_notes,
            "fee_amount": self.fee_amount,
            "payment_status": self.payment_status,
            "current_route_id": str(self.current_route_id),
            "current_departure_date": self.current_departure_date.isoformat(),
            "current_departure_time": self.current_departure_time,
            "requested_route_id": str(self.requested_route_id),
            "requested_departure_date": self.requested_departure_date.isoformat(),
            "requested_departure_time": self.requested_departure_time,
            "created_at": self.created_at.isoformat(),
        }


class RescheduleSubmission(BaseModel):
    """Passenger request to move a booking to another departure."""

    booking_id : UUID
    user_id : UUID
    requested_route_id : UUID
    requested_departure_date : date
    requested_departure_time : str
    reason : Optional[str] = None
    accept_penalty : bool = False

    @field_validator("requested_departure_time")
    @classmethod
    def normalize_requested_time(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator("reason")
    @classmethod
    def blank_reason_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()


class RescheduleDecision(BaseModel):

    status : Literal['approved', 'rejected']
    admin_notes : str = ""
    fee_amount : float = 0

    @model_validator(mode="after")
    def validate_fee(self):
        if self.fee_amount < 0:
            raise ValueError("Fee amount cannot be negative.")
        return self


def calculate_reschedule_penalty(
    departure_date: date,
    departure_time: str,
    penalty_amount: int = 500,
    window_hours: int = 24,
    now: Optional[datetime] = None,
    tz_name: str = DEFAULT_TIMEZONE,
) -> int:
    """
    Penalty owed for rescheduling a booking.

    A flat ``penalty_amount`` applies when the original departure is at most
    ``window_hours`` away from ``now``, which includes departures already past.
    Departure dates and times are wall-clock values in zone ``tz_name``.
    """
    now = now or datetime.now(timezone.utc)
    hours_until_departure = (departure_datetime(departure_date, departure_time, tz_name) - now) / timedelta(hours=1)
    return penalty_amount if hours_until_departure <= window_hours else 0


def decision_updates(decision: RescheduleDecision, admin_id: UUID, now: Optional[datetime] = None) -> dict[str, Any]:
    """Row changes recorded when an admin approves or rejects a request."""
    approved = decision.status == 'approved'
    fee = decision.fee_amount if approved else 0
    payment_status: PaymentStatus = 'awaiting_payment' if approved and fee > 0 else 'not_applicable'
    return {
        "status": decision.status,
        "admin_notes": decision.admin_notes,
        "fee_amount": fee,
        "processed_by": str(admin_id),
        "processed_at": (now or datetime.now(timezone.utc)).isoformat(),
        "payment_status": payment_status,
    }


def request_status_text(status: str, payment_status: Optional[str] = None) -> str:
    if status == 'approved':
        if payment_status == 'awaiting_payment':
            return 'Approved - Awaiting Payment'
        if payment_status == 'paid':
            return 'Paid & Rescheduled'
        return 'Approved'
    return status[:1].upper() + status[1:]
