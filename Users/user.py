"""Passenger profile model."""
from email.utils import parseaddr
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID


def normalize_email(value: str) -> str:
    """
    Normalize and validate email to lowercase.

    Args:
        value: Input email string.

    Returns:
        Lowercased email string if valid.

    Raises:
        ValueError: If the email address is malformed.
    """
    lowered = value.strip().lower()
    parsed = parseaddr(lowered)[1]
    if "@" not in parsed or parsed != lowered:
        raise ValueError("Invalid email address format.")
    return lowered


class Profile(BaseModel):
    """Passenger profile kept alongside the backend's auth user."""

    id: UUID = Field(frozen=True)
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    booking_count: int = 0
    is_online: bool = False

    @field_validator("booking_count", "is_online", mode="before")
    @classmethod
    def null_as_default(cls, value, info):
        if value is None:
            return 0 if info.field_name == "booking_count" else False
        return value

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "phone": self.phone,
            "avatar_url": self.avatar_url,
            "booking_count": self.booking_count,
            "is_online": self.is_online,
            }
