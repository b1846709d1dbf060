"""Runtime settings for the Bus Booking System, read from the environment."""

import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


@dataclass(frozen=True)
class BookingSettings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    seat_lock_minutes: int = 10
    default_total_seats: int = 40
    max_seats_per_booking: int = 5
    reschedule_penalty_amount: int = 500
    reschedule_penalty_window_hours: int = 24
    booking_draft_ttl_hours: int = 24
    default_arrival_time: str = "18:00"
    log_level: str = "INFO"
    timezone: str = "Africa/Nairobi"


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"Environment variable {name} must be positive, got {value}")
    return value


def _timezone_from_env(name: str, default: str) -> str:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Environment variable {name} must be an IANA timezone, got {raw!r}") from exc
    return raw


def load_settings() -> BookingSettings:
    """
    Build the settings object from the process environment and an optional .env file.

    Supabase credentials are optional here; the database client checks them
    when it is constructed.

    Returns:
        BookingSettings populated from the environment.

    Raises:
        ValueError: If a numeric variable or the timezone cannot be parsed.
    """

    load_dotenv()
    return BookingSettings(
        supabase_url=os.environ.get("SUPABASE_URL"),
        supabase_key=os.environ.get("SUPABASE_KEY"),
        seat_lock_minutes=_int_from_env("SEAT_LOCK_MINUTES", 10),
        default_total_seats=_int_from_env("DEFAULT_TOTAL_SEATS", 40),
        max_seats_per_booking=_int_from_env("MAX_SEATS_PER_BOOKING", 5),
        reschedule_penalty_amount=_int_from_env("RESCHEDULE_PENALTY_AMOUNT", 500),
        reschedule_penalty_window_hours=_int_from_env("RESCHEDULE_PENALTY_WINDOW_HOURS", 24),
        booking_draft_ttl_hours=_int_from_env("BOOKING_DRAFT_TTL_HOURS", 24),
        default_arrival_time=os.environ.get("DEFAULT_ARRIVAL_TIME", "18:00"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        timezone=_timezone_from_env("TIMEZONE", "Africa/Nairobi"),
    )
