import re
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Africa/Nairobi"
TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::[0-5]\d)?$")


def validate_timestamps(date1: datetime, date2: datetime):
    '''Validate that date2 is greater than date1.'''
    if date2 < date1:
        raise ValueError("date2 must be greater than or equal to date1")


def normalize_time(value: str) -> str:
    '''Return a departure time as zero-padded HH:MM, dropping any seconds.'''
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def departure_datetime(departure_date: date, departure_time: str, tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    '''Combine a departure date and HH:MM wall-clock time in zone ``tz_name`` into an aware datetime.'''
    hours, minutes = normalize_time(departure_time).split(":")
    return datetime.combine(departure_date, time(int(hours), int(minutes)), tzinfo=ZoneInfo(tz_name))


def slugify(value: str) -> str:
    '''Lower-case a title and collapse every run of non alphanumerics into "-".'''
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    if not slug:
        raise ValueError("Cannot derive a slug from an empty title")
    return slug
