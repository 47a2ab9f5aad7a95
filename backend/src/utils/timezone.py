"""
Timezone-aware date utilities for occurrence handling.

Recurrence arithmetic is done on "wall clock" values: an instant is shifted
into a synthetic frame where its naive calendar/clock fields equal the local
fields observed in the target timezone, evaluated there, and shifted back.
Shifting back resolves the UTC offset valid for that local date, which is
what keeps "every Tuesday at 19:00" at 19:00 across DST transitions.

Occurrence date keys are canonical YYYY-MM-DD strings of the *local* date,
which differs from naive UTC slicing for instants near local midnight.

Examples:
    >>> from datetime import datetime, timezone
    >>> instant = datetime(2024, 7, 9, 22, 30, tzinfo=timezone.utc)
    >>> to_local_date_key(instant, "Europe/Berlin")
    '2024-07-10'
    >>> shift_wall_clock(instant, "Europe/Berlin")
    datetime.datetime(2024, 7, 10, 0, 30)
"""

import re
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.src.services.exceptions import ConfigurationError, InvalidDateKeyError


DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@lru_cache(maxsize=64)
def get_zone(tz: str) -> ZoneInfo:
    """
    Resolve an IANA timezone identifier.

    Args:
        tz: Timezone identifier (e.g., "Europe/Berlin")

    Returns:
        ZoneInfo instance

    Raises:
        ConfigurationError: If the identifier is empty, malformed or unknown
    """
    if not tz or not isinstance(tz, str):
        raise ConfigurationError(f"Invalid timezone identifier: {tz!r}")
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone identifier '{tz}': {e}")


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(instant: datetime, tz: str) -> datetime:
    """Convert an instant to an aware datetime in the given timezone."""
    return ensure_utc(instant).astimezone(get_zone(tz))


def to_local_date_key(instant: datetime, tz: str) -> str:
    """
    Format an instant as the YYYY-MM-DD calendar date observed in a timezone.

    Args:
        instant: Absolute instant (aware, or naive UTC)
        tz: IANA timezone identifier

    Returns:
        Local calendar date key
    """
    return to_local(instant, tz).date().isoformat()


def shift_wall_clock(instant: datetime, tz: str) -> datetime:
    """
    Shift an instant into the wall-clock frame of a timezone.

    Args:
        instant: Absolute instant
        tz: IANA timezone identifier

    Returns:
        Naive datetime whose fields equal the local time in ``tz``
    """
    return to_local(instant, tz).replace(tzinfo=None)


def unshift_wall_clock(fake: datetime, tz: str) -> datetime:
    """
    Reinterpret wall-clock fields as local to a timezone and return the instant.

    The offset is resolved for the fake value's own calendar date. Local
    times that do not exist (spring gap) use the offset in force before the
    transition; ambiguous times (autumn overlap) resolve to the earlier one.

    Args:
        fake: Naive wall-clock datetime (an aware value is stripped of tzinfo)
        tz: IANA timezone identifier

    Returns:
        Aware UTC datetime
    """
    local = fake.replace(tzinfo=get_zone(tz), fold=0)
    return local.astimezone(timezone.utc)


def add_local_days(instant: datetime, days: int, tz: str) -> datetime:
    """Same local time-of-day, ``days`` calendar days later, as an instant."""
    return unshift_wall_clock(shift_wall_clock(instant, tz) + timedelta(days=days), tz)


def combine_local(date_source: datetime, time_source: datetime, tz: str) -> datetime:
    """
    Combine the local date of one instant with the local time of another.

    Args:
        date_source: Instant whose local calendar date is kept
        time_source: Instant whose local time-of-day is kept
        tz: IANA timezone identifier

    Returns:
        Aware UTC datetime
    """
    local_date = shift_wall_clock(date_source, tz).date()
    local_time = shift_wall_clock(time_source, tz).time()
    return unshift_wall_clock(datetime.combine(local_date, local_time), tz)


def is_valid_date_key(value: Optional[str]) -> bool:
    """Check that a value is a YYYY-MM-DD string naming a real calendar date."""
    if not isinstance(value, str) or not DATE_KEY_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_date_key(value: Optional[str]) -> str:
    """
    Validate an occurrence date key.

    Raises:
        InvalidDateKeyError: If the value is not a YYYY-MM-DD calendar date
    """
    if not is_valid_date_key(value):
        raise InvalidDateKeyError(value)
    return value


def parse_exdates(value: Optional[str]) -> List[str]:
    """
    Parse a comma-separated exclusion set.

    Order is preserved, whitespace trimmed, empties and duplicates dropped.
    """
    if not value:
        return []
    keys: List[str] = []
    for part in value.split(","):
        key = part.strip()
        if key and key not in keys:
            keys.append(key)
    return keys


def format_exdates(keys: Iterable[str]) -> Optional[str]:
    """Serialize an exclusion set, returning None when it is empty."""
    keys = parse_exdates(",".join(keys))
    return ",".join(keys) if keys else None
