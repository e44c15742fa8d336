"""Datetime and timezone helpers shared across the application."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

LOGGER = logging.getLogger(__name__)

__all__ = [
    "ensure_utc",
    "local_hour_to_utc",
    "next_hourly_tick",
    "parse_datetime",
    "parse_summary_hour",
    "resolve_timezone",
    "serialize_datetime",
    "to_utc",
]

_UTC_ALIASES = {"utc", "gmt", "z", "etc/utc", "etc/gmt"}
_OFFSET_PATTERN = re.compile(
    r"^(?:utc|gmt)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE
)
_SUMMARY_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Like :func:`to_utc`, passing ``None`` through."""
    if value is None:
        return None
    return to_utc(value)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to ISO 8601 in UTC."""
    if value is None:
        return None
    return to_utc(value).isoformat()


def parse_datetime(value: str | None, *, assume_utc: bool = True) -> datetime | None:
    """Parse an ISO 8601 string into a ``datetime`` instance."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None and assume_utc:
        return parsed.replace(tzinfo=UTC)
    return parsed


def resolve_timezone(identifier: str | None) -> tzinfo | None:
    """Resolve an IANA name or a ``UTC+HH:MM`` style offset, ``None`` if unknown."""
    if not identifier:
        return None
    cleaned = identifier.strip()
    if cleaned.lower() in _UTC_ALIASES:
        return UTC
    match = _OFFSET_PATTERN.match(cleaned)
    if match:
        sign, hours, minutes = match.groups()
        delta = timedelta(hours=int(hours), minutes=int(minutes or 0))
        if delta >= timedelta(hours=24):
            return None
        return timezone(-delta if sign == "-" else delta)
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def parse_summary_hour(value: str | None, *, default: int = 8) -> int:
    """Return the hour component of an ``HH:MM`` string or ``default``."""
    if value:
        match = _SUMMARY_TIME_PATTERN.match(value.strip())
        if match:
            return int(match.group(1))
    return default


def local_hour_to_utc(
    local_hour: int, timezone_id: str | None, *, reference: datetime | None = None
) -> int:
    """Convert a wall-clock hour in ``timezone_id`` to the UTC hour in [0, 24).

    ``reference`` picks the calendar day, which matters for zones observing
    daylight saving time. An unresolvable zone yields ``local_hour`` itself.
    """
    zone = resolve_timezone(timezone_id)
    if zone is None:
        LOGGER.warning(
            "Could not resolve timezone %r; treating local hour as UTC", timezone_id
        )
        return local_hour % 24
    day = (ensure_utc(reference) or datetime.now(tz=UTC)).date()
    local = datetime(day.year, day.month, day.day, local_hour % 24, tzinfo=zone)
    return local.astimezone(UTC).hour


def next_hourly_tick(now: datetime, *, minute: int = 0) -> datetime:
    """Return the first instant strictly after ``now`` at ``minute`` past an hour."""
    current = to_utc(now)
    candidate = current.replace(minute=minute, second=0, microsecond=0)
    if candidate <= current:
        candidate += timedelta(hours=1)
    return candidate
