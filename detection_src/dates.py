"""Timestamp helpers.

All pipeline arithmetic happens in UTC. Naive timestamps and date-only
strings are interpreted as UTC; day buckets are UTC calendar dates.
"""

import logging
from datetime import date, datetime, timezone

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO date or timestamp, returning None for missing or malformed values.

    Accepts datetime/date objects, "2024-10-01", "2024-10-01T08:30:00",
    "2024-10-01T08:30:00Z" and offset forms.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None


def day_bucket(value: datetime) -> str:
    """UTC calendar day of a timestamp as YYYY-MM-DD."""
    return to_utc(value).date().isoformat()


def epoch_millis(value: datetime) -> int:
    return int(to_utc(value).timestamp() * 1000)
