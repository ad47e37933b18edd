"""Date and timezone helpers.

All schedule instants are aware datetimes fixed to the conference offset, so
field extraction gives conference-local wall time whatever the host zone is.
"""

from datetime import datetime, timedelta, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo


class DateParts(NamedTuple):
    year: int
    month: int  # 1-based
    date: int
    day: int  # weekday, Sunday = 0
    hour: int
    minute: int


def parse_instant(value: datetime | str) -> datetime:
    """Parse an ISO-8601 string (a trailing "Z" is accepted) or pass a datetime through."""
    if isinstance(value, datetime):
        return value
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def normalize_to_zone(instant: datetime | str, offset_minutes: int) -> datetime:
    """Return `instant` expressed in the fixed zone UTC+offset_minutes.

    Naive values are taken as host-local time, so the host's own offset is
    applied first and then the target offset.

    Args:
        instant: Aware or naive datetime, or an ISO-8601 string.
        offset_minutes: Target zone offset east of UTC (480 for UTC+8).

    Returns:
        Aware datetime with a fixed-offset tzinfo.
    """
    instant = parse_instant(instant)
    if instant.tzinfo is None:
        instant = instant.astimezone()
    return instant.astimezone(timezone(timedelta(minutes=offset_minutes)))


def extract_fields(instant: datetime) -> DateParts:
    return DateParts(
        year=instant.year,
        month=instant.month,
        date=instant.day,
        day=instant.isoweekday() % 7,
        hour=instant.hour,
        minute=instant.minute,
    )


def offset_for_zone(zone_name: str, at: datetime | None = None) -> int:
    """Minutes east of UTC for an IANA zone at a given instant (default: now)."""
    at = at or datetime.now(timezone.utc)
    offset = at.astimezone(ZoneInfo(zone_name)).utcoffset()
    return int(offset.total_seconds() // 60)


def pad2(number: int) -> str:
    return str(number).rjust(2, "0")


def format_date_string(instant: datetime, join_char: str = "") -> str:
    """Format as year, month, date, zero-padded: 20240803 or 2024-08-03."""
    parts = extract_fields(instant)
    return join_char.join(pad2(n) for n in (parts.year, parts.month, parts.date))


def format_time_string(instant: datetime, join_char: str = "") -> str:
    """Format as hour, minute, zero-padded: 0930 or 09:30."""
    parts = extract_fields(instant)
    return join_char.join(pad2(n) for n in (parts.hour, parts.minute))
