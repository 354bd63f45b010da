"""
Timezone-aware datetime utilities.

All timestamps are stored in UTC. Day-level reasoning (free intervals,
streaks, weeks) happens in the user's local timezone.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

# UTC timezone constant
UTC = timezone.utc

MINUTES_PER_DAY = 24 * 60


def now_utc() -> datetime:
    """
    Get current UTC datetime (timezone-aware).

    Returns:
        datetime: Current UTC time with tzinfo set to UTC
    """
    return datetime.now(UTC)


def get_user_today(user_timezone: str, now: Optional[datetime] = None) -> date:
    """
    Get today's date in the user's timezone.

    Args:
        user_timezone: IANA timezone name (e.g., "Europe/Berlin")
        now: Reference instant, defaults to the current time

    Returns:
        date: Today's date in the user's timezone
    """
    tz = ZoneInfo(user_timezone)
    return ensure_utc(now or now_utc()).astimezone(tz).date()


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware and in UTC.

    SQLite drops tzinfo on read, so naive values coming back from the
    database are interpreted as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_local_datetime(value: datetime, user_timezone: str) -> datetime:
    return ensure_utc(value).astimezone(ZoneInfo(user_timezone))


def local_day_start(day: date, user_timezone: str) -> datetime:
    """Midnight of ``day`` in the user's timezone, as an aware datetime."""
    return datetime.combine(day, time.min, tzinfo=ZoneInfo(user_timezone))


def local_minutes_to_utc(day: date, minutes: int, user_timezone: str) -> datetime:
    """Convert minutes-since-local-midnight on ``day`` to a UTC instant."""
    return (local_day_start(day, user_timezone) + timedelta(minutes=minutes)).astimezone(UTC)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def parse_time_to_minutes(value: Optional[str]) -> Optional[int]:
    """
    Parse "HH:MM" into minutes since midnight.

    "24:00" is accepted as end-of-day. Returns None for anything malformed.
    """
    if not value:
        return None
    parts = value.split(":")
    if len(parts) != 2:
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
    except ValueError:
        return None
    if hours == 24 and minutes == 0:
        return MINUTES_PER_DAY
    if hours < 0 or hours > 23 or minutes < 0 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
