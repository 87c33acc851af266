"""
Time rules for attendance.
Local calendar days, lateness, hours worked and the auto clock-out cutoff.
All instants are handled as timezone-aware UTC; days are taken in the attendance timezone.
"""
from datetime import datetime, date, time, timedelta
from typing import Tuple
import math
import pytz


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def utc_to_local(utc_datetime: datetime, timezone_str: str) -> datetime:
    """
    Convert UTC datetime to local timezone.

    Args:
        utc_datetime: UTC datetime (timezone-aware or naive)
        timezone_str: Timezone string (e.g., "Africa/Lagos")

    Returns:
        Local datetime (timezone-aware)
    """
    tz = pytz.timezone(timezone_str)
    return ensure_utc(utc_datetime).astimezone(tz)


def local_day(instant: datetime, timezone_str: str) -> date:
    """Calendar day of ``instant`` in the given timezone (not the UTC day)."""
    return utc_to_local(instant, timezone_str).date()


def combine_date_time(date_val: date, time_val: time, timezone_str: str) -> datetime:
    """
    Combine a local date and wall-clock time into a timezone-aware UTC datetime.
    """
    tz = pytz.timezone(timezone_str)
    local_dt = tz.localize(datetime.combine(date_val, time_val))
    return local_dt.astimezone(pytz.UTC)


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" or "HH:MM:SS"."""
    try:
        return time.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time of day: {value!r}")


def lateness(check_in: datetime, expected_start: time, timezone_str: str) -> Tuple[bool, int]:
    """
    Late when the check-in instant is after the expected start on its own local day.

    Returns:
        (is_late, minutes_late) where minutes_late is the floor of elapsed minutes, else 0
    """
    check_in = ensure_utc(check_in)
    start = combine_date_time(local_day(check_in, timezone_str), expected_start, timezone_str)
    if check_in <= start:
        return False, 0
    return True, int((check_in - start).total_seconds() // 60)


def hours_between(start: datetime, end: datetime) -> float:
    """Hours worked rounded to 2 decimals."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return round(seconds / 3600, 2)


def minutes_past(instant: datetime, day: date, wall_time: time, timezone_str: str) -> int:
    """Whole minutes ``instant`` is past ``wall_time`` on ``day`` (negative when before)."""
    target = combine_date_time(day, wall_time, timezone_str)
    return math.floor((ensure_utc(instant) - target).total_seconds() / 60)


def auto_clockout_cutoff(day: date, timezone_str: str, grace_minutes: int = 0) -> datetime:
    """Local midnight that ends ``day``, plus an optional grace period, as UTC."""
    cutoff = combine_date_time(day + timedelta(days=1), time.min, timezone_str)
    return cutoff + timedelta(minutes=grace_minutes)
