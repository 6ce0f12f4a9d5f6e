"""
Timezone utilities for the scheduling core.

Business hours are wall-clock times in the business timezone; bookings store
the local date and times and are compared against an aware ``now``.
"""

from datetime import date, datetime, time

import pytz


def get_timezone(name: str) -> pytz.BaseTzInfo:
    """Resolve a timezone name, falling back to UTC for unknown names."""
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def localize(day: date, at: time, tz_name: str) -> datetime:
    """Combine a local date and time into an aware datetime."""
    tz = get_timezone(tz_name)
    return tz.localize(datetime.combine(day, at))


def ensure_aware(dt: datetime) -> datetime:
    # Assume UTC if no timezone info
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt


def local_now(now: datetime, tz_name: str) -> datetime:
    """Express ``now`` in the business timezone."""
    return ensure_aware(now).astimezone(get_timezone(tz_name))


def local_today(now: datetime, tz_name: str) -> date:
    return local_now(now, tz_name).date()
