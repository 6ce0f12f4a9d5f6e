# backend/goreserve/domain/calendar.py
"""
Calendar queries.

Pure functions over the typed calendar schemas. ``None`` for a working window
means the business or staff member does not operate on that date.

Staff exceptions:
    * a blocking kind (vacation, sick, blocked) without a range blocks the
      whole date; with a range it blocks only ``[start, end)``
    * an ``available`` exception with a range replaces the weekly window for
      that date; without a range it changes nothing
"""

from datetime import date, datetime, time
from typing import Optional, Union

from ..schemas.calendar import (
    BusinessCalendar,
    StaffCalendar,
    TimeWindow,
    from_minutes,
    to_minutes,
)

Calendar = Union[BusinessCalendar, StaffCalendar]


def working_window(calendar: Calendar, day: date) -> Optional[TimeWindow]:
    """Working window for ``day`` before blocking exceptions are applied."""
    if isinstance(calendar, StaffCalendar):
        for exc in calendar.exceptions_on(day):
            if not exc.kind.is_blocking and exc.window is not None:
                return exc.window
    return calendar.weekly.for_date(day)


def is_blocked(
    staff_calendar: StaffCalendar,
    day: date,
    start: Optional[time] = None,
    end: Optional[time] = None,
) -> bool:
    """
    Whether a blocking exception covers ``day``.

    Without an interval only full-day blocks count. With an interval any
    blocking exception overlapping ``[start, end)`` counts.
    """
    for exc in staff_calendar.exceptions_on(day):
        if not exc.kind.is_blocking:
            continue
        if exc.is_full_day:
            return True
        if start is not None and end is not None:
            if (
                exc.start_time is not None
                and exc.end_time is not None
                and start < exc.end_time
                and exc.start_time < end
            ):
                return True
    return False


def is_open(calendar: Calendar, at: datetime) -> bool:
    """Whether ``at`` (local wall-clock time) falls inside the working window."""
    day = at.date()
    window = working_window(calendar, day)
    moment = at.time().replace(second=0, microsecond=0, tzinfo=None)
    if window is None or not window.contains_time(moment):
        return False
    if isinstance(calendar, StaffCalendar):
        next_minute = to_minutes(moment) + 1
        if next_minute >= 24 * 60:
            return not is_blocked(calendar, day, moment, time.max)
        return not is_blocked(calendar, day, moment, from_minutes(next_minute))
    return True


def effective_window(
    business: BusinessCalendar,
    day: date,
    staff: Optional[StaffCalendar] = None,
) -> Optional[TimeWindow]:
    """Business window, narrowed to the staff window when a staff calendar is given."""
    window = working_window(business, day)
    if window is None or staff is None:
        return window
    staff_window = working_window(staff, day)
    if staff_window is None:
        return None
    return window.intersect(staff_window)


def covers(
    business: BusinessCalendar,
    day: date,
    start: time,
    end: time,
    staff: Optional[StaffCalendar] = None,
) -> bool:
    """Whether ``[start, end)`` is bookable as far as the calendars are concerned."""
    window = effective_window(business, day, staff)
    if window is None or not window.contains(start, end):
        return False
    if staff is not None and is_blocked(staff, day, start, end):
        return False
    return True
