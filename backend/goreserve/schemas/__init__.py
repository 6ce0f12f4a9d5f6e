from .calendar import (
    AvailabilityException,
    BusinessCalendar,
    StaffCalendar,
    TimeWindow,
    WeeklySchedule,
)

__all__ = [
    "AvailabilityException",
    "BusinessCalendar",
    "StaffCalendar",
    "TimeWindow",
    "WeeklySchedule",
]
