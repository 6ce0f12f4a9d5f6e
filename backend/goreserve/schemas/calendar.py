# backend/goreserve/schemas/calendar.py
"""
Calendar schemas for the scheduling core.

Working hours are persisted as JSON of the form
``{"monday": {"open": "09:00", "close": "17:00"}, ...}``. They are parsed
into these typed models at the repository boundary; days that are missing,
null or lack either bound are closed.
"""

import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator

from ..core.enums import AvailabilityExceptionKind, Weekday
from ._strict_base import FrozenModel

# Type aliases for clarity
DateType = datetime.date
TimeType = datetime.time


def to_minutes(value: TimeType) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> TimeType:
    return datetime.time(minutes // 60, minutes % 60)


class TimeWindow(FrozenModel):
    """Half-open local time-of-day window ``[open, close)``."""

    open: TimeType
    close: TimeType

    @model_validator(mode="after")
    def validate_time_order(self) -> "TimeWindow":
        if self.close <= self.open:
            raise ValueError("Closing time must be after opening time")
        return self

    def contains_time(self, value: TimeType) -> bool:
        return self.open <= value < self.close

    def contains(self, start: TimeType, end: TimeType) -> bool:
        """Whether ``[start, end)`` fits entirely inside the window."""
        return self.open <= start and end <= self.close

    def intersect(self, other: "TimeWindow") -> Optional["TimeWindow"]:
        open_ = max(self.open, other.open)
        close = min(self.close, other.close)
        if close <= open_:
            return None
        return TimeWindow(open=open_, close=close)

    def as_minutes(self) -> Tuple[int, int]:
        return to_minutes(self.open), to_minutes(self.close)


class WeeklySchedule(FrozenModel):
    """Optional working window for each weekday."""

    monday: Optional[TimeWindow] = None
    tuesday: Optional[TimeWindow] = None
    wednesday: Optional[TimeWindow] = None
    thursday: Optional[TimeWindow] = None
    friday: Optional[TimeWindow] = None
    saturday: Optional[TimeWindow] = None
    sunday: Optional[TimeWindow] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_incomplete_days(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, dict):
            return data
        cleaned: Dict[str, Any] = {}
        for day, hours in data.items():
            key = str(day).lower()
            if isinstance(hours, TimeWindow):
                cleaned[key] = hours
            elif isinstance(hours, dict) and hours.get("open") and hours.get("close"):
                if hours.get("closed"):
                    continue
                cleaned[key] = {"open": hours["open"], "close": hours["close"]}
        return cleaned

    def for_date(self, day: DateType) -> Optional[TimeWindow]:
        return getattr(self, Weekday.from_index(day.weekday()).value)

    def to_json(self) -> Dict[str, Dict[str, str]]:
        """Serialize to the persisted JSON shape."""
        return {
            weekday.value: {
                "open": window.open.strftime("%H:%M"),
                "close": window.close.strftime("%H:%M"),
            }
            for weekday in Weekday
            if (window := getattr(self, weekday.value)) is not None
        }


class AvailabilityException(FrozenModel):
    """A dated override of a staff member's weekly schedule."""

    date: DateType
    kind: AvailabilityExceptionKind
    start_time: Optional[TimeType] = None
    end_time: Optional[TimeType] = None
    reason: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def validate_range(self) -> "AvailabilityException":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be provided together")
        if self.start_time is not None and self.end_time is not None:
            if self.end_time <= self.start_time:
                raise ValueError("End time must be after start time")
        return self

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None

    @property
    def window(self) -> Optional[TimeWindow]:
        if self.start_time is None or self.end_time is None:
            return None
        return TimeWindow(open=self.start_time, close=self.end_time)


class BusinessCalendar(FrozenModel):
    weekly: WeeklySchedule = Field(default_factory=WeeklySchedule)
    timezone: str = "UTC"


class StaffCalendar(FrozenModel):
    weekly: WeeklySchedule = Field(default_factory=WeeklySchedule)
    exceptions: Tuple[AvailabilityException, ...] = ()

    @field_validator("exceptions", mode="before")
    @classmethod
    def _coerce_exceptions(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, list):
            return tuple(value)
        return value

    def exceptions_on(self, day: DateType) -> List[AvailabilityException]:
        return [exc for exc in self.exceptions if exc.date == day]
