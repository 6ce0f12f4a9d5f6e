# backend/goreserve/services/calendar_service.py
"""
Calendar Service

Staff-facing calendar operations: the day-by-day schedule of a staff member
and availability exceptions (vacation, sick leave, blocked time, extra
hours). Adding an exception changes what can be booked, so it invalidates
the availability cache for that staff member and business date.
"""

from datetime import date, time, timedelta
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..core.enums import AvailabilityExceptionKind
from ..core.exceptions import NotFoundException, ValidationException
from ..domain.calendar import effective_window, is_blocked
from ..domain.catalog import Staff
from ..repositories.interfaces import BookingRepository, CatalogRepository
from ..schemas.calendar import AvailabilityException
from .availability_cache import AvailabilityCache, CacheScope
from .base import BaseService

logger = logging.getLogger(__name__)

MAX_SCHEDULE_DAYS = 62


class CalendarService(BaseService):
    def __init__(
        self,
        bookings: BookingRepository,
        catalog: CatalogRepository,
        cache: Optional[AvailabilityCache] = None,
    ):
        super().__init__(cache)
        self.bookings = bookings
        self.catalog = catalog

    def _get_staff(self, staff_id: str) -> Staff:
        staff = self.catalog.get_staff(staff_id)
        if staff is None:
            raise NotFoundException("Staff member not found", details={"staff_id": staff_id})
        return staff

    @BaseService.measure_operation("get_staff_schedule")
    def get_staff_schedule(self, staff_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        """
        Working window, exceptions and bookings of a staff member per day.

        Args:
            staff_id: The staff member
            start: First date, inclusive
            end: Last date, inclusive

        Returns:
            One entry per date with ``window`` (or None when off), ``blocked``,
            ``exceptions`` and ``bookings``
        """
        if end < start:
            raise ValidationException(
                "end must not be before start",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        if (end - start).days >= MAX_SCHEDULE_DAYS:
            raise ValidationException(
                f"Schedule range cannot exceed {MAX_SCHEDULE_DAYS} days",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )

        staff = self._get_staff(staff_id)
        business = self.catalog.get_business(staff.business_id)
        if business is None:
            raise NotFoundException("Business not found", details={"business_id": staff.business_id})

        by_date: Dict[date, list] = {}
        for booking in self.bookings.list_for_staff_between(staff_id, start, end):
            by_date.setdefault(booking.booking_date, []).append(booking)

        schedule = []
        day = start
        while day <= end:
            window = effective_window(business.calendar, day, staff.calendar)
            schedule.append(
                {
                    "date": day.isoformat(),
                    "window": (
                        {"open": window.open.strftime("%H:%M"), "close": window.close.strftime("%H:%M")}
                        if window
                        else None
                    ),
                    "blocked": is_blocked(staff.calendar, day),
                    "exceptions": [
                        exception.model_dump(mode="json") for exception in staff.calendar.exceptions_on(day)
                    ],
                    "bookings": [
                        {
                            "id": booking.id,
                            "booking_ref": booking.booking_ref,
                            "start": booking.start_time.strftime("%H:%M"),
                            "end": booking.end_time.strftime("%H:%M"),
                            "status": booking.status.value,
                        }
                        for booking in sorted(by_date.get(day, []), key=lambda b: b.start_time)
                    ],
                }
            )
            day += timedelta(days=1)
        return schedule

    @BaseService.measure_operation("add_staff_exception")
    def add_staff_exception(
        self,
        staff_id: str,
        day: date,
        kind: AvailabilityExceptionKind,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        reason: Optional[str] = None,
    ) -> AvailabilityException:
        """Record an availability exception and drop the slots it affects."""
        staff = self._get_staff(staff_id)
        try:
            exception = AvailabilityException(
                date=day, kind=kind, start_time=start_time, end_time=end_time, reason=reason
            )
        except ValidationError as exc:
            raise ValidationException(
                "Invalid availability exception", details={"errors": exc.errors(include_url=False)}
            ) from exc

        with self.catalog.transaction():
            saved = self.catalog.add_staff_exception(staff_id, exception)

        self.invalidate_cache(
            CacheScope.staff(staff_id, day),
            CacheScope.business(staff.business_id, day),
        )
        self.log_operation(
            "add_staff_exception", staff_id=staff_id, date=day.isoformat(), kind=saved.kind.value
        )
        return saved
