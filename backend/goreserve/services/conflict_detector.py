# backend/goreserve/services/conflict_detector.py
"""
Conflict Detector Service for the scheduling core

Handles booking overlap detection for the two kinds of scope:
- a staff member, whose active bookings may never overlap (across services)
- a capacity pool, a staff-less service that admits up to
  ``capacity_per_slot`` overlapping bookings

Intervals are half-open: ``[s1, e1)`` and ``[s2, e2)`` conflict iff
``s1 < e2 and s2 < e1``. Cancelled bookings never conflict.
"""

from dataclasses import dataclass
from datetime import date, time
import logging
from typing import List, Optional, Sequence, Union

from ..domain.booking import Booking
from ..domain.calendar import covers
from ..domain.catalog import Service, Staff
from ..repositories.interfaces import BookingRepository, CatalogRepository
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaffScope:
    staff_id: str

    def lock_key(self, day: date) -> str:
        return f"staff:{self.staff_id}:{day.isoformat()}"


@dataclass(frozen=True)
class CapacityScope:
    service_id: str
    capacity: int = 1

    def lock_key(self, day: date) -> str:
        return f"pool:{self.service_id}:{day.isoformat()}"


ConflictScope = Union[StaffScope, CapacityScope]


def scope_for(service: Service, staff_id: Optional[str]) -> ConflictScope:
    """Scope a booking of ``service`` competes in."""
    if staff_id:
        return StaffScope(staff_id)
    return CapacityScope(service.id, service.capacity_per_slot)


class ScopeOccupancy:
    """Active bookings of one scope on one date, loaded once and queried many times."""

    def __init__(self, scope: ConflictScope, day: date, bookings: Sequence[Booking]):
        self.scope = scope
        self.day = day
        self.bookings = list(bookings)

    def overlapping(
        self, start: time, end: time, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        return [
            booking
            for booking in self.bookings
            if booking.id != exclude_booking_id and booking.overlaps(start, end)
        ]

    def has_conflict(
        self, start: time, end: time, exclude_booking_id: Optional[str] = None
    ) -> bool:
        overlapping = self.overlapping(start, end, exclude_booking_id)
        if isinstance(self.scope, CapacityScope):
            return len(overlapping) >= self.scope.capacity
        return bool(overlapping)


class ConflictDetector(BaseService):
    """
    Service for checking booking conflicts.

    Reads go straight to the booking repository; callers that need the
    check to be authoritative run it inside the scope lock.
    """

    def __init__(self, bookings: BookingRepository, catalog: CatalogRepository):
        super().__init__()
        self.bookings = bookings
        self.catalog = catalog

    def occupancy(
        self, scope: ConflictScope, day: date, exclude_booking_id: Optional[str] = None
    ) -> ScopeOccupancy:
        if isinstance(scope, StaffScope):
            bookings = self.bookings.list_active_for_staff(scope.staff_id, day, exclude_booking_id)
        else:
            bookings = [
                booking
                for booking in self.bookings.list_active_for_service(
                    scope.service_id, day, exclude_booking_id
                )
                if booking.staff_id is None
            ]
        return ScopeOccupancy(scope, day, bookings)

    @BaseService.measure_operation("has_conflict")
    def has_conflict(
        self,
        scope: ConflictScope,
        day: date,
        start: time,
        end: time,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """
        Whether ``[start, end)`` on ``day`` collides with the scope's bookings.

        Args:
            scope: Staff member or capacity pool
            day: The date to check
            start: Start time of the range to check
            end: End time of the range to check
            exclude_booking_id: Booking to ignore, e.g. the one being rescheduled

        Returns:
            True if there is a conflict, False otherwise
        """
        occupancy = self.occupancy(scope, day, exclude_booking_id)
        conflict = occupancy.has_conflict(start, end)
        if conflict:
            self.logger.info(
                f"Conflict for {scope} on {day} between {start}-{end}",
                extra={"booked": len(occupancy.overlapping(start, end))},
            )
        return conflict

    @BaseService.measure_operation("available_staff")
    def available_staff(
        self,
        service: Service,
        day: date,
        start: time,
        end: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Staff]:
        """
        Active staff assigned to ``service`` who are working, not blocked and
        free for ``[start, end)``, in the repository's stable order.
        """
        business = self.catalog.get_business(service.business_id)
        if business is None:
            return []

        free: List[Staff] = []
        for staff in self.catalog.list_staff_for_service(service.id):
            if not covers(business.calendar, day, start, end, staff.calendar):
                continue
            if self.occupancy(StaffScope(staff.id), day, exclude_booking_id).has_conflict(
                start, end
            ):
                continue
            free.append(staff)
        return free

    def any_staff_available(self, service: Service, day: date, start: time, end: time) -> bool:
        return bool(self.available_staff(service, day, start, end))
