# backend/goreserve/services/availability_calculator.py
"""
Availability Calculator Service

Generates the offerable slots of a service on a date:

1. The effective window is the business window, narrowed to the staff
   window when a staff member is requested.
2. A closed business, or a staff member blocked for the whole day, offers
   nothing.
3. A cursor steps from open to close by the service's slot interval; every
   cursor whose ``cursor + duration`` still fits before close is a candidate.
4. A candidate is admitted when its scope has no conflict: the requested
   staff member, any assigned staff member for staffed services, or the
   service's capacity pool.

Slots are ``slot_interval`` apart, so consecutive slots may overlap.
"""

from datetime import date
import logging
from typing import Iterator, List, Optional, Tuple

from ..core.exceptions import NotFoundException
from ..domain.calendar import effective_window, is_blocked
from ..domain.catalog import Business, Service, Slot, Staff
from ..repositories.interfaces import CatalogRepository
from ..schemas.calendar import TimeWindow, from_minutes
from .availability_cache import AvailabilityCache
from .base import BaseService
from .conflict_detector import CapacityScope, ConflictDetector, ScopeOccupancy, StaffScope

logger = logging.getLogger(__name__)


def candidate_slots(window: TimeWindow, duration_minutes: int, interval_minutes: int) -> Iterator[Slot]:
    """Every ``[cursor, cursor + duration)`` that fits in ``window``."""
    open_minutes, close_minutes = window.as_minutes()
    cursor = open_minutes
    while cursor + duration_minutes <= close_minutes:
        yield Slot(start=from_minutes(cursor), end=from_minutes(cursor + duration_minutes))
        cursor += interval_minutes


class AvailabilityCalculator(BaseService):
    """
    Slot generation, with an optional cache in front of it.

    ``compute_slots`` always recomputes; ``get_slots`` serves from the cache
    when it can and stores what it computes.
    """

    def __init__(
        self,
        catalog: CatalogRepository,
        detector: ConflictDetector,
        cache: Optional[AvailabilityCache] = None,
    ):
        super().__init__(cache)
        self.catalog = catalog
        self.detector = detector

    def _business_for(self, service: Service) -> Business:
        business = self.catalog.get_business(service.business_id)
        if business is None:
            raise NotFoundException(
                "Business not found", details={"business_id": service.business_id}
            )
        return business

    @BaseService.measure_operation("compute_slots")
    def compute_slots(self, service: Service, day: date, staff_id: Optional[str] = None) -> List[Slot]:
        """
        Compute available slots for ``service`` on ``day``.

        Args:
            service: The service being booked
            day: Local date in the business timezone
            staff_id: Restrict to one staff member

        Returns:
            Slots in start order; empty when nothing can be offered
        """
        if service.duration_minutes <= 0 or service.slot_interval_minutes <= 0:
            return []
        business = self._business_for(service)

        if staff_id:
            return self._slots_for_staff(business, service, day, staff_id)
        if service.requires_staff:
            return self._slots_for_any_staff(business, service, day)
        return self._slots_for_pool(business, service, day)

    def get_slots(self, service: Service, day: date, staff_id: Optional[str] = None) -> List[Slot]:
        """Cached ``compute_slots``."""
        if self.cache is None:
            return self.compute_slots(service, day, staff_id)

        try:
            cached = self.cache.get(service, day, staff_id)
        except Exception as e:
            self.logger.warning(f"Availability cache read failed: {e}")
            cached = None
        if cached is not None:
            self.logger.debug(f"Cache hit for slots: {service.id}, {day}, {staff_id or 'any'}")
            return cached

        generation = self.cache.generation()
        slots = self.compute_slots(service, day, staff_id)
        try:
            self.cache.store(service, day, staff_id, slots, generation)
        except Exception as e:
            self.logger.warning(f"Availability cache write failed: {e}")
        return slots

    def _slots_for_staff(
        self, business: Business, service: Service, day: date, staff_id: str
    ) -> List[Slot]:
        staff = self.catalog.get_staff(staff_id)
        if staff is None:
            raise NotFoundException("Staff member not found", details={"staff_id": staff_id})
        if not staff.is_active or is_blocked(staff.calendar, day):
            return []

        window = effective_window(business.calendar, day, staff.calendar)
        if window is None:
            return []

        occupancy = self.detector.occupancy(StaffScope(staff.id), day)
        return [
            slot
            for slot in candidate_slots(window, service.duration_minutes, service.slot_interval_minutes)
            if not is_blocked(staff.calendar, day, slot.start, slot.end)
            and not occupancy.has_conflict(slot.start, slot.end)
        ]

    def _slots_for_any_staff(self, business: Business, service: Service, day: date) -> List[Slot]:
        window = effective_window(business.calendar, day)
        if window is None:
            return []

        team: List[Tuple[TimeWindow, Staff, ScopeOccupancy]] = []
        for staff in self.catalog.list_staff_for_service(service.id):
            if is_blocked(staff.calendar, day):
                continue
            staff_window = effective_window(business.calendar, day, staff.calendar)
            if staff_window is None:
                continue
            team.append((staff_window, staff, self.detector.occupancy(StaffScope(staff.id), day)))

        slots = []
        for slot in candidate_slots(window, service.duration_minutes, service.slot_interval_minutes):
            for staff_window, staff, occupancy in team:
                if (
                    staff_window.contains(slot.start, slot.end)
                    and not is_blocked(staff.calendar, day, slot.start, slot.end)
                    and not occupancy.has_conflict(slot.start, slot.end)
                ):
                    slots.append(slot)
                    break
        return slots

    def _slots_for_pool(self, business: Business, service: Service, day: date) -> List[Slot]:
        window = effective_window(business.calendar, day)
        if window is None:
            return []

        occupancy = self.detector.occupancy(
            CapacityScope(service.id, service.capacity_per_slot), day
        )
        return [
            slot
            for slot in candidate_slots(window, service.duration_minutes, service.slot_interval_minutes)
            if not occupancy.has_conflict(slot.start, slot.end)
        ]
