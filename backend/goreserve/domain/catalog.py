"""Catalog values: businesses, services, staff members and slots."""

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from typing import Any, Dict, Optional

from ..core.enums import BusinessStatus, CancellationPolicyKind
from ..schemas.calendar import BusinessCalendar, StaffCalendar


@dataclass(frozen=True)
class Business:
    id: str
    name: str
    calendar: BusinessCalendar = field(default_factory=BusinessCalendar)
    status: BusinessStatus = BusinessStatus.ACTIVE
    bookings_enabled: bool = True
    cancellation_policy: CancellationPolicyKind = CancellationPolicyKind.TIERED

    @property
    def timezone(self) -> str:
        return self.calendar.timezone

    @property
    def accepts_bookings(self) -> bool:
        return self.status == BusinessStatus.ACTIVE and self.bookings_enabled


@dataclass(frozen=True)
class Service:
    """
    A bookable offering.

    ``capacity_per_slot`` only applies to services that do not require a
    staff member; staffed services are bounded by staff availability.
    """

    id: str
    business_id: str
    name: str
    duration_minutes: int
    price: Decimal = Decimal("0")
    slot_interval_minutes: int = 30
    advance_booking_days: int = 30
    min_advance_hours: int = 2
    cancellation_hours: int = 24
    capacity_per_slot: int = 1
    requires_staff: bool = False
    is_active: bool = True
    cancellation_policy: Optional[CancellationPolicyKind] = None


@dataclass(frozen=True)
class Staff:
    id: str
    business_id: str
    name: str
    calendar: StaffCalendar = field(default_factory=StaffCalendar)
    is_active: bool = True


@dataclass(frozen=True, order=True)
class Slot:
    """A bookable ``[start, end)`` interval on a given date."""

    start: time
    end: time

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Slot":
        return cls(start=time.fromisoformat(data["start"]), end=time.fromisoformat(data["end"]))
