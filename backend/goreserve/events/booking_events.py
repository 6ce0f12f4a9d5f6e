"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class BookingEvent:
    """Common payload of every booking event."""

    booking_id: str
    business_id: str
    customer_id: str
    occurred_at: datetime

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, (datetime, date, time)):
                payload[key] = value.isoformat()
        payload["event_type"] = self.event_type
        return payload


@dataclass(frozen=True)
class BookingCreated(BookingEvent):
    """Fired after a booking is successfully created."""

    service_id: str = ""
    staff_id: Optional[str] = None
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    booking_ref: str = ""


@dataclass(frozen=True)
class BookingConfirmed(BookingEvent):
    """Fired after a pending booking is confirmed."""


@dataclass(frozen=True)
class BookingCancelled(BookingEvent):
    """Fired after a booking is cancelled."""

    cancelled_by: str = ""
    reason: Optional[str] = None
    forced: bool = False
    refund_fraction: float = 0.0
    refund_amount: Optional[float] = None
    refund_due: bool = False


@dataclass(frozen=True)
class BookingCompleted(BookingEvent):
    """Fired after a booking is marked complete."""


@dataclass(frozen=True)
class BookingNoShow(BookingEvent):
    """Fired when the customer did not attend."""


@dataclass(frozen=True)
class BookingRescheduled(BookingEvent):
    """Fired after a booking was replaced by a new one."""

    new_booking_id: str = ""
    reschedule_count: int = 0
