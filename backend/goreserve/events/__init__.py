"""Booking domain events and the in-process publisher."""

from .booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingEvent,
    BookingNoShow,
    BookingRescheduled,
)
from .publisher import DeliveryFailure, EventPublisher

__all__ = [
    "BookingCancelled",
    "BookingCompleted",
    "BookingConfirmed",
    "BookingCreated",
    "BookingEvent",
    "BookingNoShow",
    "BookingRescheduled",
    "DeliveryFailure",
    "EventPublisher",
]
