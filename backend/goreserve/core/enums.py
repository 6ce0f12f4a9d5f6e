# backend/goreserve/core/enums.py
"""
Core enums for the scheduling core.

Values are persisted as plain strings, so members subclass ``str``.
"""

from enum import Enum


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        """Active bookings occupy their slot."""
        return self is not BookingStatus.CANCELLED


TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)

CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class AvailabilityExceptionKind(str, Enum):
    """Staff-level overrides of the weekly schedule."""

    AVAILABLE = "available"
    VACATION = "vacation"
    SICK = "sick"
    BLOCKED = "blocked"

    @property
    def is_blocking(self) -> bool:
        return self is not AvailabilityExceptionKind.AVAILABLE


class CancellationActor(str, Enum):
    """Who initiated a cancellation."""

    CUSTOMER = "customer"
    BUSINESS = "business"
    ADMIN = "admin"
    SYSTEM = "system"


class CancellationPolicyKind(str, Enum):
    """Refund policy applied to customer-initiated cancellations."""

    TIERED = "tiered"
    NO_REFUND = "no_refund"


class BusinessStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Weekday(str, Enum):
    """Weekday names in ``date.weekday()`` order."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        return list(cls)[index]
