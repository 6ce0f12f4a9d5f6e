# backend/goreserve/domain/booking.py
"""
Booking value type and lifecycle transitions.

Bookings are immutable. Each transition validates the current state and
returns a ``Transition`` carrying the new booking together with the domain
events the change produced; persisting the booking and publishing the events
is left to the caller.

    pending ──confirm──> confirmed ──complete──> completed
       │                     │
       ├──cancel/force──> cancelled
       └──no_show──────> no_show
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Collection, List, Optional

from ..core.enums import CANCELLABLE_STATUSES, BookingStatus, CancellationActor, PaymentStatus
from ..core.exceptions import InvalidTransitionException, PolicyViolationException
from ..core.timezone_utils import ensure_aware, localize
from ..core.ulid_helper import generate_booking_ref, generate_ulid
from ..events.booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingEvent,
    BookingNoShow,
)


@dataclass(frozen=True)
class Booking:
    id: str
    booking_ref: str
    business_id: str
    service_id: str
    customer_id: str
    staff_id: Optional[str]
    booking_date: date
    start_time: time
    end_time: time
    timezone: str = "UTC"
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    amount: Decimal = Decimal("0")
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancellationActor] = None
    refund_amount: Optional[Decimal] = None
    rescheduled_from_id: Optional[str] = None
    reschedule_count: int = 0

    def __post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValueError("Booking end time must be after start time")

    @classmethod
    def new(
        cls,
        *,
        business_id: str,
        service_id: str,
        customer_id: str,
        staff_id: Optional[str],
        booking_date: date,
        start_time: time,
        duration_minutes: int,
        created_at: datetime,
        timezone: str = "UTC",
        amount: Decimal = Decimal("0"),
        notes: Optional[str] = None,
        rescheduled_from_id: Optional[str] = None,
        reschedule_count: int = 0,
    ) -> "Booking":
        """Build a pending booking; ``end_time`` is derived from the duration."""
        end = datetime.combine(booking_date, start_time) + timedelta(minutes=duration_minutes)
        if end.date() != booking_date:
            raise ValueError("Bookings cannot cross midnight")
        return cls(
            id=generate_ulid(),
            booking_ref=generate_booking_ref(),
            business_id=business_id,
            service_id=service_id,
            customer_id=customer_id,
            staff_id=staff_id,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end.time(),
            timezone=timezone,
            amount=amount,
            notes=notes,
            created_at=created_at,
            rescheduled_from_id=rescheduled_from_id,
            reschedule_count=reschedule_count,
        )

    @property
    def starts_at(self) -> datetime:
        return localize(self.booking_date, self.start_time, self.timezone)

    @property
    def ends_at(self) -> datetime:
        return localize(self.booking_date, self.end_time, self.timezone)

    @property
    def duration_minutes(self) -> int:
        delta = datetime.combine(self.booking_date, self.end_time) - datetime.combine(
            self.booking_date, self.start_time
        )
        return int(delta.total_seconds() // 60)

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def overlaps(self, start: time, end: time) -> bool:
        """Half-open interval overlap with ``[start, end)``."""
        return self.start_time < end and start < self.end_time

    def notice_hours(self, now: datetime) -> float:
        return (self.starts_at - ensure_aware(now)).total_seconds() / 3600

    # Transitions

    def created_event(self) -> BookingCreated:
        return BookingCreated(
            booking_id=self.id,
            business_id=self.business_id,
            customer_id=self.customer_id,
            occurred_at=self.created_at or self.starts_at,
            service_id=self.service_id,
            staff_id=self.staff_id,
            booking_date=self.booking_date,
            start_time=self.start_time,
            end_time=self.end_time,
            booking_ref=self.booking_ref,
        )

    def confirm(self, now: datetime) -> "Transition":
        self._require({BookingStatus.PENDING}, "confirm")
        confirmed = replace(self, status=BookingStatus.CONFIRMED, confirmed_at=now)
        return Transition(confirmed, [BookingConfirmed(**self._event_base(now))])

    def cancel(
        self,
        now: datetime,
        *,
        reason: Optional[str],
        actor: CancellationActor,
        refund_fraction: float = 0.0,
        refund_amount: Optional[Decimal] = None,
        refund_due: bool = False,
        forced: bool = False,
    ) -> "Transition":
        """
        Move to cancelled. Notice rules are enforced by the cancellation
        policy before this is called; only the state gate is checked here.
        """
        self._require(CANCELLABLE_STATUSES, "cancel")
        cancelled = replace(
            self,
            status=BookingStatus.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason,
            cancelled_by=actor,
            refund_amount=refund_amount,
        )
        event = BookingCancelled(
            **self._event_base(now),
            cancelled_by=actor.value,
            reason=reason,
            forced=forced,
            refund_fraction=refund_fraction,
            refund_amount=float(refund_amount) if refund_amount is not None else None,
            refund_due=refund_due,
        )
        return Transition(cancelled, [event])

    def complete(self, now: datetime) -> "Transition":
        self._require({BookingStatus.CONFIRMED}, "complete")
        if ensure_aware(now) < self.ends_at:
            raise PolicyViolationException(
                message="Booking cannot be completed before it has ended",
                code="invalid_transition",
                details={"booking_id": self.id, "ends_at": self.ends_at.isoformat()},
            )
        completed = replace(self, status=BookingStatus.COMPLETED, completed_at=now)
        return Transition(completed, [BookingCompleted(**self._event_base(now))])

    def mark_no_show(self, now: datetime) -> "Transition":
        self._require(CANCELLABLE_STATUSES, "mark as no-show")
        if ensure_aware(now) < self.starts_at:
            raise PolicyViolationException(
                message="Booking cannot be marked as no-show before it has started",
                code="invalid_transition",
                details={"booking_id": self.id, "starts_at": self.starts_at.isoformat()},
            )
        no_show = replace(self, status=BookingStatus.NO_SHOW)
        return Transition(no_show, [BookingNoShow(**self._event_base(now))])

    def _require(self, allowed: Collection[BookingStatus], action: str) -> None:
        if self.status not in allowed:
            raise InvalidTransitionException(self.id, self.status.value, action)

    def _event_base(self, now: datetime) -> dict:
        return {
            "booking_id": self.id,
            "business_id": self.business_id,
            "customer_id": self.customer_id,
            "occurred_at": now,
        }


@dataclass(frozen=True)
class Transition:
    """Result of a lifecycle transition."""

    booking: Booking
    events: List[BookingEvent] = field(default_factory=list)
