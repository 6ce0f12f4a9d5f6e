# backend/goreserve/services/booking_scheduler.py
"""
Booking Scheduler Service

Orchestrates reservations:
- Validates input and the referenced business, service and staff member
- Enforces the booking window, the per-customer daily cap and calendars
- Fails fast on an optimistic availability check (cache or fresh compute)
- Re-checks availability inside the scope lock and the database
  transaction that performs the insert, retrying exactly once
- Invalidates the availability cache and publishes domain events

Reads are lock-free and may be stale; the critical section is authoritative.
"""

from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..core.config import settings
from ..core.enums import BookingStatus, CancellationActor
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    PolicyViolationException,
    RepositoryException,
    ValidationException,
)
from ..core.scope_lock import InProcessScopeLock, ScopeLock, ScopeLockTimeout
from ..core.timezone_utils import local_today, localize
from ..domain.booking import Booking, Transition
from ..domain.calendar import covers, effective_window
from ..domain.catalog import Business, Service, Slot, Staff
from ..events.booking_events import BookingEvent, BookingRescheduled
from ..events.publisher import EventPublisher
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.interfaces import BookingRepository, CatalogRepository
from .availability_cache import AvailabilityCache, CacheScope
from .availability_calculator import AvailabilityCalculator
from .base import BaseService
from .cancellation_policy import CancellationPolicyEngine, RefundDecision
from .conflict_detector import ConflictDetector, ConflictScope, StaffScope, scope_for

logger = logging.getLogger(__name__)

GENERIC_CONFLICT_MESSAGE = "This time slot conflicts with an existing booking"
STAFF_CONFLICT_MESSAGE = "Staff member already has a booking that overlaps this time"
CAPACITY_CONFLICT_MESSAGE = "This time slot is fully booked"
NO_STAFF_MESSAGE = "No staff member is available for this time"
LOST_RACE_MESSAGE = "This time slot was just booked by someone else"
SCOPE_BUSY_MESSAGE = "This time slot is being booked right now, please try again"

RESCHEDULE_REASON = "Rescheduled"
EXPIRED_REASON = "Payment not received in time"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _SlotTaken(Exception):
    """The re-check inside the critical section found a conflict."""


class BookingScheduler(BaseService):
    """
    Service for creating and transitioning bookings.

    Collaborators are injected so one lock and one cache can be shared by
    every scheduler of a process, while each scheduler owns its own
    repositories (and so its own database session).
    """

    def __init__(
        self,
        bookings: BookingRepository,
        catalog: CatalogRepository,
        cache: Optional[AvailabilityCache] = None,
        lock: Optional[ScopeLock] = None,
        publisher: Optional[EventPublisher] = None,
        policy: Optional[CancellationPolicyEngine] = None,
        clock: Optional[Clock] = None,
        daily_booking_limit: Optional[int] = None,
    ):
        super().__init__(cache)
        self.bookings = bookings
        self.catalog = catalog
        self.lock = lock or InProcessScopeLock()
        self.publisher = publisher or EventPublisher()
        self.policy = policy or CancellationPolicyEngine()
        self.clock: Clock = clock or utc_now
        self.daily_booking_limit = daily_booking_limit or settings.daily_booking_limit
        self.detector = ConflictDetector(bookings, catalog)
        self.calculator = AvailabilityCalculator(catalog, self.detector, cache)

    # Lookups

    def _get_service(self, service_id: str) -> Service:
        service = self.catalog.get_service(service_id)
        if service is None or not service.is_active:
            raise NotFoundException("Service not found", details={"service_id": service_id})
        return service

    def _get_business(self, business_id: str) -> Business:
        business = self.catalog.get_business(business_id)
        if business is None:
            raise NotFoundException("Business not found", details={"business_id": business_id})
        return business

    def _get_staff(self, staff_id: str, service: Service) -> Staff:
        staff = self.catalog.get_staff(staff_id)
        if staff is None or not staff.is_active or staff.business_id != service.business_id:
            raise NotFoundException("Staff member not found", details={"staff_id": staff_id})
        if not self.catalog.is_staff_assigned(service.id, staff_id):
            raise ValidationException(
                "Staff member does not offer this service",
                details={"staff_id": staff_id, "service_id": service.id},
            )
        return staff

    def _get_booking(self, booking_id: str) -> Booking:
        if not booking_id:
            raise ValidationException("booking_id is required")
        self.bookings.refresh_all()
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        return self._get_booking(booking_id)

    # Availability

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self, service_id: str, day: date, staff_id: Optional[str] = None
    ) -> List[Slot]:
        """
        Slots a customer may book right now.

        The cached slot list is narrowed to the booking window for the current
        time; nothing is offered while the business does not accept bookings.
        """
        service = self._get_service(service_id)
        business = self._get_business(service.business_id)
        if staff_id:
            self._get_staff(staff_id, service)
        if not business.accepts_bookings:
            return []

        now = self.clock()
        if not self._within_advance_days(service, business, day, now):
            return []

        earliest = now + timedelta(hours=service.min_advance_hours)
        slots = self.calculator.get_slots(service, day, staff_id)
        return [
            slot for slot in slots if localize(day, slot.start, business.timezone) >= earliest
        ]

    @BaseService.measure_operation("find_next_available")
    def find_next_available(
        self, service_id: str, from_date: Optional[date] = None, staff_id: Optional[str] = None
    ) -> Optional[Tuple[date, Slot]]:
        """First bookable slot on or after ``from_date`` within the advance window."""
        service = self._get_service(service_id)
        business = self._get_business(service.business_id)
        today = local_today(self.clock(), business.timezone)
        day = max(from_date or today, today)
        last_day = today + timedelta(days=service.advance_booking_days)

        while day <= last_day:
            slots = self.get_available_slots(service_id, day, staff_id)
            if slots:
                return day, slots[0]
            day += timedelta(days=1)
        return None

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        customer_id: str,
        service_id: str,
        day: date,
        start: time,
        staff_id: Optional[str] = None,
        extras: Optional[Dict[str, Any]] = None,
    ) -> Booking:
        """
        Reserve ``[start, start + duration)`` on ``day``.

        Raises:
            ValidationException: malformed input
            NotFoundException: unknown service, business or staff member
            PolicyViolationException: booking window, daily cap or calendar rules
            BookingConflictException: the slot is not (or no longer) available
        """
        self._validate_request(customer_id, service_id, day, start, extras)
        extras = extras or {}

        service = self._get_service(service_id)
        business = self._get_business(service.business_id)
        staff = self._get_staff(staff_id, service) if staff_id else None
        end = self._end_time(day, start, service)
        now = self.clock()

        self._check_booking_window(service, business, day, start, now)
        self._check_daily_cap(customer_id, day)
        self._check_calendar(business, day, start, end, staff)
        self._optimistic_check(service, day, start, end, staff_id)

        amount = self._amount(extras, service)

        def build(assigned_staff_id: Optional[str]) -> Tuple[Booking, List[BookingEvent]]:
            booking = Booking.new(
                business_id=business.id,
                service_id=service.id,
                customer_id=customer_id,
                staff_id=assigned_staff_id,
                booking_date=day,
                start_time=start,
                duration_minutes=service.duration_minutes,
                created_at=now,
                timezone=business.timezone,
                amount=amount,
                notes=extras.get("notes"),
            )
            self.bookings.add(booking)
            return booking, [booking.created_event()]

        booking, events = self._reserve(service, day, start, end, staff_id, build)

        self.invalidate_cache(CacheScope.business(business.id, day))
        self.log_operation(
            "create_booking",
            booking_id=booking.id,
            service_id=service.id,
            staff_id=booking.staff_id,
            booking_date=day.isoformat(),
        )
        self.publisher.publish_all(events)
        return booking

    def _validate_request(
        self,
        customer_id: Any,
        service_id: Any,
        day: Any,
        start: Any,
        extras: Any,
    ) -> None:
        errors: Dict[str, str] = {}
        if not isinstance(customer_id, str) or not customer_id.strip():
            errors["customer_id"] = "customer_id is required"
        if not isinstance(service_id, str) or not service_id.strip():
            errors["service_id"] = "service_id is required"
        if not isinstance(day, date) or isinstance(day, datetime):
            errors["date"] = "date must be a calendar date"
        if not isinstance(start, time):
            errors["start"] = "start must be a time of day"
        elif start.tzinfo is not None:
            errors["start"] = "start must be a local wall-clock time without tzinfo"
        elif start.second or start.microsecond:
            errors["start"] = "start must be on a whole minute"
        if extras is not None and not isinstance(extras, dict):
            errors["extras"] = "extras must be a mapping"
        if errors:
            raise ValidationException("Invalid booking request", details=errors)

    @staticmethod
    def _end_time(day: date, start: time, service: Service) -> time:
        end = datetime.combine(day, start) + timedelta(minutes=service.duration_minutes)
        if end.date() != day:
            raise PolicyViolationException(
                "Booking would run past midnight",
                code="closed",
                details={"start": start.isoformat(), "duration": service.duration_minutes},
            )
        return end.time()

    @staticmethod
    def _amount(extras: Dict[str, Any], service: Service) -> Decimal:
        if extras.get("amount") is None:
            return service.price
        try:
            amount = Decimal(str(extras["amount"]))
            if not amount.is_finite():
                raise ValueError("not a finite number")
        except (InvalidOperation, ValueError) as exc:
            raise ValidationException("amount must be a number", details={"amount": extras["amount"]}) from exc
        if amount < 0:
            raise ValidationException("amount cannot be negative", details={"amount": str(amount)})
        return amount

    # Policy

    @staticmethod
    def _within_advance_days(service: Service, business: Business, day: date, now: datetime) -> bool:
        today = local_today(now, business.timezone)
        return today <= day <= today + timedelta(days=service.advance_booking_days)

    def _check_booking_window(
        self, service: Service, business: Business, day: date, start: time, now: datetime
    ) -> None:
        if not business.accepts_bookings:
            raise PolicyViolationException(
                "This business is not accepting bookings",
                code="bookings_disabled",
                details={"business_id": business.id, "status": business.status.value},
            )

        starts_at = localize(day, start, business.timezone)
        earliest = now + timedelta(hours=service.min_advance_hours)
        if starts_at < earliest:
            raise PolicyViolationException(
                f"Bookings must be made at least {service.min_advance_hours} hours in advance",
                code="too_soon",
                details={"earliest": earliest.isoformat(), "requested": starts_at.isoformat()},
            )

        last_day = local_today(now, business.timezone) + timedelta(days=service.advance_booking_days)
        if day > last_day:
            raise PolicyViolationException(
                f"Bookings cannot be made more than {service.advance_booking_days} days in advance",
                code="too_far_in_advance",
                details={"last_bookable_date": last_day.isoformat()},
            )

    def _check_daily_cap(self, customer_id: str, day: date, discount: int = 0) -> None:
        booked = self.bookings.count_active_for_customer_on(customer_id, day) - discount
        if booked >= self.daily_booking_limit:
            raise PolicyViolationException(
                f"You can hold at most {self.daily_booking_limit} bookings per day",
                code="daily_limit_reached",
                details={"limit": self.daily_booking_limit, "date": day.isoformat()},
            )

    @staticmethod
    def _check_calendar(
        business: Business, day: date, start: time, end: time, staff: Optional[Staff]
    ) -> None:
        window = effective_window(business.calendar, day)
        if window is None or not window.contains(start, end):
            raise PolicyViolationException(
                "The business is closed at this time",
                code="closed",
                details={
                    "date": day.isoformat(),
                    "open": window.open.isoformat() if window else None,
                    "close": window.close.isoformat() if window else None,
                },
            )
        if staff is not None and not covers(business.calendar, day, start, end, staff.calendar):
            raise PolicyViolationException(
                "The staff member is not available at this time",
                code="staff_unavailable",
                details={"staff_id": staff.id, "date": day.isoformat()},
            )

    # Availability checks

    def _optimistic_check(
        self,
        service: Service,
        day: date,
        start: time,
        end: time,
        staff_id: Optional[str],
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        """
        Fail fast when the slot is visibly taken.

        A start found in the (possibly cached) slot list passes; otherwise the
        detector decides, which also admits starts off the slot grid.
        """
        if exclude_booking_id is None:
            slots = self.calculator.get_slots(service, day, staff_id)
            if any(slot.start == start for slot in slots):
                return

        if not staff_id and service.requires_staff:
            free = self.detector.available_staff(service, day, start, end, exclude_booking_id)
            if free:
                return
            message = NO_STAFF_MESSAGE
        else:
            scope = scope_for(service, staff_id)
            if not self.detector.has_conflict(scope, day, start, end, exclude_booking_id):
                return
            message = self._conflict_message(scope)

        prometheus_metrics.record_booking_conflict("optimistic")
        raise BookingConflictException(
            message,
            details=self._conflict_details(service, day, start, end, staff_id, stage="optimistic"),
        )

    @staticmethod
    def _conflict_message(scope: ConflictScope) -> str:
        if isinstance(scope, StaffScope):
            return STAFF_CONFLICT_MESSAGE
        if scope.capacity > 1:
            return CAPACITY_CONFLICT_MESSAGE
        return GENERIC_CONFLICT_MESSAGE

    @staticmethod
    def _conflict_details(
        service: Service,
        day: date,
        start: time,
        end: time,
        staff_id: Optional[str],
        stage: str,
    ) -> Dict[str, Any]:
        return {
            "service_id": service.id,
            "staff_id": staff_id,
            "date": day.isoformat(),
            "start": start.isoformat(),
            "end": end.isoformat(),
            "stage": stage,
        }

    # Critical section

    def _reserve(
        self,
        service: Service,
        day: date,
        start: time,
        end: time,
        staff_id: Optional[str],
        write: Callable[[Optional[str]], Tuple[Booking, List[BookingEvent]]],
        exclude_booking_id: Optional[str] = None,
    ) -> Tuple[Booking, List[BookingEvent]]:
        """
        Run ``write`` inside the serialized re-check for the booking's scope.

        Staffed services booked without a staff member try each free staff
        member in turn, each under that staff member's own lock.
        """
        if staff_id or not service.requires_staff:
            return self._critical_section(
                service, day, start, end, staff_id, write, exclude_booking_id
            )

        candidates = self.detector.available_staff(service, day, start, end, exclude_booking_id)
        last_conflict: Optional[BookingConflictException] = None
        for candidate in candidates:
            try:
                return self._critical_section(
                    service, day, start, end, candidate.id, write, exclude_booking_id
                )
            except BookingConflictException as exc:
                last_conflict = exc
                self.logger.info(
                    "Auto-assignment candidate taken, trying next",
                    extra={"staff_id": candidate.id, "service_id": service.id},
                )
        if last_conflict is not None:
            raise last_conflict
        prometheus_metrics.record_booking_conflict("critical_section")
        raise BookingConflictException(
            NO_STAFF_MESSAGE,
            details=self._conflict_details(service, day, start, end, None, stage="critical_section"),
        )

    def _critical_section(
        self,
        service: Service,
        day: date,
        start: time,
        end: time,
        staff_id: Optional[str],
        write: Callable[[Optional[str]], Tuple[Booking, List[BookingEvent]]],
        exclude_booking_id: Optional[str],
    ) -> Tuple[Booking, List[BookingEvent]]:
        scope = scope_for(service, staff_id)
        lock_key = scope.lock_key(day)

        for attempt in (1, 2):
            try:
                with self.lock.hold(lock_key):
                    with self.measure_operation_context("critical_section"):
                        self.bookings.refresh_all()
                        with self.bookings.transaction():
                            occupancy = self.detector.occupancy(scope, day, exclude_booking_id)
                            if occupancy.has_conflict(start, end):
                                raise _SlotTaken(lock_key)
                            return write(staff_id)
            except ScopeLockTimeout as exc:
                prometheus_metrics.record_booking_conflict("lock_timeout")
                details = self._conflict_details(service, day, start, end, staff_id, "lock_timeout")
                details["reason"] = "scope_busy"
                raise BookingConflictException(SCOPE_BUSY_MESSAGE, details=details) from exc
            except (_SlotTaken, RepositoryException) as exc:
                if attempt == 1:
                    self.logger.info(
                        "Critical section lost a race, retrying once",
                        extra={"lock_key": lock_key, "error_type": type(exc).__name__},
                    )
                    continue
                prometheus_metrics.record_booking_conflict("retry_exhausted")
                if isinstance(exc, _SlotTaken):
                    # The cached slot list offered a start that is taken
                    self.invalidate_cache(CacheScope.business(service.business_id, day))
                details = self._conflict_details(service, day, start, end, staff_id, "critical_section")
                details["reason"] = "lost_race"
                message = (
                    self._conflict_message(scope) if isinstance(exc, _SlotTaken) else LOST_RACE_MESSAGE
                )
                raise BookingConflictException(message, details=details) from exc

        raise AssertionError("unreachable")  # pragma: no cover

    # Transitions

    def _apply(
        self,
        booking_id: str,
        transition_for: Callable[[Booking], Transition],
        scopes: Sequence[CacheScope],
    ) -> Booking:
        """
        Apply ``transition_for`` to the row-locked current state of a booking.

        The booking is re-read with ``FOR UPDATE`` inside the transaction, so
        two writers racing on one booking serialize and the second one sees
        the first one's outcome.
        """
        with self.bookings.transaction():
            current = self.bookings.get(booking_id, for_update=True)
            if current is None:
                raise NotFoundException("Booking not found", details={"booking_id": booking_id})
            transition = transition_for(current)
            self.bookings.save(transition.booking)
        self.invalidate_cache(*scopes)
        self.publisher.publish_all(transition.events)
        return transition.booking

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(self, booking_id: str) -> Booking:
        booking = self._get_booking(booking_id)
        now = self.clock()
        self.log_operation("confirm_booking", booking_id=booking.id)
        return self._apply(
            booking.id,
            lambda current: current.confirm(now),
            [CacheScope.business(booking.business_id, booking.booking_date)],
        )

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str) -> Booking:
        booking = self._get_booking(booking_id)
        now = self.clock()
        self.log_operation("complete_booking", booking_id=booking.id)
        return self._apply(
            booking.id,
            lambda current: current.complete(now),
            [CacheScope.business(booking.business_id, booking.booking_date)],
        )

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, booking_id: str) -> Booking:
        booking = self._get_booking(booking_id)
        now = self.clock()
        self.log_operation("mark_no_show", booking_id=booking.id)
        return self._apply(
            booking.id,
            lambda current: current.mark_no_show(now),
            [CacheScope.business(booking.business_id, booking.booking_date)],
        )

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        actor: CancellationActor = CancellationActor.CUSTOMER,
    ) -> Booking:
        """
        Policy-gated cancellation.

        Raises:
            PolicyViolationException: too little notice (``insufficient_notice``)
                or the booking is already terminal (``invalid_transition``)
        """
        booking = self._get_booking(booking_id)
        service = self._service_of(booking)
        business = self.catalog.get_business(booking.business_id)
        policy = self.policy.resolve_policy(service, business)
        now = self.clock()

        # Fail fast before taking the row lock
        self.policy.ensure_can_cancel(booking, service, now)

        def cancel(current: Booking) -> Transition:
            self.policy.ensure_can_cancel(current, service, now)
            decision = self.policy.evaluate(current, service, now, policy)
            self.log_operation(
                "cancel_booking",
                booking_id=current.id,
                actor=actor.value,
                refund_fraction=decision.fraction,
            )
            return self._cancel_transition(current, now, reason, actor, decision)

        return self._apply(
            booking.id, cancel, [CacheScope.business(booking.business_id, booking.booking_date)]
        )

    @BaseService.measure_operation("force_cancel")
    def force_cancel(
        self,
        booking_id: str,
        reason: str,
        actor: CancellationActor = CancellationActor.BUSINESS,
    ) -> Booking:
        """Cancellation that bypasses the notice rules and always refunds in full."""
        booking = self._get_booking(booking_id)
        now = self.clock()

        def cancel(current: Booking) -> Transition:
            decision = self.policy.forced(current, now)
            return self._cancel_transition(current, now, reason, actor, decision)

        self.log_operation("force_cancel", booking_id=booking.id, actor=actor.value)
        return self._apply(
            booking.id, cancel, [CacheScope.business(booking.business_id, booking.booking_date)]
        )

    def refund_decision(self, booking_id: str) -> RefundDecision:
        """What a customer cancellation would refund right now."""
        booking = self._get_booking(booking_id)
        service = self._service_of(booking)
        business = self.catalog.get_business(booking.business_id)
        return self.policy.evaluate(
            booking, service, self.clock(), self.policy.resolve_policy(service, business)
        )

    @staticmethod
    def _cancel_transition(
        booking: Booking,
        now: datetime,
        reason: Optional[str],
        actor: CancellationActor,
        decision: RefundDecision,
    ) -> Transition:
        return booking.cancel(
            now,
            reason=reason,
            actor=actor,
            refund_fraction=decision.fraction,
            refund_amount=decision.amount,
            refund_due=decision.refund_due,
            forced=decision.forced,
        )

    def _service_of(self, booking: Booking) -> Service:
        service = self.catalog.get_service(booking.service_id)
        if service is None:
            raise NotFoundException("Service not found", details={"service_id": booking.service_id})
        return service

    # Rescheduling

    @BaseService.measure_operation("reschedule_booking")
    def reschedule_booking(
        self,
        booking_id: str,
        new_date: date,
        new_start: time,
        new_staff_id: Optional[str] = None,
        actor: CancellationActor = CancellationActor.CUSTOMER,
    ) -> Booking:
        """
        Atomically cancel ``booking_id`` and create its replacement.

        Both writes share one transaction under the new scope's lock; on any
        failure the original booking keeps its state and its slot.
        """
        original = self._get_booking(booking_id)
        self._validate_request(original.customer_id, original.service_id, new_date, new_start, None)
        service = self._get_service(original.service_id)
        business = self._get_business(original.business_id)
        now = self.clock()

        self.policy.ensure_can_cancel(original, service, now)

        staff_id = new_staff_id or original.staff_id
        staff = self._get_staff(staff_id, service) if staff_id else None
        end = self._end_time(new_date, new_start, service)

        self._check_booking_window(service, business, new_date, new_start, now)
        same_day = 1 if new_date == original.booking_date and original.is_active else 0
        self._check_daily_cap(original.customer_id, new_date, discount=same_day)
        self._check_calendar(business, new_date, new_start, end, staff)
        self._optimistic_check(service, new_date, new_start, end, staff_id, exclude_booking_id=original.id)

        def write(assigned_staff_id: Optional[str]) -> Tuple[Booking, List[BookingEvent]]:
            current = self.bookings.get(original.id, for_update=True)
            if current is None:
                raise NotFoundException("Booking not found", details={"booking_id": original.id})
            cancelled = current.cancel(now, reason=RESCHEDULE_REASON, actor=actor)
            self.bookings.save(cancelled.booking)

            replacement = Booking.new(
                business_id=current.business_id,
                service_id=current.service_id,
                customer_id=current.customer_id,
                staff_id=assigned_staff_id,
                booking_date=new_date,
                start_time=new_start,
                duration_minutes=service.duration_minutes,
                created_at=now,
                timezone=business.timezone,
                amount=current.amount,
                notes=current.notes,
                rescheduled_from_id=current.id,
                reschedule_count=current.reschedule_count + 1,
            )
            replacement = replace(replacement, payment_status=current.payment_status)
            if current.status == BookingStatus.CONFIRMED:
                replacement = replace(replacement, status=BookingStatus.CONFIRMED, confirmed_at=now)
            self.bookings.add(replacement)

            rescheduled = BookingRescheduled(
                booking_id=current.id,
                business_id=current.business_id,
                customer_id=current.customer_id,
                occurred_at=now,
                new_booking_id=replacement.id,
                reschedule_count=replacement.reschedule_count,
            )
            return replacement, [*cancelled.events, replacement.created_event(), rescheduled]

        replacement, events = self._reserve(
            service, new_date, new_start, end, staff_id, write, exclude_booking_id=original.id
        )

        self.invalidate_cache(
            CacheScope.business(business.id, original.booking_date),
            CacheScope.business(business.id, new_date),
        )
        self.log_operation(
            "reschedule_booking",
            booking_id=original.id,
            new_booking_id=replacement.id,
            new_date=new_date.isoformat(),
        )
        self.publisher.publish_all(events)
        return replacement

    # Bulk operations

    @BaseService.measure_operation("cancel_future_bookings")
    def cancel_future_bookings(
        self,
        business_id: str,
        reason: str,
        actor: CancellationActor = CancellationActor.ADMIN,
    ) -> List[Booking]:
        """Force-cancel every pending or confirmed booking of a business from today on."""
        business = self._get_business(business_id)
        now = self.clock()
        today = local_today(now, business.timezone)

        self.bookings.refresh_all()
        transitions: List[Transition] = []
        with self.bookings.transaction():
            for booking in self.bookings.list_future_active_for_business(business_id, today):
                transition = self._cancel_transition(
                    booking, now, reason, actor, self.policy.forced(booking, now, "Business suspended")
                )
                self.bookings.save(transition.booking)
                transitions.append(transition)

        self.invalidate_cache(CacheScope.business(business_id))
        self.log_operation(
            "cancel_future_bookings", business_id=business_id, cancelled=len(transitions)
        )
        for transition in transitions:
            self.publisher.publish_all(transition.events)
        return [transition.booking for transition in transitions]

    @BaseService.measure_operation("expire_pending_bookings")
    def expire_pending_bookings(self, older_than_hours: Optional[int] = None) -> List[Booking]:
        """Release unpaid pending bookings created more than ``older_than_hours`` ago."""
        hours = older_than_hours if older_than_hours is not None else settings.pending_expiration_hours
        now = self.clock()
        cutoff = now - timedelta(hours=hours)

        self.bookings.refresh_all()
        transitions: List[Transition] = []
        with self.bookings.transaction():
            candidates = self.bookings.list_expired_pending(cutoff, (now - timedelta(days=1)).date())
            for booking in candidates:
                if booking.starts_at <= now:
                    continue
                transition = booking.cancel(
                    now, reason=EXPIRED_REASON, actor=CancellationActor.SYSTEM
                )
                self.bookings.save(transition.booking)
                transitions.append(transition)

        scopes = {
            CacheScope.business(t.booking.business_id, t.booking.booking_date) for t in transitions
        }
        self.invalidate_cache(*scopes)
        if transitions:
            self.log_operation("expire_pending_bookings", expired=len(transitions))
        for transition in transitions:
            self.publisher.publish_all(transition.events)
        return [transition.booking for transition in transitions]

    # Queries

    def list_customer_bookings(
        self,
        customer_id: str,
        status: Optional[BookingStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Booking]:
        if not customer_id:
            raise ValidationException("customer_id is required")
        if date_from and date_to and date_to < date_from:
            raise ValidationException(
                "date_to must not be before date_from",
                details={"date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
            )
        return self.bookings.list_for_customer(customer_id, status, date_from, date_to)
