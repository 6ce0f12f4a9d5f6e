from dataclasses import replace
from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest

from goreserve.core.enums import BookingStatus, PaymentStatus
from goreserve.core.exceptions import (
    BookingConflictException,
    InsufficientNoticeException,
    InvalidTransitionException,
    PolicyViolationException,
    RepositoryException,
    ValidationException,
)
from goreserve.services.booking_scheduler import RESCHEDULE_REASON

NEXT_MONDAY = date(2030, 1, 14)
NEXT_TUESDAY = date(2030, 1, 15)


def _starts(slots):
    return [slot.start.strftime("%H:%M") for slot in slots]


@pytest.fixture
def booking(scheduler, seed):
    return scheduler.create_booking(
        "cust-1", seed.consult_id, NEXT_MONDAY, time(10), extras={"notes": "bring forms"}
    )


def test_moves_booking_to_new_slot(scheduler, listener, booking):
    replacement = scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))

    original = scheduler.get_booking(booking.id)
    assert original.status == BookingStatus.CANCELLED
    assert original.cancellation_reason == RESCHEDULE_REASON

    assert replacement.id != booking.id
    assert replacement.status == BookingStatus.PENDING
    assert replacement.booking_date == NEXT_TUESDAY
    assert replacement.start_time == time(11)
    assert replacement.rescheduled_from_id == booking.id
    assert replacement.reschedule_count == 1
    assert replacement.notes == "bring forms"
    assert replacement.amount == booking.amount

    assert listener.types() == [
        "BookingCreated",
        "BookingCancelled",
        "BookingCreated",
        "BookingRescheduled",
    ]
    rescheduled = listener.events[-1]
    assert rescheduled.booking_id == booking.id
    assert rescheduled.new_booking_id == replacement.id


def test_frees_old_slot_and_takes_new_one(scheduler, seed, booking):
    scheduler.get_available_slots(seed.consult_id, NEXT_MONDAY)
    scheduler.get_available_slots(seed.consult_id, NEXT_TUESDAY)

    scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))

    assert "10:00" in _starts(scheduler.get_available_slots(seed.consult_id, NEXT_MONDAY))
    assert "11:00" not in _starts(scheduler.get_available_slots(seed.consult_id, NEXT_TUESDAY))


def test_may_overlap_its_own_old_slot(scheduler, booking):
    replacement = scheduler.reschedule_booking(booking.id, NEXT_MONDAY, time(10, 30))
    assert replacement.start_time == time(10, 30)
    assert replacement.end_time == time(11, 30)


def test_same_day_move_does_not_trip_daily_limit(scheduler_factory, seed):
    scheduler = scheduler_factory(daily_booking_limit=1)
    booking = scheduler.create_booking("cust-1", seed.consult_id, NEXT_MONDAY, time(10))

    replacement = scheduler.reschedule_booking(booking.id, NEXT_MONDAY, time(14))

    assert replacement.start_time == time(14)


def test_chain_of_reschedules(scheduler, booking):
    first = scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))
    second = scheduler.reschedule_booking(first.id, NEXT_TUESDAY, time(15))

    assert second.rescheduled_from_id == first.id
    assert second.reschedule_count == 2


def test_keeps_confirmation_and_payment(scheduler, booking):
    scheduler.confirm_booking(booking.id)
    confirmed = scheduler.get_booking(booking.id)
    with scheduler.bookings.transaction():
        scheduler.bookings.save(
            replace(confirmed, payment_status=PaymentStatus.PAID, amount=Decimal("80.00"))
        )

    replacement = scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))

    assert replacement.status == BookingStatus.CONFIRMED
    assert replacement.payment_status == PaymentStatus.PAID
    assert replacement.amount == Decimal("80.00")


def test_switches_staff_member(scheduler, seed):
    booking = scheduler.create_booking("cust-1", seed.haircut_id, NEXT_MONDAY, time(13), seed.alice_id)

    replacement = scheduler.reschedule_booking(booking.id, NEXT_MONDAY, time(13), seed.bob_id)

    assert replacement.staff_id == seed.bob_id
    assert scheduler.bookings.list_active_for_staff(seed.alice_id, NEXT_MONDAY) == []


def test_conflict_leaves_original_untouched(scheduler, seed, booking):
    scheduler.create_booking("cust-2", seed.consult_id, NEXT_TUESDAY, time(11))

    with pytest.raises(BookingConflictException):
        scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))

    assert scheduler.get_booking(booking.id).status == BookingStatus.PENDING
    assert len(scheduler.list_customer_bookings("cust-1")) == 1


def test_failed_write_rolls_back_the_cancellation(scheduler, monkeypatch, booking):
    def broken_add(new_booking):
        raise RepositoryException("disk full")

    monkeypatch.setattr(scheduler.bookings, "add", broken_add)

    with pytest.raises(BookingConflictException) as exc_info:
        scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))

    assert exc_info.value.details["reason"] == "lost_race"
    original = scheduler.get_booking(booking.id)
    assert original.status == BookingStatus.PENDING
    assert original.cancelled_at is None


def test_requires_cancellation_notice(scheduler, clock, booking):
    clock.now = datetime(2030, 1, 13, 12, 0, tzinfo=timezone.utc)
    with pytest.raises(InsufficientNoticeException):
        scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))


def test_new_slot_obeys_booking_rules(scheduler, booking):
    with pytest.raises(PolicyViolationException) as exc_info:
        scheduler.reschedule_booking(booking.id, date(2030, 1, 20), time(11))
    assert exc_info.value.code == "closed"
    assert scheduler.get_booking(booking.id).status == BookingStatus.PENDING


def test_cancelled_booking_cannot_move(scheduler, booking):
    scheduler.cancel_booking(booking.id)
    with pytest.raises(InvalidTransitionException):
        scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11))


def test_timezone_aware_start_is_rejected(scheduler, booking):
    with pytest.raises(ValidationException):
        scheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11, tzinfo=timezone.utc))
    assert scheduler.get_booking(booking.id).status == BookingStatus.PENDING


def test_cancel_racing_a_reschedule_sees_the_move(scheduler_factory, seed, monkeypatch):
    canceller = scheduler_factory()
    rescheduler = scheduler_factory()
    booking = canceller.create_booking("cust-1", seed.consult_id, NEXT_MONDAY, time(10))
    moved = []
    check_notice = canceller.policy.ensure_can_cancel

    def reschedule_first(current, service, now):
        # the other writer commits between the canceller's read and its write
        if not moved:
            moved.append(rescheduler.reschedule_booking(booking.id, NEXT_TUESDAY, time(11)))
        check_notice(current, service, now)

    monkeypatch.setattr(canceller.policy, "ensure_can_cancel", reschedule_first)

    with pytest.raises(InvalidTransitionException):
        canceller.cancel_booking(booking.id, "changed plans")

    original = rescheduler.get_booking(booking.id)
    assert original.cancellation_reason == RESCHEDULE_REASON
    assert rescheduler.get_booking(moved[0].id).status == BookingStatus.PENDING
