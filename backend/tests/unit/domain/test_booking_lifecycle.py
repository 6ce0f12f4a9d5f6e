"""Unit tests for the Booking value type and its transitions."""

from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from goreserve.core.enums import BookingStatus, CancellationActor
from goreserve.core.exceptions import InvalidTransitionException, PolicyViolationException
from goreserve.domain.booking import Booking
from goreserve.events.booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingNoShow,
)

NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)
DAY = date(2030, 1, 14)


def _booking(**overrides) -> Booking:
    booking = Booking.new(
        business_id="biz",
        service_id="svc",
        customer_id="cust",
        staff_id=None,
        booking_date=DAY,
        start_time=time(10),
        duration_minutes=60,
        created_at=NOW,
        amount=Decimal("100.00"),
    )
    return replace(booking, **overrides) if overrides else booking


class TestNewBooking:
    def test_defaults(self):
        booking = _booking()
        assert booking.status == BookingStatus.PENDING
        assert booking.end_time == time(11)
        assert booking.duration_minutes == 60
        assert booking.booking_ref.startswith("BK")
        assert len(booking.booking_ref) == 10
        assert len(booking.id) == 26

    def test_cannot_cross_midnight(self):
        with pytest.raises(ValueError):
            Booking.new(
                business_id="biz",
                service_id="svc",
                customer_id="cust",
                staff_id=None,
                booking_date=DAY,
                start_time=time(23, 30),
                duration_minutes=60,
                created_at=NOW,
            )

    def test_end_must_follow_start(self):
        with pytest.raises(ValueError):
            replace(_booking(), end_time=time(10))

    def test_overlap_is_half_open(self):
        booking = _booking()
        assert booking.overlaps(time(10, 30), time(11, 30))
        assert not booking.overlaps(time(11), time(12))
        assert not booking.overlaps(time(9), time(10))

    def test_notice_hours(self):
        booking = _booking()
        assert booking.notice_hours(NOW) == pytest.approx(7 * 24 + 2)

    def test_created_event(self):
        event = _booking().created_event()
        assert isinstance(event, BookingCreated)
        payload = event.to_dict()
        assert payload["event_type"] == "BookingCreated"
        assert payload["booking_date"] == "2030-01-14"
        assert payload["start_time"] == "10:00:00"


class TestTransitions:
    def test_confirm(self):
        transition = _booking().confirm(NOW)
        assert transition.booking.status == BookingStatus.CONFIRMED
        assert transition.booking.confirmed_at == NOW
        assert [type(e) for e in transition.events] == [BookingConfirmed]

    def test_confirm_twice_is_rejected(self):
        confirmed = _booking().confirm(NOW).booking
        with pytest.raises(InvalidTransitionException) as exc_info:
            confirmed.confirm(NOW)
        assert exc_info.value.code == "invalid_transition"

    def test_cancel_records_actor_and_refund(self):
        transition = _booking().cancel(
            NOW,
            reason="changed plans",
            actor=CancellationActor.CUSTOMER,
            refund_fraction=1.0,
            refund_amount=Decimal("100.00"),
        )
        cancelled = transition.booking
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancelled_by == CancellationActor.CUSTOMER
        assert cancelled.refund_amount == Decimal("100.00")
        event = transition.events[0]
        assert isinstance(event, BookingCancelled)
        assert event.refund_fraction == 1.0
        assert event.to_dict()["cancelled_by"] == "customer"

    @pytest.mark.parametrize(
        "status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW]
    )
    def test_terminal_bookings_cannot_be_cancelled(self, status):
        with pytest.raises(InvalidTransitionException):
            _booking(status=status).cancel(NOW, reason=None, actor=CancellationActor.BUSINESS)

    def test_complete_requires_confirmation(self):
        with pytest.raises(InvalidTransitionException):
            _booking().complete(NOW + timedelta(days=8))

    def test_complete_requires_end(self):
        confirmed = _booking().confirm(NOW).booking
        with pytest.raises(PolicyViolationException) as exc_info:
            confirmed.complete(datetime(2030, 1, 14, 10, 30, tzinfo=timezone.utc))
        assert exc_info.value.code == "invalid_transition"

        transition = confirmed.complete(datetime(2030, 1, 14, 11, 0, tzinfo=timezone.utc))
        assert transition.booking.status == BookingStatus.COMPLETED
        assert [type(e) for e in transition.events] == [BookingCompleted]

    def test_no_show_requires_start(self):
        booking = _booking()
        with pytest.raises(PolicyViolationException):
            booking.mark_no_show(datetime(2030, 1, 14, 9, 59, tzinfo=timezone.utc))

        transition = booking.mark_no_show(datetime(2030, 1, 14, 10, 15, tzinfo=timezone.utc))
        assert transition.booking.status == BookingStatus.NO_SHOW
        assert [type(e) for e in transition.events] == [BookingNoShow]

    def test_transitions_do_not_mutate(self):
        booking = _booking()
        booking.confirm(NOW)
        assert booking.status == BookingStatus.PENDING
