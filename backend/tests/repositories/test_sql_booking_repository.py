"""
Repository tests for SqlBookingRepository.

Runs against the per-test SQLite file database from conftest.
"""

from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from goreserve.core.enums import BookingStatus, CancellationActor
from goreserve.core.exceptions import RepositoryConflictException
from goreserve.domain.booking import Booking
from goreserve.models import BookingModel
from goreserve.repositories import RepositoryFactory
from goreserve.repositories.booking_repository import SqlBookingRepository

NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)
DAY = date(2030, 1, 14)


@pytest.fixture
def repo(db, seed):
    return RepositoryFactory.create_booking_repository(db)


def _booking(seed, *, staff_id=None, start=time(10), customer="cust-1", day=DAY, **kw) -> Booking:
    return Booking.new(
        business_id=seed.business_id,
        service_id=seed.haircut_id if staff_id else seed.consult_id,
        customer_id=customer,
        staff_id=staff_id,
        booking_date=day,
        start_time=start,
        duration_minutes=60,
        created_at=kw.pop("created_at", NOW),
        amount=Decimal("100.00"),
        **kw,
    )


def _store(repo, booking: Booking) -> Booking:
    with repo.transaction():
        repo.add(booking)
    return booking


class TestRoundTrip:
    def test_add_and_get(self, repo, seed):
        booking = _store(repo, _booking(seed, notes="window seat"))
        repo.refresh_all()

        loaded = repo.get(booking.id)

        assert loaded == booking
        assert loaded.created_at.tzinfo is not None
        assert loaded.amount == Decimal("100.00")

    def test_save_persists_transition(self, repo, seed):
        booking = _store(repo, _booking(seed))
        cancelled = booking.cancel(
            NOW, reason="sick", actor=CancellationActor.CUSTOMER, refund_amount=Decimal("50.00")
        ).booking
        with repo.transaction():
            repo.save(cancelled)

        loaded = repo.get(booking.id)
        assert loaded.status == BookingStatus.CANCELLED
        assert loaded.cancelled_by == CancellationActor.CUSTOMER
        assert loaded.refund_amount == Decimal("50.00")

    def test_get_unknown(self, repo):
        assert repo.get("01HZZZZZZZZZZZZZZZZZZZZZZZ") is None

    def test_get_for_update_inside_a_transaction(self, repo, seed):
        booking = _store(repo, _booking(seed))
        with repo.transaction():
            locked = repo.get(booking.id, for_update=True)
        assert locked == booking

    def test_for_update_is_passed_to_the_session(self):
        session = MagicMock()
        session.get.return_value = None
        repo = SqlBookingRepository(session)

        assert repo.get("b1", for_update=True) is None

        session.get.assert_called_once_with(
            BookingModel, "b1", populate_existing=True, with_for_update=True
        )


class TestActiveQueries:
    def test_staff_day_excludes_cancelled_and_other_days(self, repo, seed):
        kept = _store(repo, _booking(seed, staff_id=seed.alice_id, start=time(9)))
        cancelled = _store(repo, _booking(seed, staff_id=seed.alice_id, start=time(11)))
        with repo.transaction():
            repo.save(cancelled.cancel(NOW, reason=None, actor=CancellationActor.BUSINESS).booking)
        _store(repo, _booking(seed, staff_id=seed.alice_id, day=DAY + timedelta(days=1)))

        found = repo.list_active_for_staff(seed.alice_id, DAY)

        assert [b.id for b in found] == [kept.id]
        assert repo.list_active_for_staff(seed.alice_id, DAY, exclude_booking_id=kept.id) == []

    def test_service_day(self, repo, seed):
        first = _store(repo, _booking(seed, start=time(9)))
        second = _store(repo, _booking(seed, start=time(13)))
        found = repo.list_active_for_service(seed.consult_id, DAY)
        assert [b.id for b in found] == [first.id, second.id]

    def test_customer_day_count(self, repo, seed):
        _store(repo, _booking(seed, start=time(9)))
        _store(repo, _booking(seed, start=time(13)))
        _store(repo, _booking(seed, start=time(15), customer="someone-else"))
        assert repo.count_active_for_customer_on("cust-1", DAY) == 2

    def test_list_for_customer_filters(self, repo, seed):
        early = _store(repo, _booking(seed, start=time(9)))
        later = _store(repo, _booking(seed, day=DAY + timedelta(days=2)))
        with repo.transaction():
            repo.save(later.confirm(NOW).booking)

        assert [b.id for b in repo.list_for_customer("cust-1")] == [early.id, later.id]
        assert [b.id for b in repo.list_for_customer("cust-1", BookingStatus.CONFIRMED)] == [
            later.id
        ]
        assert [b.id for b in repo.list_for_customer("cust-1", date_to=DAY)] == [early.id]

    def test_expired_pending(self, repo, seed):
        old = _store(repo, _booking(seed, start=time(9), created_at=NOW - timedelta(hours=5)))
        _store(repo, _booking(seed, start=time(13), created_at=NOW))

        found = repo.list_expired_pending(NOW - timedelta(hours=2), DAY - timedelta(days=30))

        assert [b.id for b in found] == [old.id]


class TestConstraints:
    def test_duplicate_active_staff_start_is_rejected(self, repo, seed):
        _store(repo, _booking(seed, staff_id=seed.alice_id))
        with pytest.raises(RepositoryConflictException):
            _store(repo, _booking(seed, staff_id=seed.alice_id, customer="cust-2"))

        assert len(repo.list_active_for_staff(seed.alice_id, DAY)) == 1

    def test_cancelled_booking_frees_the_start(self, repo, seed):
        first = _store(repo, _booking(seed, staff_id=seed.alice_id))
        with repo.transaction():
            repo.save(first.cancel(NOW, reason=None, actor=CancellationActor.CUSTOMER).booking)

        second = _store(repo, _booking(seed, staff_id=seed.alice_id, customer="cust-2"))

        assert [b.id for b in repo.list_active_for_staff(seed.alice_id, DAY)] == [second.id]

    def test_pool_bookings_may_share_a_start(self, repo, seed):
        _store(repo, _booking(seed))
        _store(repo, replace(_booking(seed), customer_id="cust-2"))
        assert len(repo.list_active_for_service(seed.consult_id, DAY)) == 2
