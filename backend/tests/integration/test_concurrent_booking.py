"""
Concurrent booking attempts against one SQLite file database.

Each worker thread owns a scheduler (and so a session); the scope lock and
the availability cache are shared the way they are inside one process.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, time
import threading

import pytest

from goreserve.core.exceptions import BookingConflictException
from goreserve.domain.booking import Booking
from goreserve.repositories import RepositoryFactory

NEXT_MONDAY = date(2030, 1, 14)

pytestmark = pytest.mark.integration


def _race(schedulers, book):
    """Release every worker at once and collect bookings or conflicts."""
    barrier = threading.Barrier(len(schedulers))

    def attempt(index):
        barrier.wait()
        try:
            return book(schedulers[index], index)
        except BookingConflictException as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(schedulers)) as pool:
        return list(pool.map(attempt, range(len(schedulers))))


def _split(results):
    wins = [r for r in results if isinstance(r, Booking)]
    losses = [r for r in results if isinstance(r, BookingConflictException)]
    assert len(wins) + len(losses) == len(results)
    return wins, losses


def test_single_slot_has_one_winner(scheduler_factory, session_factory, seed):
    schedulers = [scheduler_factory() for _ in range(8)]

    results = _race(
        schedulers,
        lambda s, i: s.create_booking(f"cust-{i}", seed.consult_id, NEXT_MONDAY, time(10)),
    )

    wins, losses = _split(results)
    assert len(wins) == 1
    assert len(losses) == 7

    with session_factory() as session:
        stored = RepositoryFactory.create_booking_repository(session).list_active_for_service(
            seed.consult_id, NEXT_MONDAY
        )
    assert [b.id for b in stored] == [wins[0].id]


def test_overlapping_starts_have_one_winner(scheduler_factory, session_factory, seed):
    # every pair of these one-hour bookings overlaps
    starts = [time(10), time(10, 15), time(10, 30), time(10, 45), time(10), time(10, 30)]
    schedulers = [scheduler_factory() for _ in starts]

    results = _race(
        schedulers,
        lambda s, i: s.create_booking(f"cust-{i}", seed.consult_id, NEXT_MONDAY, starts[i]),
    )

    wins, _ = _split(results)
    assert len(wins) == 1

    with session_factory() as session:
        stored = RepositoryFactory.create_booking_repository(session).list_active_for_service(
            seed.consult_id, NEXT_MONDAY
        )
    assert len(stored) == 1


def test_capacity_pool_fills_exactly(scheduler_factory, session_factory, seed):
    schedulers = [scheduler_factory() for _ in range(8)]

    results = _race(
        schedulers,
        lambda s, i: s.create_booking(f"cust-{i}", seed.group_id, NEXT_MONDAY, time(10)),
    )

    wins, losses = _split(results)
    assert len(wins) == 3
    assert len(losses) == 5

    with session_factory() as session:
        stored = RepositoryFactory.create_booking_repository(session).list_active_for_service(
            seed.group_id, NEXT_MONDAY
        )
    assert len(stored) == 3


def test_auto_assignment_spreads_across_staff(scheduler_factory, seed):
    schedulers = [scheduler_factory() for _ in range(6)]

    results = _race(
        schedulers,
        lambda s, i: s.create_booking(f"cust-{i}", seed.haircut_id, NEXT_MONDAY, time(13)),
    )

    wins, _ = _split(results)
    assert sorted(b.staff_id for b in wins) == sorted([seed.alice_id, seed.bob_id])


def test_warm_cache_does_not_admit_double_booking(scheduler_factory, seed):
    schedulers = [scheduler_factory() for _ in range(6)]
    for scheduler in schedulers:
        assert any(
            slot.start == time(10)
            for slot in scheduler.get_available_slots(seed.consult_id, NEXT_MONDAY)
        )

    results = _race(
        schedulers,
        lambda s, i: s.create_booking(f"cust-{i}", seed.consult_id, NEXT_MONDAY, time(10)),
    )

    wins, _ = _split(results)
    assert len(wins) == 1
    reader = scheduler_factory()
    assert time(10) not in [slot.start for slot in reader.get_available_slots(seed.consult_id, NEXT_MONDAY)]
