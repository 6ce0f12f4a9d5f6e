# backend/tests/conftest.py
"""
Shared fixtures for the scheduling core tests.

Every test gets its own SQLite file database so that concurrent sessions
(one per simulated worker) see each other's commits the way they would on a
real server. Time is frozen at ``FIXED_NOW`` (a Monday, 08:00 UTC).
"""

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Callable, List

import pytest
from sqlalchemy.orm import Session

from goreserve.core.scope_lock import InProcessScopeLock
from goreserve.database import build_engine, build_session_factory, create_all
from goreserve.domain.booking import Booking
from goreserve.events.publisher import EventPublisher
from goreserve.models import (
    BusinessModel,
    ServiceModel,
    StaffAvailabilityExceptionModel,
    StaffModel,
)
from goreserve.repositories.factory import RepositoryFactory
from goreserve.services.availability_cache import AvailabilityCache
from goreserve.services.booking_scheduler import BookingScheduler
from goreserve.services.cache_service import CacheService

FIXED_NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)  # Monday
NEXT_MONDAY = date(2030, 1, 14)
NEXT_TUESDAY = date(2030, 1, 15)
NEXT_SATURDAY = date(2030, 1, 19)
NEXT_SUNDAY = date(2030, 1, 20)

WEEKDAY_HOURS = {
    day: {"open": "09:00", "close": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}
BUSINESS_HOURS = {**WEEKDAY_HOURS, "saturday": {"open": "10:00", "close": "14:00"}}
AFTERNOON_HOURS = {day: {"open": "12:00", "close": "17:00"} for day in WEEKDAY_HOURS}


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class RecordingListener:
    def __init__(self) -> None:
        self.events: List[object] = []

    def __call__(self, event: object) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [type(event).__name__ for event in self.events]


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'goreserve-test.db'}")
    create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """
    One business (UTC, weekdays 09-17, Saturday 10-14, closed Sunday) with:

    - ``consult``: 60 min every 30 min, one customer at a time, no staff
    - ``group``: 60 min hourly class for up to 3 customers, no staff
    - ``haircut``: 30 min with a staff member, offered by Alice (09-17) and Bob (12-17)
    """
    business = BusinessModel(name="Studio North", timezone="UTC", working_hours=BUSINESS_HOURS)
    db.add(business)
    db.flush()

    alice = StaffModel(business_id=business.id, name="Alice", working_hours=WEEKDAY_HOURS)
    bob = StaffModel(business_id=business.id, name="Bob", working_hours=AFTERNOON_HOURS)
    consult = ServiceModel(
        business_id=business.id,
        name="Consultation",
        duration_minutes=60,
        slot_interval_minutes=30,
        price=100,
    )
    group = ServiceModel(
        business_id=business.id,
        name="Group class",
        duration_minutes=60,
        slot_interval_minutes=60,
        capacity_per_slot=3,
        price=20,
    )
    haircut = ServiceModel(
        business_id=business.id,
        name="Haircut",
        duration_minutes=30,
        slot_interval_minutes=30,
        requires_staff=True,
        price=40,
    )
    haircut.staff = [alice, bob]
    db.add_all([alice, bob, consult, group, haircut])
    db.commit()

    return SimpleNamespace(
        business_id=business.id,
        consult_id=consult.id,
        group_id=group.id,
        haircut_id=haircut.id,
        alice_id=alice.id,
        bob_id=bob.id,
    )


@pytest.fixture
def add_exception(db) -> Callable[..., None]:
    def _add(staff_id: str, day: date, kind: str, start=None, end=None) -> None:
        db.add(
            StaffAvailabilityExceptionModel(
                staff_id=staff_id, date=day, kind=kind, start_time=start, end_time=end
            )
        )
        db.commit()

    return _add


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def cache_service() -> CacheService:
    return CacheService(backend="memory")


@pytest.fixture
def availability_cache(cache_service) -> AvailabilityCache:
    return AvailabilityCache(cache_service)


@pytest.fixture
def scope_lock() -> InProcessScopeLock:
    return InProcessScopeLock(timeout=5)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def publisher(listener) -> EventPublisher:
    publisher = EventPublisher()
    publisher.register(listener)
    return publisher


@pytest.fixture
def scheduler_factory(session_factory, availability_cache, scope_lock, publisher, clock):
    """Build schedulers that share the lock and cache but own a session each."""
    sessions: List[Session] = []

    def factory(**overrides) -> BookingScheduler:
        session = session_factory()
        sessions.append(session)
        options = {
            "cache": availability_cache,
            "lock": scope_lock,
            "publisher": publisher,
            "clock": clock,
        }
        options.update(overrides)
        return BookingScheduler(
            RepositoryFactory.create_booking_repository(session),
            RepositoryFactory.create_catalog_repository(session),
            **options,
        )

    yield factory
    for session in sessions:
        session.close()


@pytest.fixture
def scheduler(scheduler_factory, seed) -> BookingScheduler:
    return scheduler_factory()


@pytest.fixture
def insert_booking(db, seed):
    """Persist a booking directly, bypassing the scheduler's checks."""
    repo = RepositoryFactory.create_booking_repository(db)

    def _insert(service_id, day, start, duration=60, staff_id=None, customer_id="walk-in"):
        booking = Booking.new(
            business_id=seed.business_id,
            service_id=service_id,
            customer_id=customer_id,
            staff_id=staff_id,
            booking_date=day,
            start_time=start,
            duration_minutes=duration,
            created_at=FIXED_NOW,
        )
        with repo.transaction():
            repo.add(booking)
        return booking

    return _insert
