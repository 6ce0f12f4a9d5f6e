from goreserve import dependencies
from goreserve.core.scope_lock import InProcessScopeLock
from goreserve.services.booking_scheduler import BookingScheduler
from goreserve.services.calendar_service import CalendarService


def test_collaborators_are_shared_between_sessions(db):
    dependencies.reset_singletons()
    try:
        first = dependencies.get_booking_scheduler(db)
        second = dependencies.get_booking_scheduler(db)

        assert isinstance(first, BookingScheduler)
        assert first is not second
        assert first.lock is second.lock
        assert first.cache is second.cache
        assert first.publisher is second.publisher
        assert isinstance(first.lock, InProcessScopeLock)

        calendar = dependencies.get_calendar_service(db)
        assert isinstance(calendar, CalendarService)
        assert calendar.cache is first.cache
    finally:
        dependencies.reset_singletons()
