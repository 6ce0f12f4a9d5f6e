# backend/goreserve/dependencies.py
"""
Factory functions for the scheduling services.

Process-wide collaborators (availability cache, scope lock, event publisher)
are built once from settings; services and repositories are built per
database session.
"""

from functools import lru_cache
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .core.scope_lock import ScopeLock, build_scope_lock
from .events.publisher import EventPublisher
from .repositories.factory import RepositoryFactory
from .services.availability_cache import AvailabilityCache
from .services.booking_scheduler import BookingScheduler
from .services.cache_service import CacheService
from .services.calendar_service import CalendarService
from .services.cancellation_policy import CancellationPolicyEngine

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_availability_cache() -> AvailabilityCache:
    """Get singleton availability cache."""
    return AvailabilityCache(CacheService())


@lru_cache(maxsize=1)
def get_scope_lock() -> ScopeLock:
    """Get singleton scope lock for the configured backend."""
    lock = build_scope_lock()
    logger.info("Scope lock backend: %s", lock.backend)
    return lock


@lru_cache(maxsize=1)
def get_event_publisher() -> EventPublisher:
    """Get singleton event publisher; listeners register on it at startup."""
    return EventPublisher()


def get_booking_scheduler(
    db: Session, policy: Optional[CancellationPolicyEngine] = None
) -> BookingScheduler:
    """
    Get a BookingScheduler bound to ``db``.

    Args:
        db: Database session owned by the caller
        policy: Refund policy override, defaults to the configured tiers

    Returns:
        BookingScheduler sharing the process-wide cache, lock and publisher
    """
    return BookingScheduler(
        RepositoryFactory.create_booking_repository(db),
        RepositoryFactory.create_catalog_repository(db),
        cache=get_availability_cache(),
        lock=get_scope_lock(),
        publisher=get_event_publisher(),
        policy=policy,
    )


def get_calendar_service(db: Session) -> CalendarService:
    return CalendarService(
        RepositoryFactory.create_booking_repository(db),
        RepositoryFactory.create_catalog_repository(db),
        cache=get_availability_cache(),
    )


def reset_singletons() -> None:
    """Drop the cached collaborators so the next call rebuilds them from settings."""
    get_availability_cache.cache_clear()
    get_scope_lock.cache_clear()
    get_event_publisher.cache_clear()
