# backend/goreserve/services/availability_cache.py
"""
Availability Cache

Short-TTL cache of computed slot lists, keyed by
``avail:slots:{business}:{service}:{date}:{staff|any}``.

The cache is never the source of truth. Every mutating path invalidates
the affected scope synchronously, and a global generation counter keeps a
slow reader from storing a slot list computed before an invalidation:

* ``invalidate`` bumps the generation, then deletes the matching keys
* ``store`` writes only if the generation still equals the one read before
  computing, and deletes its own key if the generation moved while writing
* an invalidation that fails part-way degrades the cache to always-miss
  until a full ``clear()`` goes through
"""

from dataclasses import dataclass
from datetime import date
import logging
from typing import List, Optional

from ..domain.catalog import Service, Slot
from ..monitoring.prometheus_metrics import prometheus_metrics
from .cache_service import CacheKeyBuilder, CacheService

logger = logging.getLogger(__name__)

ANY_STAFF = "any"
GENERATION_KEY = CacheKeyBuilder.build("generation", "availability")


@dataclass(frozen=True)
class CacheScope:
    """
    Invalidation scope. Set fields narrow the scope; unset fields match all.

    Supported combinations are business, service or staff, each optionally
    narrowed to a single date.
    """

    business_id: Optional[str] = None
    service_id: Optional[str] = None
    staff_id: Optional[str] = None
    day: Optional[date] = None

    @classmethod
    def business(cls, business_id: str, day: Optional[date] = None) -> "CacheScope":
        return cls(business_id=business_id, day=day)

    @classmethod
    def service(cls, service_id: str, day: Optional[date] = None) -> "CacheScope":
        return cls(service_id=service_id, day=day)

    @classmethod
    def staff(cls, staff_id: str, day: Optional[date] = None) -> "CacheScope":
        return cls(staff_id=staff_id, day=day)

    @property
    def kind(self) -> str:
        base = "business" if self.business_id else "service" if self.service_id else "staff"
        return f"{base}_date" if self.day else base

    def pattern(self) -> str:
        return CacheKeyBuilder.build(
            "availability",
            "slots",
            self.business_id or "*",
            self.service_id or "*",
            self.day.isoformat() if self.day else "*",
            self.staff_id or "*",
        )


class AvailabilityCache:
    """
    Slot-list cache over ``CacheService`` with generation-guarded stores.

    An invalidation that cannot complete marks the cache degraded: reads miss
    and stores are refused until a full ``clear()`` succeeds, so a lost
    generation bump or delete never leaves a booked slot on offer.
    """

    def __init__(self, cache_service: Optional[CacheService] = None, ttl_seconds: Optional[int] = None):
        self.cache_service = cache_service or CacheService()
        self.ttl_seconds = ttl_seconds or self.cache_service.default_ttl
        self._degraded = False

    @property
    def degraded(self) -> bool:
        return self._degraded

    @staticmethod
    def key_for(service: Service, day: date, staff_id: Optional[str] = None) -> str:
        return CacheKeyBuilder.build(
            "availability", "slots", service.business_id, service.id, day, staff_id or ANY_STAFF
        )

    def generation(self) -> int:
        """Token to pass to ``store`` for a slot list about to be computed."""
        try:
            return self.cache_service.get_counter(GENERATION_KEY)
        except Exception as e:
            logger.warning(f"Availability cache generation unavailable: {e}")
            return -1

    def get(self, service: Service, day: date, staff_id: Optional[str] = None) -> Optional[List[Slot]]:
        if self._degraded:
            prometheus_metrics.record_cache_lookup("degraded")
            return None
        cached = self.cache_service.get(self.key_for(service, day, staff_id))
        if cached is None:
            prometheus_metrics.record_cache_lookup("miss")
            return None
        prometheus_metrics.record_cache_lookup("hit")
        return [Slot.from_dict(item) for item in cached]

    def store(
        self,
        service: Service,
        day: date,
        staff_id: Optional[str],
        slots: List[Slot],
        generation: int,
    ) -> bool:
        """Cache ``slots`` unless an invalidation happened since ``generation`` was read."""
        if self._degraded and not self._recover():
            return False
        if generation < 0 or self.generation() != generation:
            prometheus_metrics.record_cache_lookup("stale_write")
            return False

        key = self.key_for(service, day, staff_id)
        stored = self.cache_service.set(key, [slot.to_dict() for slot in slots], ttl=self.ttl_seconds)
        if stored and self.generation() != generation:
            # An invalidation ran while we were writing
            self.cache_service.delete(key)
            prometheus_metrics.record_cache_lookup("stale_write")
            return False
        return stored

    def invalidate(self, scope: CacheScope) -> int:
        """
        Drop every cached slot list in ``scope``.

        Both the generation bump and the delete are attempted; if either
        fails the cache is marked degraded.

        Returns:
            Number of keys deleted
        """
        failed = False
        try:
            self.cache_service.incr(GENERATION_KEY)
        except Exception as e:
            logger.warning(f"Availability generation bump failed for {scope.kind}: {e}")
            failed = True

        try:
            count = self.cache_service.delete_pattern(scope.pattern(), strict=True)
        except Exception as e:
            logger.warning(f"Availability cache delete failed for {scope.pattern()}: {e}")
            failed = True
            count = 0

        if failed:
            self._degraded = True
            logger.error("availability_cache_degraded", extra={"pattern": scope.pattern()})

        prometheus_metrics.record_cache_invalidation(scope.kind)
        logger.debug(
            "availability_cache_invalidated",
            extra={"scope": scope.kind, "pattern": scope.pattern(), "deleted": count},
        )
        return count

    def clear(self) -> int:
        """Drop every cached slot list; leaves degraded mode once it succeeds."""
        self.cache_service.incr(GENERATION_KEY)
        count = self.cache_service.delete_pattern(
            CacheKeyBuilder.build("availability", "slots", "*"), strict=True
        )
        if self._degraded:
            logger.info("availability_cache_recovered")
        self._degraded = False
        return count

    def _recover(self) -> bool:
        try:
            self.clear()
        except Exception as e:
            logger.warning(f"Availability cache still degraded: {e}")
            return False
        return True
