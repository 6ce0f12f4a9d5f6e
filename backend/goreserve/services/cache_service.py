# backend/goreserve/services/cache_service.py
"""
Key/value cache with Redis and in-memory backends.

Redis calls go through a circuit breaker; when Redis cannot be reached at
construction time the service falls back to a process-local dictionary.
Values are JSON-serialized so both backends hold the same shapes.
"""

from datetime import date, datetime, time, timedelta
from enum import Enum
import fnmatch
import json
import logging
import threading
import time as time_module
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import redis
from redis import Redis
from redis.exceptions import RedisError

from ..core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling Redis after repeated failures.

    After ``failure_threshold`` consecutive errors the circuit opens and calls
    are skipped (returning None) for ``recovery_timeout`` seconds; the next
    call then tries Redis again and closes the circuit again on success.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: type[BaseException] = RedisError,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self._failures = 0
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._opened_at is None:
                return CircuitState.CLOSED
            if time_module.monotonic() - self._opened_at >= self.recovery_timeout:
                return CircuitState.HALF_OPEN
            return CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failures

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        if self.state == CircuitState.OPEN:
            logger.warning("Cache circuit open, skipping %s", getattr(func, "__name__", func))
            return None

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            if not self._record_failure():
                # Below the threshold the caller sees the error
                raise
            return None

        with self._lock:
            if self._opened_at is not None:
                logger.info("Cache circuit closed after a successful trial call")
            self._failures = 0
            self._opened_at = None
        return result

    def _record_failure(self) -> bool:
        """Count a failure; True when the circuit is (now) open."""
        with self._lock:
            self._failures += 1
            if self._failures >= self.failure_threshold:
                if self._opened_at is None:
                    logger.warning("Cache circuit opened after %s failures", self._failures)
                self._opened_at = time_module.monotonic()
                return True
            return False


class CacheKeyBuilder:
    """Standardized cache key generation."""

    PREFIXES = {
        "availability": "avail",
        "generation": "gen",
    }

    @staticmethod
    def build(*parts: Union[str, int, date, time]) -> str:
        """
        Build a cache key from parts.

        Examples:
            build('availability', 'slots', 'b1', date(2030, 1, 14)) -> 'avail:slots:b1:2030-01-14'
        """
        formatted_parts = []
        for part in parts:
            if isinstance(part, (date, datetime, time)):
                formatted_parts.append(part.isoformat())
            else:
                formatted_parts.append(str(part))

        if parts:
            first = parts[0]
            if isinstance(first, str) and first in CacheKeyBuilder.PREFIXES:
                formatted_parts[0] = CacheKeyBuilder.PREFIXES[first]

        return ":".join(formatted_parts)


class CacheService:
    """
    Cache primitives shared by the availability cache.

    ``backend="redis"`` connects eagerly and falls back to memory when the
    server does not answer a ping.
    """

    def __init__(
        self,
        backend: Optional[str] = None,
        redis_client: Optional[Redis] = None,
        default_ttl: Optional[int] = None,
    ):
        self.default_ttl = default_ttl or settings.availability_cache_ttl_seconds
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5, recovery_timeout=60, expected_exception=RedisError
        )

        # In-memory fallbacks
        self._memory_cache: Dict[str, Any] = {}
        self._memory_expiry: Dict[str, datetime] = {}
        self._memory_lock = threading.RLock()

        self.redis: Optional[Redis] = redis_client
        if self.redis is None and (backend or settings.cache_backend) == "redis":
            self._setup_redis_connection()

        self._stats: Dict[str, int] = self._initialize_stats()

    def _setup_redis_connection(self) -> None:
        try:
            self.redis = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_keepalive=True,
                socket_connect_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            self.redis.ping()
            logger.info("Connected to Redis")
        except (RedisError, ConnectionError) as e:
            logger.warning(f"Redis not available: {e}. Using in-memory fallback.")
            self.redis = None

    def _initialize_stats(self) -> Dict[str, int]:
        return {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
        }

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "memory"

    # Core Cache Operations

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache with circuit breaker protection."""
        redis_client = self.redis

        def _get_from_redis() -> Optional[Any]:
            assert redis_client is not None
            value = redis_client.get(key)
            if value is not None:
                return json.loads(value)
            return None

        try:
            if redis_client is not None:
                value = self.circuit_breaker.call(_get_from_redis)
            else:
                value = self._memory_get(key)

            if value is not None:
                self._stats["hits"] += 1
                return value
            self._stats["misses"] += 1
            return None
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            self._stats["errors"] += 1
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with circuit breaker protection."""
        redis_client = self.redis
        ttl = ttl or self.default_ttl
        serialized = json.dumps(value, default=str)

        def _set_in_redis() -> bool:
            assert redis_client is not None
            redis_client.setex(key, ttl, serialized)
            return True

        try:
            if redis_client is not None:
                stored = bool(self.circuit_breaker.call(_set_in_redis))
            else:
                with self._memory_lock:
                    self._memory_cache[key] = json.loads(serialized)
                    self._memory_expiry[key] = datetime.now() + timedelta(seconds=ttl)
                stored = True
            if stored:
                self._stats["sets"] += 1
            return stored
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

    def delete(self, key: str) -> bool:
        """Delete a key from cache with circuit breaker protection."""
        redis_client = self.redis

        def _delete_from_redis() -> bool:
            assert redis_client is not None
            return bool(redis_client.delete(key))

        try:
            if redis_client is not None:
                result = bool(self.circuit_breaker.call(_delete_from_redis))
            else:
                with self._memory_lock:
                    result = key in self._memory_cache
                    self._memory_cache.pop(key, None)
                    self._memory_expiry.pop(key, None)
            if result:
                self._stats["deletes"] += 1
            return result
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

    def delete_pattern(self, pattern: str, strict: bool = False) -> int:
        """
        Delete all keys matching a glob pattern.

        With ``strict`` a backend error is re-raised instead of reported as 0 deletions.
        """
        try:
            if self.redis is not None:
                count = self._delete_pattern_redis(pattern)
            else:
                count = self._delete_pattern_memory(pattern)

            self._stats["deletes"] += count
            logger.debug(f"Deleted {count} keys matching pattern: {pattern}")
            return count
        except Exception as e:
            logger.error(f"Cache delete pattern error: {e}")
            self._stats["errors"] += 1
            if strict:
                raise
            return 0

    def incr(self, key: str) -> int:
        """Atomically increment an integer counter and return the new value."""
        if self.redis is not None:
            return int(self.redis.incr(key))
        with self._memory_lock:
            value = int(self._memory_cache.get(key, 0)) + 1
            self._memory_cache[key] = value
            self._memory_expiry.pop(key, None)
            return value

    def get_counter(self, key: str) -> int:
        if self.redis is not None:
            value = self.redis.get(key)
            return int(value) if value is not None else 0
        with self._memory_lock:
            return int(self._memory_cache.get(key, 0))

    def _delete_pattern_redis(self, pattern: str) -> int:
        """Delete pattern from Redis using SCAN."""
        count = 0
        redis_client = self.redis
        if redis_client is None:
            return 0
        for key in redis_client.scan_iter(match=pattern):
            if redis_client.delete(key):
                count += 1
        return count

    def _delete_pattern_memory(self, pattern: str) -> int:
        with self._memory_lock:
            keys_to_delete = [k for k in self._memory_cache if fnmatch.fnmatchcase(k, pattern)]
            for key in keys_to_delete:
                self._memory_cache.pop(key, None)
                self._memory_expiry.pop(key, None)
        return len(keys_to_delete)

    def _memory_get(self, key: str) -> Optional[Any]:
        with self._memory_lock:
            if key not in self._memory_cache:
                return None
            expires_at = self._memory_expiry.get(key)
            if expires_at is None or datetime.now() < expires_at:
                return self._memory_cache[key]
            # Expired
            self._memory_cache.pop(key, None)
            self._memory_expiry.pop(key, None)
            return None

    # Monitoring

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics including circuit breaker state."""
        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total_requests * 100) if total_requests > 0 else 0
        return {
            **self._stats,
            "backend": self.backend,
            "hit_rate": f"{hit_rate:.2f}%",
            "total_requests": total_requests,
            "circuit_breaker": {
                "state": self.circuit_breaker.state.value,
                "failure_count": self.circuit_breaker.failure_count,
                "threshold": self.circuit_breaker.failure_threshold,
            },
        }

    def reset_stats(self) -> None:
        self._stats = self._initialize_stats()
