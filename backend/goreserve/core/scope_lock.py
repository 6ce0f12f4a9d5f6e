"""
Per-scope mutual exclusion for the booking critical section.

A scope is a staff member on a date, or a service capacity pool on a date.
Single-node deployments use an in-process lock registry; multi-node
deployments use a Redis ``SET NX EX`` lock. When Redis cannot be reached the
Redis lock degrades to the in-process registry and the database unique index
remains the last line of defence.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional
import uuid

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.05

# Deletes the key only while it still holds our token
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class ScopeLockTimeout(Exception):
    """Raised when a scope lock could not be acquired in time."""

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.1f}s waiting for lock {key}")


class ScopeLock(ABC):
    """Context-managed lock keyed by scope."""

    backend = "abstract"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.scope_lock_timeout_seconds

    @abstractmethod
    def _acquire(self, key: str, timeout: float) -> Optional[str]:
        """Return a release token, or None on timeout."""

    @abstractmethod
    def _release(self, key: str, token: str) -> None:
        pass

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        started = time.monotonic()
        token = self._acquire(key, self.timeout)
        prometheus_metrics.observe_scope_lock_wait(self.backend, time.monotonic() - started)
        if token is None:
            prometheus_metrics.record_scope_lock(self.backend, "acquire", "timeout")
            logger.warning(
                "scope_lock_timeout",
                extra={"lock_key": key, "timeout": self.timeout, "backend": self.backend},
            )
            raise ScopeLockTimeout(key, self.timeout)
        prometheus_metrics.record_scope_lock(self.backend, "acquire", "success")
        try:
            yield
        finally:
            self._release(key, token)


class InProcessScopeLock(ScopeLock):
    """
    Registry of ``threading.Lock`` objects, one per scope key.

    Entries are reference counted over holders and waiters and dropped once
    nobody holds or waits on the key.
    """

    backend = "memory"

    def __init__(self, timeout: Optional[float] = None):
        super().__init__(timeout)
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, int] = {}
        self._registry_lock = threading.Lock()

    def active_keys(self) -> int:
        """Number of scope keys currently held or waited on."""
        with self._registry_lock:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._refs[key] = self._refs.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._registry_lock:
            remaining = self._refs[key] - 1
            if remaining:
                self._refs[key] = remaining
            else:
                del self._refs[key]
                del self._locks[key]

    def _acquire(self, key: str, timeout: float) -> Optional[str]:
        if self._checkout(key).acquire(timeout=timeout):
            return key
        self._checkin(key)
        return None

    def _release(self, key: str, token: str) -> None:
        with self._registry_lock:
            lock = self._locks[key]
        lock.release()
        self._checkin(key)
        prometheus_metrics.record_scope_lock(self.backend, "release", "success")


class RedisScopeLock(ScopeLock):
    """Distributed scope lock using ``SET NX EX`` with a per-holder token."""

    backend = "redis"

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        timeout: Optional[float] = None,
        ttl_seconds: Optional[int] = None,
        namespace: Optional[str] = None,
    ):
        super().__init__(timeout)
        self.ttl_seconds = ttl_seconds or settings.scope_lock_ttl_seconds
        self.namespace = namespace or settings.lock_namespace
        self._redis = redis_client
        self._fallback = InProcessScopeLock(timeout=self.timeout)
        self._fallback_tokens: Dict[str, str] = {}
        self._fallback_guard = threading.Lock()

    def _get_redis(self) -> Optional[Redis]:
        if self._redis is not None:
            return self._redis
        try:
            client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
            client.ping()
        except Exception as exc:
            logger.warning("scope_lock_redis_unavailable: %s", exc)
            return None
        self._redis = client
        return client

    def _namespaced_key(self, key: str) -> str:
        return f"{self.namespace}:lock:{key}"

    def _acquire(self, key: str, timeout: float) -> Optional[str]:
        client = self._get_redis()
        if client is None:
            return self._acquire_fallback(key, timeout)

        token = uuid.uuid4().hex
        deadline = time.monotonic() + timeout
        redis_key = self._namespaced_key(key)
        while True:
            try:
                if client.set(redis_key, token, nx=True, ex=self.ttl_seconds):
                    return token
            except Exception as exc:
                prometheus_metrics.record_scope_lock(self.backend, "acquire", "error")
                logger.warning(
                    "scope_lock_redis_failed",
                    extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                )
                return self._acquire_fallback(key, max(deadline - time.monotonic(), 0.0))
            if time.monotonic() >= deadline:
                return None
            time.sleep(_POLL_INTERVAL_SECONDS)

    def _acquire_fallback(self, key: str, timeout: float) -> Optional[str]:
        token = self._fallback._acquire(key, timeout)
        if token is None:
            return None
        fallback_token = f"local:{uuid.uuid4().hex}"
        with self._fallback_guard:
            self._fallback_tokens[fallback_token] = key
        return fallback_token

    def _release(self, key: str, token: str) -> None:
        with self._fallback_guard:
            fallback_key = self._fallback_tokens.pop(token, None)
        if fallback_key is not None:
            self._fallback._release(fallback_key, fallback_key)
            return

        client = self._get_redis()
        if client is None:
            prometheus_metrics.record_scope_lock(self.backend, "release", "error")
            return
        try:
            deleted = client.eval(_RELEASE_SCRIPT, 1, self._namespaced_key(key), token)
            outcome = "success" if deleted else "not_found"
            prometheus_metrics.record_scope_lock(self.backend, "release", outcome)
        except Exception as exc:
            prometheus_metrics.record_scope_lock(self.backend, "release", "error")
            logger.warning(
                "scope_lock_release_failed",
                extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
            )


def build_scope_lock(backend: Optional[str] = None) -> ScopeLock:
    """Scope lock for the configured backend."""
    if (backend or settings.lock_backend) == "redis":
        return RedisScopeLock()
    return InProcessScopeLock()
