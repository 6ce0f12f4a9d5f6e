"""Event publisher - delivers domain events to in-process listeners."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Sequence

from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

MAX_RETAINED_FAILURES = 1000


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


EventListener = Callable[[Any], None]


@dataclass(frozen=True)
class DeliveryFailure:
    """A listener that raised while handling an event."""

    event_type: str
    listener: str
    error: str
    error_type: str
    payload: Dict[str, Any]
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventPublisher:
    """
    Publishes domain events to registered listeners.

    Delivery is fire-and-forget: a failing listener never fails the
    operation that emitted the event. Failures are logged, counted and kept
    on ``failures`` for the embedding application to drain; only the most
    recent ``max_failures`` are retained.
    """

    def __init__(self, max_failures: Optional[int] = None) -> None:
        self._listeners: List[EventListener] = []
        self._failures: Deque[DeliveryFailure] = deque(maxlen=max_failures or MAX_RETAINED_FAILURES)
        self._lock = threading.Lock()

    def register(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unregister(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners = [existing for existing in self._listeners if existing != listener]

    def listeners(self) -> Sequence[EventListener]:
        with self._lock:
            return tuple(self._listeners)

    @property
    def failures(self) -> List[DeliveryFailure]:
        with self._lock:
            return list(self._failures)

    def drain_failures(self) -> List[DeliveryFailure]:
        with self._lock:
            drained = list(self._failures)
            self._failures.clear()
        return drained

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = event.to_dict()
        for listener in self.listeners():
            try:
                listener(event)
            except Exception as exc:
                logger.exception(
                    "Booking event listener error",
                    extra={"event_type": event_type, "listener": repr(listener)},
                )
                prometheus_metrics.record_event_failure(event_type)
                with self._lock:
                    self._failures.append(
                        DeliveryFailure(
                            event_type=event_type,
                            listener=getattr(listener, "__qualname__", repr(listener)),
                            error=str(exc),
                            error_type=type(exc).__name__,
                            payload=payload,
                        )
                    )
        logger.info("booking_event=%s booking_id=%s", event_type, payload.get("booking_id"))

    def publish_all(self, events: Sequence[Event]) -> None:
        for event in events:
            self.publish(event)
