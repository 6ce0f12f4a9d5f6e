"""
Prometheus metrics for the scheduling core.

Metrics live in a private registry so embedding applications can expose them
next to their own without name clashes.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "goreserve_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "goreserve_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "goreserve_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

scope_lock_total = Counter(
    "goreserve_scope_lock_total",
    "Scope lock operations by outcome",
    ["backend", "action", "outcome"],  # outcome: success | timeout | error | not_found
    registry=REGISTRY,
)

scope_lock_wait_seconds = Histogram(
    "goreserve_scope_lock_wait_seconds",
    "Time spent waiting for a scope lock",
    ["backend"],
    registry=REGISTRY,
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0),
)

availability_cache_total = Counter(
    "goreserve_availability_cache_total",
    "Availability cache lookups by result",
    ["result"],  # hit | miss | stale_write
    registry=REGISTRY,
)

availability_cache_invalidations_total = Counter(
    "goreserve_availability_cache_invalidations_total",
    "Availability cache invalidations by scope kind",
    ["scope"],
    registry=REGISTRY,
)

booking_conflicts_total = Counter(
    "goreserve_booking_conflicts_total",
    "Booking conflicts by the stage that detected them",
    ["stage"],  # optimistic | critical_section | retry_exhausted | lock_timeout
    registry=REGISTRY,
)

event_delivery_failures_total = Counter(
    "goreserve_event_delivery_failures_total",
    "Domain event listener failures",
    ["event_type"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingScheduler')
            operation: Operation/method name (e.g., 'create_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_scope_lock(backend: str, action: str, outcome: str) -> None:
        scope_lock_total.labels(backend=backend, action=action, outcome=outcome).inc()

    @staticmethod
    def observe_scope_lock_wait(backend: str, duration: float) -> None:
        scope_lock_wait_seconds.labels(backend=backend).observe(max(duration, 0.0))

    @staticmethod
    def record_cache_lookup(result: str) -> None:
        availability_cache_total.labels(result=result).inc()

    @staticmethod
    def record_cache_invalidation(scope: str) -> None:
        availability_cache_invalidations_total.labels(scope=scope).inc()

    @staticmethod
    def record_booking_conflict(stage: str) -> None:
        booking_conflicts_total.labels(stage=stage).inc()

    @staticmethod
    def record_event_failure(event_type: str) -> None:
        event_delivery_failures_total.labels(event_type=event_type).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
