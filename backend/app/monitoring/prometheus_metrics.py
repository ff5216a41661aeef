"""
Prometheus metrics module for the reservation engine.

This module provides Prometheus-compatible metrics by leveraging existing
@measure_operation performance data, plus domain counters for slot locks,
conflict checks and reservation outcomes.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Slot locks
slot_lock_operations_total = Counter(
    "slot_lock_operations_total",
    "Advisory slot lock operations by outcome",
    ["operation", "outcome"],  # acquire|renew|release|sweep x success|locked|error
    registry=REGISTRY,
)

# Conflict detection
reservation_conflict_checks_total = Counter(
    "reservation_conflict_checks_total",
    "Conflict checks by outcome",
    ["outcome"],  # clear | conflict
    registry=REGISTRY,
)

reservation_conflicts_total = Counter(
    "reservation_conflicts_total",
    "Individual conflicts reported, by type",
    ["conflict_type"],
    registry=REGISTRY,
)

# Reservation lifecycle
reservations_created_total = Counter(
    "reservations_created_total",
    "Reservations committed",
    ["source", "status"],
    registry=REGISTRY,
)

reservation_creation_duration_seconds = Histogram(
    "reservation_creation_duration_seconds",
    "End-to-end reservation creation duration in seconds",
    ["outcome"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

reservations_cancelled_total = Counter(
    "reservations_cancelled_total",
    "Reservations cancelled",
    registry=REGISTRY,
)

tenant_reservation_usage_total = Counter(
    "tenant_reservation_usage_total",
    "Per-tenant booking usage counter",
    ["tenant_id"],
    registry=REGISTRY,
)


# Scrapes within this window reuse the last rendered payload
METRICS_CACHE_TTL_SECONDS = 1.0


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = METRICS_CACHE_TTL_SECONDS

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
            service: Service name (e.g., 'ReservationCreator')
            operation: Operation/method name (e.g., 'create_reservation')
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
        PrometheusMetrics._invalidate_cache()

    # Domain helpers
    @staticmethod
    def record_slot_lock(operation: str, outcome: str) -> None:
        """Count a slot lock operation (acquire/renew/release/sweep)."""
        slot_lock_operations_total.labels(operation=operation, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_conflict_check(outcome: str, conflict_types: Optional[list[str]] = None) -> None:
        """Count a conflict check and each conflict it reported."""
        reservation_conflict_checks_total.labels(outcome=outcome).inc()
        for conflict_type in conflict_types or []:
            reservation_conflicts_total.labels(conflict_type=conflict_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_reservation_created(source: str, status: str) -> None:
        reservations_created_total.labels(source=source, status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_reservation_creation(duration: float, outcome: str) -> None:
        reservation_creation_duration_seconds.labels(outcome=outcome).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_reservations_cancelled() -> None:
        reservations_cancelled_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_tenant_usage(tenant_id: str) -> None:
        """Increment the per-tenant booking usage counter."""
        tenant_reservation_usage_total.labels(tenant_id=tenant_id).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        ttl = PrometheusMetrics._cache_ttl_seconds

        if payload is not None and ts is not None and (now - ts) <= ttl:
            return payload

        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts

            if payload is None or ts is None or (now - ts) > ttl:
                PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
                PrometheusMetrics._cache_ts = monotonic()
                payload = PrometheusMetrics._cache_payload

        return cast(bytes, payload)

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
