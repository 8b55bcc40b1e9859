"""
Prometheus metrics collection for transferkit.

Provides counters for requests, retries and multipart parts, a histogram of
request durations, and a gauge mirroring circuit breaker state.
"""

from typing import Optional
import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    CollectorRegistry,
    REGISTRY,
)


class TransferMetrics:
    """
    Collects and exposes Prometheus metrics for transfers.

    Metrics include:
    - Request counters (by method and final status)
    - Retry counters (by reason: server_error, transport_error, ...)
    - Multipart part counters (by direction and outcome)
    - Request duration histogram
    - Circuit breaker state gauge

    Pass a dedicated CollectorRegistry when more than one TransferMetrics is
    created in a process; metric names are registered once per registry.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        enabled: bool = True,
    ):
        """
        Initialize metrics collector.

        Args:
            registry: Prometheus registry (defaults to global REGISTRY)
            enabled: Whether metrics collection is enabled
        """
        self.registry = registry or REGISTRY
        self.enabled = enabled

        if not self.enabled:
            return

        self.requests_total = Counter(
            "transferkit_requests_total",
            "Total number of HTTP requests issued",
            ["method", "status"],
            registry=self.registry,
        )

        self.retries_total = Counter(
            "transferkit_retries_total",
            "Total number of retry attempts",
            ["reason"],
            registry=self.registry,
        )

        self.parts_total = Counter(
            "transferkit_parts_total",
            "Total number of multipart parts completed",
            ["direction", "outcome"],
            registry=self.registry,
        )

        self.request_duration_seconds = Histogram(
            "transferkit_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self.registry,
        )

        self.circuit_breaker_state = Gauge(
            "transferkit_circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=open, 2=half-open)",
            ["breaker"],
            registry=self.registry,
        )

    def record_request(self, method: str, status: int | str) -> None:
        """
        Record a completed request.

        Args:
            method: HTTP method
            status: HTTP status code, or "error" for transport failures
        """
        if not self.enabled:
            return

        self.requests_total.labels(method=method, status=str(status)).inc()

    def record_retry(self, reason: str) -> None:
        """
        Record a retry attempt.

        Args:
            reason: Why the request is retried (server_error, transport_error, ...)
        """
        if not self.enabled:
            return

        self.retries_total.labels(reason=reason).inc()

    def record_part(self, direction: str, outcome: str) -> None:
        """
        Record a finished multipart part.

        Args:
            direction: "upload" or "download"
            outcome: "transferred", "skipped" (already present) or "changed"
        """
        if not self.enabled:
            return

        self.parts_total.labels(direction=direction, outcome=outcome).inc()

    @contextmanager
    def time_request(self, method: str):
        """
        Context manager to time request duration.

        Example:
            with metrics.time_request("PUT"):
                response = await client.send(request)
        """
        if not self.enabled:
            yield
            return

        start_time = time.monotonic()
        try:
            yield
        finally:
            self.request_duration_seconds.labels(method=method).observe(
                time.monotonic() - start_time
            )

    def set_circuit_breaker_state(self, breaker: str, state: str) -> None:
        """
        Set circuit breaker state.

        Args:
            breaker: Breaker name
            state: State of circuit breaker (closed, open, half_open)
        """
        if not self.enabled:
            return

        state_map = {
            "closed": 0,
            "open": 1,
            "half_open": 2,
        }

        self.circuit_breaker_state.labels(breaker=breaker).set(state_map.get(state, 0))
