"""Prometheus metrics for the performance layer.

Provides metrics collection for:
- Cache metrics (hits, misses, errors, operation latency)
- Batch loader metrics (batch sizes, dispatch count)
- Pagination metrics (estimated vs exact counts)

Metrics are registered on the CollectorRegistry handed to the registry,
never on the process-wide default, so every PerformanceContext owns its
own set.

Usage:
    metrics = PerfMetrics(CollectorRegistry())
    metrics.cache_hit("clinic")
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)


class PerfMetrics:
    """Metric families for cache, batch loading and pagination."""

    def __init__(self, registry: CollectorRegistry | None = None, enabled: bool = True):
        self.enabled = enabled
        self.registry = registry or CollectorRegistry()

        # Cache metrics
        self.cache_hits_total = Counter(
            "enterprise_cache_hits_total",
            "Cache hits",
            ["category"],
            registry=self.registry,
        )
        self.cache_misses_total = Counter(
            "enterprise_cache_misses_total",
            "Cache misses",
            ["category"],
            registry=self.registry,
        )
        self.cache_errors_total = Counter(
            "enterprise_cache_errors_total",
            "Cache backend errors recovered as misses",
            ["operation"],
            registry=self.registry,
        )
        self.cache_operation_duration_seconds = Histogram(
            "enterprise_cache_operation_duration_seconds",
            "Cache operation latency in seconds",
            ["operation"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1),
            registry=self.registry,
        )

        # Batch loader metrics
        self.batch_size = Histogram(
            "enterprise_batch_load_size",
            "Distinct keys per batch dispatch",
            ["loader"],
            buckets=(1, 2, 5, 10, 25, 50, 100),
            registry=self.registry,
        )

        # Pagination metrics
        self.page_counts_total = Counter(
            "enterprise_page_counts_total",
            "Offset page totals by count strategy",
            ["resource", "strategy"],
            registry=self.registry,
        )

    def cache_hit(self, category: str) -> None:
        if self.enabled:
            self.cache_hits_total.labels(category=category).inc()

    def cache_miss(self, category: str) -> None:
        if self.enabled:
            self.cache_misses_total.labels(category=category).inc()

    def cache_error(self, operation: str) -> None:
        if self.enabled:
            self.cache_errors_total.labels(operation=operation).inc()

    def batch_dispatched(self, loader: str, size: int) -> None:
        if self.enabled:
            self.batch_size.labels(loader=loader).observe(size)

    def page_counted(self, resource: str, estimated: bool) -> None:
        if self.enabled:
            strategy = "estimate" if estimated else "exact"
            self.page_counts_total.labels(resource=resource, strategy=strategy).inc()

    @contextmanager
    def timed(self, operation: str) -> Iterator[None]:
        """Observe the duration of a cache operation."""
        start = time.perf_counter()
        try:
            yield
        finally:
            if self.enabled:
                self.cache_operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start
                )

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)
