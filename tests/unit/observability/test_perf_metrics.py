"""Tests for Prometheus metrics."""

from prometheus_client import CollectorRegistry

from enterprise_perf.observability.metrics import PerfMetrics


def _value(metrics: PerfMetrics, name: str, labels: dict[str, str]) -> float | None:
    return metrics.registry.get_sample_value(name, labels)


class TestPerfMetrics:
    """Tests for PerfMetrics."""

    def test_counters(self) -> None:
        metrics = PerfMetrics()

        metrics.cache_hit("clinic")
        metrics.cache_hit("clinic")
        metrics.cache_miss("list")
        metrics.cache_error("get")

        assert _value(metrics, "enterprise_cache_hits_total", {"category": "clinic"}) == 2
        assert _value(metrics, "enterprise_cache_misses_total", {"category": "list"}) == 1
        assert _value(metrics, "enterprise_cache_errors_total", {"operation": "get"}) == 1

    def test_batch_and_page_counts(self) -> None:
        metrics = PerfMetrics()

        metrics.batch_dispatched("clinic_by_id", 7)
        metrics.page_counted("assignment", estimated=True)
        metrics.page_counted("assignment", estimated=False)

        assert _value(metrics, "enterprise_batch_load_size_sum", {"loader": "clinic_by_id"}) == 7
        labels = {"resource": "assignment", "strategy": "estimate"}
        assert _value(metrics, "enterprise_page_counts_total", labels) == 1

    def test_timed_observes_duration(self) -> None:
        metrics = PerfMetrics()

        with metrics.timed("mget"):
            pass

        count = _value(
            metrics, "enterprise_cache_operation_duration_seconds_count", {"operation": "mget"}
        )
        assert count == 1

    def test_disabled_records_nothing(self) -> None:
        metrics = PerfMetrics(enabled=False)

        metrics.cache_hit("clinic")
        metrics.batch_dispatched("clinic_by_id", 3)
        with metrics.timed("get"):
            pass

        assert _value(metrics, "enterprise_cache_hits_total", {"category": "clinic"}) is None

    def test_separate_registries(self) -> None:
        first = PerfMetrics(CollectorRegistry())
        second = PerfMetrics(CollectorRegistry())

        first.cache_hit("clinic")

        assert _value(second, "enterprise_cache_hits_total", {"category": "clinic"}) is None

    def test_render(self) -> None:
        metrics = PerfMetrics()
        metrics.cache_miss("clinic")

        text = metrics.render().decode()

        assert "# TYPE enterprise_cache_misses_total counter" in text
        assert 'enterprise_cache_misses_total{category="clinic"} 1.0' in text
