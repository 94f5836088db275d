"""Logging and metrics."""

from enterprise_perf.observability.logging import LogContext, configure_logging
from enterprise_perf.observability.metrics import PerfMetrics

__all__ = ["LogContext", "PerfMetrics", "configure_logging"]
