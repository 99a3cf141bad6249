"""loadgate: load test an HTTP endpoint and gate on latency and error thresholds."""

from __future__ import annotations

__version__ = "0.1.0"

from loadgate.config import RunConfig, parse_duration  # noqa: E402
from loadgate.engine.runner import LoadTestRunner, RunResult  # noqa: E402
from loadgate.metrics.aggregator import MetricsAggregator  # noqa: E402
from loadgate.metrics.models import MetricSample, MetricSummary, MetricType, RunMetrics  # noqa: E402
from loadgate.report.summary import text_summary  # noqa: E402
from loadgate.thresholds import evaluate_thresholds, parse_threshold  # noqa: E402

__all__ = [
    "LoadTestRunner",
    "MetricSample",
    "MetricSummary",
    "MetricType",
    "MetricsAggregator",
    "RunConfig",
    "RunMetrics",
    "RunResult",
    "evaluate_thresholds",
    "parse_duration",
    "parse_threshold",
    "text_summary",
]
