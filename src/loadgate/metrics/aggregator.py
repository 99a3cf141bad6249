"""Thread-safe streaming aggregation of metric samples.

Each virtual user holds a reference to the same ``MetricsAggregator``
and appends samples as they are produced. Running statistics are kept
per metric; no raw samples are stored, and trend percentiles come from
an HDR histogram.
"""

from __future__ import annotations

import threading

from loadgate._internal.errors import MetricsError
from loadgate._internal.logging import get_logger
from loadgate.metrics.histogram import HdrHistogramWrapper
from loadgate.metrics.models import (
    BUILTIN_METRICS,
    MetricSample,
    MetricSummary,
    MetricType,
    RunMetrics,
)

logger = get_logger("metrics.aggregator")


class _Series:
    """Mutable running statistics for a single metric."""

    __slots__ = ("count", "histogram", "last_value", "maximum", "metric_type", "minimum", "nonzero", "total")

    def __init__(self, metric_type: MetricType) -> None:
        self.metric_type = metric_type
        self.count = 0
        self.total = 0.0
        self.minimum = 0.0
        self.maximum = 0.0
        self.nonzero = 0
        self.last_value = 0.0
        self.histogram = HdrHistogramWrapper() if metric_type is MetricType.TREND else None

    def add(self, value: float) -> None:
        if self.count == 0:
            self.minimum = value
            self.maximum = value
        else:
            self.minimum = min(self.minimum, value)
            self.maximum = max(self.maximum, value)
        self.count += 1
        self.total += value
        self.last_value = value
        if value != 0:
            self.nonzero += 1
        if self.histogram is not None:
            self.histogram.record_latency_ms(value)

    def summarize(self, name: str, elapsed_seconds: float) -> MetricSummary:
        return MetricSummary(
            name=name,
            metric_type=self.metric_type,
            count=self.count,
            total=self.total,
            minimum=self.minimum,
            maximum=self.maximum,
            nonzero=self.nonzero,
            last_value=self.last_value,
            elapsed_seconds=elapsed_seconds,
            histogram=self.histogram,
        )


class MetricsAggregator:
    """Collects named samples from all virtual users.

    Every mutation happens under a ``threading.Lock``, so the aggregator
    is safe to share between asyncio tasks and threads alike. Reading the
    final figures goes through :meth:`finalize`, after which further
    samples are rejected.
    """

    def __init__(self, *, builtins: bool = True) -> None:
        """Initialize the aggregator.

        Args:
            builtins: Pre-declare the built-in HTTP and iteration metrics.
        """
        self._series: dict[str, _Series] = {}
        self._lock = threading.Lock()
        self._finalized = False
        if builtins:
            for name, metric_type in BUILTIN_METRICS.items():
                self.declare(name, metric_type)

    def declare(self, name: str, metric_type: MetricType) -> None:
        """Register a metric so samples can be added to it.

        Re-declaring a metric with the same type is a no-op.

        Args:
            name: Metric name.
            metric_type: How the metric's samples are accumulated.

        Raises:
            MetricsError: If *name* already exists with a different type.
        """
        with self._lock:
            existing = self._series.get(name)
            if existing is not None:
                if existing.metric_type is not metric_type:
                    msg = (
                        f"metric {name!r} already declared as "
                        f"{existing.metric_type.value}, not {metric_type.value}"
                    )
                    raise MetricsError(msg)
                return
            self._series[name] = _Series(metric_type)
        logger.debug("Declared %s metric %s", metric_type.value, name)

    def add(self, sample: MetricSample) -> None:
        """Fold a sample into its metric's running statistics.

        Args:
            sample: The observation to record.

        Raises:
            MetricsError: If the metric is undeclared or the aggregator
                has been finalized.
        """
        with self._lock:
            if self._finalized:
                msg = f"cannot add sample for {sample.name!r}: aggregator is finalized"
                raise MetricsError(msg)
            series = self._series.get(sample.name)
            if series is None:
                msg = f"unknown metric {sample.name!r}"
                raise MetricsError(msg)
            series.add(sample.value)

    def add_value(self, name: str, value: float | bool) -> None:
        """Record *value* for metric *name*. Booleans become 1.0 / 0.0."""
        self.add(MetricSample(name=name, value=float(value)))

    def count(self, name: str) -> int:
        """Return the current sample count for *name* (0 if undeclared)."""
        with self._lock:
            series = self._series.get(name)
            return series.count if series is not None else 0

    def total(self, name: str) -> float:
        """Return the current sum of samples for *name* (0.0 if undeclared)."""
        with self._lock:
            series = self._series.get(name)
            return series.total if series is not None else 0.0

    def metric_types(self) -> dict[str, MetricType]:
        """Return the declared metrics and their types."""
        with self._lock:
            return {name: series.metric_type for name, series in self._series.items()}

    @property
    def finalized(self) -> bool:
        """Return True once :meth:`finalize` has been called."""
        return self._finalized

    def finalize(self, elapsed_seconds: float) -> RunMetrics:
        """Stop accepting samples and return the finalized metrics.

        Args:
            elapsed_seconds: Wall-clock duration of the run, used for
                per-second counter rates.

        Returns:
            Read-only mapping of metric name to summary.
        """
        with self._lock:
            self._finalized = True
            summaries = {
                name: series.summarize(name, elapsed_seconds)
                for name, series in self._series.items()
            }
        logger.debug("Aggregator finalized with %d metrics", len(summaries))
        return RunMetrics(summaries, elapsed_seconds)
