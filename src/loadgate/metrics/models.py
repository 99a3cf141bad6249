"""Metric sample and summary dataclasses for loadgate."""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from loadgate._internal.errors import ConfigError

if TYPE_CHECKING:
    from loadgate.metrics.histogram import HdrHistogramWrapper

__all__ = [
    "BUILTIN_METRICS",
    "MetricSample",
    "MetricSummary",
    "MetricType",
    "RunMetrics",
    "supported_aggregations",
]


class MetricType(Enum):
    """How samples of a metric are accumulated."""

    COUNTER = "counter"
    GAUGE = "gauge"
    RATE = "rate"
    TREND = "trend"


# Aggregations a threshold may reference, per metric type. ``p`` is the
# percentile family, written ``p(N)`` in expressions.
_AGGREGATIONS: dict[MetricType, frozenset[str]] = {
    MetricType.COUNTER: frozenset({"count", "rate"}),
    MetricType.GAUGE: frozenset({"value", "min", "max"}),
    MetricType.RATE: frozenset({"rate", "passes", "fails"}),
    MetricType.TREND: frozenset({"count", "avg", "min", "max", "med", "p"}),
}

BUILTIN_METRICS: dict[str, MetricType] = {
    "http_reqs": MetricType.COUNTER,
    "http_req_duration": MetricType.TREND,
    "http_req_failed": MetricType.RATE,
    "data_received": MetricType.COUNTER,
    "iterations": MetricType.COUNTER,
    "iteration_duration": MetricType.TREND,
    "checks": MetricType.RATE,
    "vus": MetricType.GAUGE,
    "request_duration": MetricType.TREND,
    "errors": MetricType.RATE,
}


@dataclass(frozen=True)
class MetricSample:
    """A single observation of a named metric.

    Boolean outcomes (Rate metrics) are stored as ``1.0`` / ``0.0``.

    Attributes:
        name: Metric the sample belongs to.
        value: Observed value (milliseconds for trends).
        timestamp: Monotonic time at which the sample was taken.
    """

    name: str
    value: float
    timestamp: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class MetricSummary:
    """Finalized statistics for one metric.

    Attributes:
        name: Metric name.
        metric_type: Accumulation type of the metric.
        count: Number of samples recorded.
        total: Sum of all sample values.
        minimum: Smallest sample value (0.0 when empty).
        maximum: Largest sample value (0.0 when empty).
        nonzero: Number of samples with a non-zero value.
        last_value: Most recent sample value (gauges).
        elapsed_seconds: Run duration used for per-second rates.
        histogram: Latency digest for trend metrics, None otherwise.
    """

    name: str
    metric_type: MetricType
    count: int = 0
    total: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    nonzero: int = 0
    last_value: float = 0.0
    elapsed_seconds: float = 0.0
    histogram: HdrHistogramWrapper | None = field(default=None, compare=False, repr=False)

    @property
    def avg(self) -> float:
        """Return the arithmetic mean, or 0.0 when empty."""
        return self.total / self.count if self.count > 0 else 0.0

    @property
    def rate(self) -> float:
        """Return the metric's rate.

        For Rate metrics this is the fraction of non-zero samples; for
        Counters it is the sum per second of run time. Both are 0.0 when
        there is nothing to divide by.
        """
        if self.metric_type is MetricType.COUNTER:
            return self.total / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0
        return self.nonzero / self.count if self.count > 0 else 0.0

    @property
    def passes(self) -> int:
        """Return the number of non-zero samples."""
        return self.nonzero

    @property
    def fails(self) -> int:
        """Return the number of zero samples."""
        return self.count - self.nonzero

    def percentile(self, percentile: float) -> float:
        """Return the value at *percentile*, clamped to the observed range.

        The digest quantizes values, so the raw answer can land slightly
        outside ``[minimum, maximum]``. Clamping keeps ``p50 <= p99 <= max``.

        Args:
            percentile: Percentile between 0 and 100.

        Returns:
            The estimated value in milliseconds, or 0.0 when empty.
        """
        if self.histogram is None or self.count == 0:
            return 0.0
        estimate = self.histogram.get_percentile(percentile)
        return max(self.minimum, min(estimate, self.maximum))

    def supports(self, aggregation: str) -> bool:
        """Return True if *aggregation* is defined for this metric's type."""
        return aggregation in _AGGREGATIONS[self.metric_type]

    def value_of(self, aggregation: str, argument: float | None = None) -> float:
        """Return a derived value by aggregation name.

        Args:
            aggregation: One of ``count``, ``rate``, ``value``, ``avg``,
                ``min``, ``max``, ``med``, ``passes``, ``fails`` or ``p``.
            argument: Percentile for the ``p`` aggregation.

        Returns:
            The derived value.

        Raises:
            ConfigError: If the aggregation is not valid for this metric type.
        """
        if not self.supports(aggregation):
            msg = (
                f"aggregation {aggregation!r} is not supported by "
                f"{self.metric_type.value} metric {self.name!r}"
            )
            raise ConfigError(msg)

        if aggregation == "p":
            return self.percentile(argument if argument is not None else 50.0)

        # Counters report their sum as the count, trends their sample count.
        count = self.total if self.metric_type is MetricType.COUNTER else float(self.count)
        values: dict[str, float] = {
            "count": count,
            "rate": self.rate,
            "value": self.last_value,
            "avg": self.avg,
            "min": self.minimum,
            "max": self.maximum,
            "med": self.percentile(50.0),
            "passes": float(self.passes),
            "fails": float(self.fails),
        }
        return values[aggregation]

    def to_dict(self) -> dict[str, float | int | str]:
        """Return the metric's derived values as a JSON-ready dict."""
        data: dict[str, float | int | str] = {"type": self.metric_type.value}
        if self.metric_type is MetricType.COUNTER:
            data.update(count=self.total, rate=self.rate)
        elif self.metric_type is MetricType.GAUGE:
            data.update(value=self.last_value, min=self.minimum, max=self.maximum)
        elif self.metric_type is MetricType.RATE:
            data.update(rate=self.rate, passes=self.passes, fails=self.fails)
        else:
            data.update(
                count=self.count,
                avg=self.avg,
                min=self.minimum,
                max=self.maximum,
                med=self.percentile(50.0),
            )
            for pct in (90.0, 95.0, 99.0):
                data[f"p({pct:g})"] = self.percentile(pct)
        return data


class RunMetrics(Mapping[str, MetricSummary]):
    """Read-only mapping from metric name to its finalized summary.

    ``get(name)`` returns None for a metric that was never declared, so
    callers handle the absent case explicitly.

    Attributes:
        elapsed_seconds: Duration the metrics were collected over.
    """

    def __init__(self, summaries: Mapping[str, MetricSummary], elapsed_seconds: float) -> None:
        self._summaries = dict(summaries)
        self.elapsed_seconds = elapsed_seconds

    def __getitem__(self, name: str) -> MetricSummary:
        return self._summaries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._summaries)

    def __len__(self) -> int:
        return len(self._summaries)

    def __repr__(self) -> str:
        return f"RunMetrics({sorted(self._summaries)!r}, elapsed_seconds={self.elapsed_seconds})"


def supported_aggregations(metric_type: MetricType) -> frozenset[str]:
    """Return the threshold aggregations defined for *metric_type*."""
    return _AGGREGATIONS[metric_type]
