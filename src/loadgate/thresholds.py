"""Pass/fail thresholds over finalized run metrics.

A threshold pairs a metric name with an expression such as ``p(99)<50``
or ``rate<0.01``. Thresholds are parsed when the run is configured, so a
typo is rejected before any request is sent, and evaluated exactly once
after the run has finished.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loadgate._internal.errors import ConfigError
from loadgate._internal.logging import get_logger
from loadgate.metrics.models import supported_aggregations

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from loadgate.metrics.models import MetricSummary, MetricType

logger = get_logger("thresholds")

DEFAULT_THRESHOLDS: dict[str, list[str]] = {
    "http_req_duration": ["p(99)<50"],
    "http_req_failed": ["rate<0.01"],
    "errors": ["rate<0.01"],
}

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_AGGREGATIONS = frozenset(
    {"count", "rate", "value", "avg", "min", "max", "med", "passes", "fails", "p"}
)

_EXPRESSION_RE = re.compile(
    r"""
    ^\s*
    (?P<aggregation>[a-z]+)
    (?:\(\s*(?P<argument>\d+(?:\.\d+)?)\s*\))?
    \s*(?P<operator><=|>=|==|!=|<|>)\s*
    (?P<bound>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)
    \s*$
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Threshold:
    """A parsed threshold expression bound to a metric.

    Attributes:
        metric: Name of the metric the threshold applies to.
        expression: The expression as written, e.g. ``"p(99)<50"``.
        aggregation: Derived value to compare (``p`` for percentiles).
        argument: Percentile for the ``p`` aggregation, None otherwise.
        operator: Comparison operator symbol.
        bound: Right-hand side of the comparison.
    """

    metric: str
    expression: str
    aggregation: str
    argument: float | None
    operator: str
    bound: float

    def check(self, observed: float) -> bool:
        """Return True if ``observed <operator> bound`` holds."""
        return _OPERATORS[self.operator](observed, self.bound)

    def __str__(self) -> str:
        return f"{self.metric}: {self.expression}"


@dataclass(frozen=True)
class ThresholdResult:
    """Outcome of evaluating one threshold.

    Attributes:
        threshold: The threshold that was evaluated.
        observed: The metric value the bound was compared against.
        passed: Whether the comparison held.
        absent: True if the metric was never declared and 0.0 was used.
    """

    threshold: Threshold
    observed: float
    passed: bool
    absent: bool = False


@dataclass
class ThresholdReport:
    """All threshold outcomes for a run."""

    results: list[ThresholdResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """Return True if every threshold passed (vacuously true when empty)."""
        return all(result.passed for result in self.results)

    @property
    def failures(self) -> list[ThresholdResult]:
        """Return the results whose comparison did not hold."""
        return [result for result in self.results if not result.passed]


def parse_threshold(metric: str, expression: str) -> Threshold:
    """Parse a single threshold expression.

    Args:
        metric: Metric the expression applies to.
        expression: Expression such as ``"p(99)<50"`` or ``"rate < 0.01"``.

    Returns:
        The parsed Threshold.

    Raises:
        ConfigError: If the expression cannot be parsed.
    """
    if not metric:
        msg = f"threshold {expression!r} has no metric name"
        raise ConfigError(msg)

    match = _EXPRESSION_RE.match(expression)
    if match is None:
        msg = f"invalid threshold expression for {metric!r}: {expression!r}"
        raise ConfigError(msg)

    aggregation = match.group("aggregation")
    raw_argument = match.group("argument")

    if aggregation not in _AGGREGATIONS:
        msg = f"unknown aggregation {aggregation!r} in threshold {metric}: {expression}"
        raise ConfigError(msg)

    argument: float | None = None
    if aggregation == "p":
        if raw_argument is None:
            msg = f"percentile threshold needs a value, e.g. p(95): {expression!r}"
            raise ConfigError(msg)
        argument = float(raw_argument)
        if not 0.0 <= argument <= 100.0:
            msg = f"percentile must be between 0 and 100, got {argument:g}"
            raise ConfigError(msg)
    elif raw_argument is not None:
        msg = f"aggregation {aggregation!r} takes no argument: {expression!r}"
        raise ConfigError(msg)

    return Threshold(
        metric=metric,
        expression=expression.strip(),
        aggregation=aggregation,
        argument=argument,
        operator=match.group("operator"),
        bound=float(match.group("bound")),
    )


def parse_thresholds(spec: Mapping[str, Sequence[str]]) -> list[Threshold]:
    """Parse a ``{metric: [expression, ...]}`` mapping.

    Args:
        spec: Threshold expressions keyed by metric name.

    Returns:
        Thresholds in mapping order.

    Raises:
        ConfigError: If any expression is invalid.
    """
    return [
        parse_threshold(metric, expression)
        for metric, expressions in spec.items()
        for expression in expressions
    ]


def evaluate_thresholds(
    metrics: Mapping[str, MetricSummary],
    thresholds: Sequence[Threshold],
) -> ThresholdReport:
    """Compare finalized metrics against thresholds.

    A metric with no entry in *metrics* is evaluated as 0.0 and the result
    is marked ``absent``.

    Args:
        metrics: Finalized metric summaries keyed by name.
        thresholds: Thresholds to evaluate.

    Returns:
        A report with one result per threshold.

    Raises:
        ConfigError: If a threshold uses an aggregation its metric's type
            does not support.
    """
    report = ThresholdReport()
    for threshold in thresholds:
        summary = metrics.get(threshold.metric)
        if summary is None:
            observed = 0.0
            absent = True
            logger.warning("Threshold on unknown metric %s evaluated as 0", threshold.metric)
        else:
            observed = summary.value_of(threshold.aggregation, threshold.argument)
            absent = False

        passed = threshold.check(observed)
        report.results.append(
            ThresholdResult(threshold=threshold, observed=observed, passed=passed, absent=absent)
        )
        logger.debug(
            "Threshold %s observed=%.4f -> %s",
            threshold,
            observed,
            "pass" if passed else "FAIL",
        )

    if not report.passed:
        logger.info(
            "%d of %d thresholds failed",
            len(report.failures),
            len(report.results),
        )
    return report


def validate_thresholds(
    thresholds: Sequence[Threshold],
    metric_types: Mapping[str, MetricType],
) -> None:
    """Reject thresholds whose aggregation does not fit the metric type.

    Thresholds on metrics missing from *metric_types* are left alone;
    they are evaluated as absent after the run.

    Args:
        thresholds: Parsed thresholds.
        metric_types: Declared metric types keyed by name.

    Raises:
        ConfigError: On the first mismatched threshold.
    """
    for threshold in thresholds:
        metric_type = metric_types.get(threshold.metric)
        if metric_type is None:
            continue
        if threshold.aggregation not in supported_aggregations(metric_type):
            msg = (
                f"threshold {threshold} uses {threshold.aggregation!r}, which "
                f"{metric_type.value} metrics do not support"
            )
            raise ConfigError(msg)
