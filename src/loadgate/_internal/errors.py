"""Custom exception hierarchy for loadgate."""

from __future__ import annotations


class LoadGateError(Exception):
    """Base exception for all loadgate errors.

    All custom exceptions in loadgate inherit from this class, so the CLI
    can turn any of them into a clean non-zero exit with a single except
    clause.
    """


class ConfigError(LoadGateError):
    """Raised when run configuration is invalid.

    Examples:
        - Virtual-user count below 1.
        - A duration string such as ``"10 parsecs"`` that cannot be parsed.
        - A threshold expression with an unknown aggregation or operator.
        - An environment variable with an out-of-range value.
    """


class MetricsError(LoadGateError):
    """Raised when the metrics aggregator is used incorrectly.

    Examples:
        - A sample is added for a metric that was never declared.
        - A metric name is re-declared with a different type.
        - A sample is added after the aggregator was finalized.
    """


class EngineError(LoadGateError):
    """Raised when a load test cannot be executed to completion."""
