"""Tests for threshold parsing and evaluation."""

from __future__ import annotations

import pytest

from loadgate._internal.errors import ConfigError
from loadgate.metrics.aggregator import MetricsAggregator
from loadgate.metrics.models import BUILTIN_METRICS
from loadgate.thresholds import (
    DEFAULT_THRESHOLDS,
    evaluate_thresholds,
    parse_threshold,
    parse_thresholds,
    validate_thresholds,
)


def _durations(*values: float, repeat: int = 1):
    aggregator = MetricsAggregator()
    for _ in range(repeat):
        for value in values:
            aggregator.add_value("http_req_duration", value)
    return aggregator.finalize(1.0)


class TestParseThreshold:
    def test_percentile(self):
        threshold = parse_threshold("http_req_duration", "p(99)<50")
        assert threshold.metric == "http_req_duration"
        assert threshold.aggregation == "p"
        assert threshold.argument == 99.0
        assert threshold.operator == "<"
        assert threshold.bound == 50.0
        assert str(threshold) == "http_req_duration: p(99)<50"

    def test_whitespace_and_decimal_percentile(self):
        threshold = parse_threshold("http_req_duration", "  p( 99.9 ) <= 1e3 ")
        assert threshold.argument == 99.9
        assert threshold.operator == "<="
        assert threshold.bound == 1000.0
        assert threshold.expression == "p( 99.9 ) <= 1e3"

    @pytest.mark.parametrize("op", ["<", "<=", ">", ">=", "==", "!="])
    def test_operators(self, op: str):
        assert parse_threshold("errors", f"rate{op}0.5").operator == op

    @pytest.mark.parametrize(
        "expression",
        ["", "rate", "rate<", "<0.01", "rate=0.01", "rate<abc", "p99<50", "p<50", "p(101)<5", "avg(5)<1", "median<5"],
    )
    def test_invalid(self, expression: str):
        with pytest.raises(ConfigError):
            parse_threshold("http_req_duration", expression)

    def test_missing_metric(self):
        with pytest.raises(ConfigError, match="no metric name"):
            parse_threshold("", "rate<1")

    def test_parse_defaults(self):
        thresholds = parse_thresholds(DEFAULT_THRESHOLDS)
        assert [str(t) for t in thresholds] == [
            "http_req_duration: p(99)<50",
            "http_req_failed: rate<0.01",
            "errors: rate<0.01",
        ]


class TestEvaluatePercentile:
    # 1.5ms sits in the digest's exact range, so p99 is exactly 1.5.
    def test_fails_when_p99_equals_bound(self):
        metrics = _durations(1.5, repeat=100)
        report = evaluate_thresholds(metrics, [parse_threshold("http_req_duration", "p(99)<1.5")])
        assert report.results[0].observed == 1.5
        assert not report.passed

    def test_fails_when_p99_above_bound(self):
        metrics = _durations(1.5, repeat=100)
        report = evaluate_thresholds(metrics, [parse_threshold("http_req_duration", "p(99)<1.4")])
        assert not report.passed
        assert len(report.failures) == 1

    def test_passes_when_p99_below_bound(self):
        metrics = _durations(1.5, repeat=100)
        report = evaluate_thresholds(metrics, [parse_threshold("http_req_duration", "p(99)<1.501")])
        assert report.passed
        assert report.failures == []

    def test_tail_sample_drives_p99(self):
        # 98 fast requests and 2 slow ones: p99 lands on the slow tail.
        aggregator = MetricsAggregator()
        for _ in range(98):
            aggregator.add_value("http_req_duration", 1.0)
        for _ in range(2):
            aggregator.add_value("http_req_duration", 1.8)
        metrics = aggregator.finalize(1.0)

        report = evaluate_thresholds(
            metrics,
            parse_thresholds({"http_req_duration": ["p(99)<1.8", "p(50)<1.8", "max<=1.8"]}),
        )
        assert [r.passed for r in report.results] == [False, True, True]


class TestEvaluateRate:
    def _failed(self, failed: int, total: int):
        aggregator = MetricsAggregator()
        for i in range(total):
            aggregator.add_value("http_req_failed", i < failed)
        return aggregator.finalize(1.0)

    def test_rate_below_bound_passes(self):
        report = evaluate_thresholds(self._failed(5, 1000), [parse_threshold("http_req_failed", "rate<0.01")])
        assert report.passed
        assert report.results[0].observed == pytest.approx(0.005)

    def test_rate_equal_to_bound_fails(self):
        report = evaluate_thresholds(self._failed(10, 1000), [parse_threshold("http_req_failed", "rate<0.01")])
        assert not report.passed

    def test_no_requests_passes_rate_threshold(self):
        report = evaluate_thresholds(self._failed(0, 0), [parse_threshold("http_req_failed", "rate<0.01")])
        assert report.passed
        assert report.results[0].observed == 0.0
        assert report.results[0].absent is False


class TestEvaluateEdgeCases:
    def test_absent_metric_evaluates_as_zero(self):
        metrics = MetricsAggregator().finalize(1.0)
        report = evaluate_thresholds(
            metrics,
            parse_thresholds({"custom_metric": ["count>0", "rate<1"]}),
        )
        assert [r.absent for r in report.results] == [True, True]
        assert [r.observed for r in report.results] == [0.0, 0.0]
        assert [r.passed for r in report.results] == [False, True]

    def test_empty_threshold_list_passes(self):
        report = evaluate_thresholds(MetricsAggregator().finalize(1.0), [])
        assert report.passed
        assert report.results == []

    def test_mismatched_aggregation_raises(self):
        metrics = MetricsAggregator().finalize(1.0)
        with pytest.raises(ConfigError, match="not supported"):
            evaluate_thresholds(metrics, [parse_threshold("http_req_failed", "avg<1")])


class TestValidateThresholds:
    def test_accepts_defaults(self):
        validate_thresholds(parse_thresholds(DEFAULT_THRESHOLDS), BUILTIN_METRICS)

    def test_rejects_percentile_on_rate(self):
        with pytest.raises(ConfigError, match="rate metrics do not support"):
            validate_thresholds([parse_threshold("errors", "p(95)<1")], BUILTIN_METRICS)

    def test_ignores_unknown_metrics(self):
        validate_thresholds([parse_threshold("custom", "p(95)<1")], BUILTIN_METRICS)
