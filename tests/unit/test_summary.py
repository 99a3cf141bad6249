"""Tests for the text and JSON summaries."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from loadgate._internal.config import Settings
from loadgate.config import RunConfig
from loadgate.engine.pool import PoolResult
from loadgate.engine.runner import RunResult
from loadgate.metrics.aggregator import MetricsAggregator
from loadgate.metrics.models import MetricSummary, MetricType, RunMetrics
from loadgate.report.summary import (
    SummaryFigures,
    render_text_summary,
    summary_figures,
    summary_to_dict,
    text_summary,
    write_summary_json,
)
from loadgate.thresholds import evaluate_thresholds, parse_thresholds

if TYPE_CHECKING:
    from pathlib import Path


def _config(vus: int = 100, duration: str = "30s") -> RunConfig:
    return RunConfig.create(
        "http://localhost:8080/api/users",
        vus=vus,
        duration=duration,
        thresholds={"http_req_failed": ["rate<0.01"]},
        settings=Settings(),
    )


class TestRenderTextSummary:
    def test_formats_figures(self):
        figures = SummaryFigures(
            total_requests=1000,
            failed_requests=5,
            failed_rate=5 / 1000,
            p99_ms=42.567,
            avg_ms=10.123,
            max_ms=99.999,
        )
        text = render_text_summary(figures, 100, "30s")

        assert "  Failed Rate: 0.50%" in text
        assert "  p99: 42.57ms" in text
        assert "  avg: 10.12ms" in text
        assert "  max: 100.00ms" in text

    def test_exact_layout(self):
        figures = SummaryFigures(total_requests=3, failed_requests=1, failed_rate=1 / 3)
        text = render_text_summary(figures, 10, "1m", indent=" ")
        assert text == (
            "\n"
            " === Load Test Summary ===\n"
            "\n"
            " HTTP Requests:\n"
            "   Total: 3\n"
            "   Failed: 1\n"
            "   Failed Rate: 33.33%\n"
            "\n"
            " Response Times:\n"
            "   p99: 0.00ms\n"
            "   avg: 0.00ms\n"
            "   max: 0.00ms\n"
            "\n"
            " Virtual Users: 10\n"
            " Duration: 1m\n"
        )

    def test_custom_indent(self):
        text = render_text_summary(SummaryFigures(), 1, "1s", indent=">>")
        assert ">>=== Load Test Summary ===" in text
        assert ">>Virtual Users: 1" in text

    def test_deterministic(self):
        figures = SummaryFigures(total_requests=10, p99_ms=1.0)
        assert render_text_summary(figures, 2, "5s") == render_text_summary(figures, 2, "5s")


class TestSummaryFigures:
    def test_from_aggregated_metrics(self):
        aggregator = MetricsAggregator()
        for i in range(200):
            aggregator.add_value("http_reqs", 1)
            aggregator.add_value("http_req_failed", i < 3)
            aggregator.add_value("http_req_duration", 1.0 if i < 199 else 1.9)

        figures = summary_figures(aggregator.finalize(2.0))
        assert figures.total_requests == 200
        assert figures.failed_requests == 3
        assert figures.failed_rate == 3 / 200
        assert figures.max_ms == 1.9
        assert 1.0 <= figures.p99_ms <= 1.9
        assert figures.avg_ms == (199 * 1.0 + 1.9) / 200

    def test_missing_metrics_render_as_zero(self):
        figures = summary_figures(RunMetrics({}, elapsed_seconds=1.0))
        assert figures == SummaryFigures()

        text = text_summary(RunMetrics({}, elapsed_seconds=1.0), _config())
        assert "  Total: 0" in text
        assert "  Failed: 0" in text
        assert "  Failed Rate: 0.00%" in text
        assert "  p99: 0.00ms" in text
        assert " Virtual Users: 100" in text
        assert " Duration: 30s" in text

    def test_malformed_metrics_degrade_to_zero(self):
        metrics = RunMetrics(
            {
                # A duration metric of the wrong type has no digest.
                "http_req_duration": MetricSummary(
                    name="http_req_duration", metric_type=MetricType.COUNTER
                ),
                "http_reqs": MetricSummary(
                    name="http_reqs", metric_type=MetricType.COUNTER, total=float("nan")
                ),
            },
            elapsed_seconds=1.0,
        )
        figures = summary_figures(metrics)
        assert figures.total_requests == 0
        assert figures.p99_ms == 0.0
        assert figures.avg_ms == 0.0


class TestSummaryExport:
    def _result(self) -> RunResult:
        config = _config(vus=2, duration="1s")
        aggregator = MetricsAggregator()
        aggregator.add_value("http_reqs", 1)
        aggregator.add_value("http_req_failed", False)
        aggregator.add_value("http_req_duration", 1.25)
        metrics = aggregator.finalize(1.0)
        return RunResult(
            config=config,
            metrics=metrics,
            thresholds=evaluate_thresholds(metrics, config.thresholds),
            pool=PoolResult(
                iterations=1,
                failed_iterations=0,
                interrupted_iterations=0,
                elapsed_seconds=1.0,
                stopped_early=False,
            ),
        )

    def test_summary_to_dict(self):
        data = summary_to_dict(self._result())
        assert data["passed"] is True
        assert data["config"]["vus"] == 2
        assert data["summary"]["total_requests"] == 1
        assert data["iterations"]["completed"] == 1
        assert data["metrics"]["http_req_duration"]["max"] == 1.25
        assert data["thresholds"] == [
            {
                "metric": "http_req_failed",
                "expression": "rate<0.01",
                "observed": 0.0,
                "passed": True,
                "absent": False,
            }
        ]

    def test_write_summary_json(self, tmp_path: Path):
        path = tmp_path / "out" / "summary.json"
        write_summary_json(self._result(), path)
        data = json.loads(path.read_text())
        assert data["summary"]["failed_rate"] == 0.0
        assert set(data["metrics"]) >= {"http_reqs", "http_req_duration", "errors"}

    def test_thresholds_in_export_match_parsed(self):
        result = self._result()
        assert [r.threshold for r in result.thresholds.results] == parse_thresholds(
            {"http_req_failed": ["rate<0.01"]}
        )
