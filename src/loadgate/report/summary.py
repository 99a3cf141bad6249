"""Text and JSON summaries of a finished run."""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from loadgate._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from loadgate.config import RunConfig
    from loadgate.engine.runner import RunResult
    from loadgate.metrics.models import MetricSummary

logger = get_logger("report.summary")


@dataclass(frozen=True)
class SummaryFigures:
    """The handful of numbers the text summary shows.

    Attributes:
        total_requests: HTTP requests issued.
        failed_requests: Requests that failed in transport or got >= 400.
        failed_rate: ``failed_requests / total_requests`` (0.0 when no requests).
        p99_ms: 99th percentile request duration.
        avg_ms: Mean request duration.
        max_ms: Slowest request duration.
    """

    total_requests: int = 0
    failed_requests: int = 0
    failed_rate: float = 0.0
    p99_ms: float = 0.0
    avg_ms: float = 0.0
    max_ms: float = 0.0


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def summary_figures(metrics: Mapping[str, MetricSummary]) -> SummaryFigures:
    """Extract the summary figures, using zero for anything missing.

    Args:
        metrics: Finalized metrics keyed by name.

    Returns:
        Figures for :func:`render_text_summary`.
    """
    requests = metrics.get("http_reqs")
    failed = metrics.get("http_req_failed")
    duration = metrics.get("http_req_duration")

    return SummaryFigures(
        total_requests=int(_finite(requests.total)) if requests is not None else 0,
        failed_requests=failed.passes if failed is not None else 0,
        failed_rate=_finite(failed.rate) if failed is not None else 0.0,
        p99_ms=_finite(duration.percentile(99.0)) if duration is not None else 0.0,
        avg_ms=_finite(duration.avg) if duration is not None else 0.0,
        max_ms=_finite(duration.maximum) if duration is not None else 0.0,
    )


def render_text_summary(
    figures: SummaryFigures,
    vus: int,
    duration: str,
    *,
    indent: str = " ",
) -> str:
    """Format summary figures as the plain-text end-of-test report.

    Args:
        figures: Numbers to show.
        vus: Configured virtual-user count.
        duration: Configured duration string.
        indent: Prefix for every line.

    Returns:
        The report, starting with a blank line and ending with a newline.
    """
    lines = [
        "",
        f"{indent}=== Load Test Summary ===",
        "",
        f"{indent}HTTP Requests:",
        f"{indent}  Total: {figures.total_requests}",
        f"{indent}  Failed: {figures.failed_requests}",
        f"{indent}  Failed Rate: {figures.failed_rate * 100:.2f}%",
        "",
        f"{indent}Response Times:",
        f"{indent}  p99: {figures.p99_ms:.2f}ms",
        f"{indent}  avg: {figures.avg_ms:.2f}ms",
        f"{indent}  max: {figures.max_ms:.2f}ms",
        "",
        f"{indent}Virtual Users: {vus}",
        f"{indent}Duration: {duration}",
    ]
    return "\n".join(lines) + "\n"


def text_summary(metrics: Mapping[str, MetricSummary], config: RunConfig, *, indent: str = " ") -> str:
    """Build the text report straight from finalized metrics and config."""
    return render_text_summary(
        summary_figures(metrics),
        config.vus,
        config.duration,
        indent=indent,
    )


def summary_to_dict(result: RunResult) -> dict[str, Any]:
    """Return a JSON-ready export of a run's metrics and thresholds."""
    config = result.config
    return {
        "config": {
            "target_url": config.target_url,
            "vus": config.vus,
            "duration": config.duration,
            "think_time": list(config.think_time),
        },
        "duration_seconds": result.duration_seconds,
        "passed": result.passed,
        "summary": asdict(summary_figures(result.metrics)),
        "iterations": {
            "completed": result.pool.iterations,
            "failed": result.pool.failed_iterations,
            "interrupted": result.pool.interrupted_iterations,
        },
        "metrics": {name: summary.to_dict() for name, summary in sorted(result.metrics.items())},
        "thresholds": [
            {
                "metric": item.threshold.metric,
                "expression": item.threshold.expression,
                "observed": item.observed,
                "passed": item.passed,
                "absent": item.absent,
            }
            for item in result.thresholds.results
        ],
    }


def write_summary_json(result: RunResult, path: Path) -> None:
    """Write :func:`summary_to_dict` output to *path* as indented JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary_to_dict(result), indent=2) + "\n", encoding="utf-8")
    logger.info("Summary written to %s", path)
