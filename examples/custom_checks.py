"""Validate responses with your own checks and a custom metric.

Swaps the default checks for a status check and a body size bound, and
records the response size as an extra trend. Run it with:

    python examples/custom_checks.py
"""

from __future__ import annotations

import sys

from loadgate import LoadTestRunner, MetricType, RunConfig, text_summary
from loadgate.engine.scenario import HttpCheckScenario

TARGET_URL = "http://localhost:8080/api/users"

CHECKS = (
    ("status is 200", lambda result: result.status_code == 200),
    ("body under 64 KiB", lambda result: 0 < result.body_length < 64 * 1024),
)


class SizedScenario(HttpCheckScenario):
    """Default request flow plus a ``response_size`` trend."""

    async def __call__(self, executor, metrics):
        result = await super().__call__(executor, metrics)
        metrics.add_value("response_size", result.body_length)
        return result


def main() -> int:
    config = RunConfig.create(
        TARGET_URL,
        vus=5,
        duration="10s",
        think_time=0.1,
        thresholds={
            "checks": ["rate>0.99"],
            "response_size": ["max<65536"],
        },
    )

    scenario = SizedScenario(TARGET_URL, checks=CHECKS)
    result = LoadTestRunner(
        config,
        iteration=scenario,
        custom_metrics={"response_size": MetricType.TREND},
    ).run()
    print(text_summary(result.metrics, config), end="")
    return 0 if result.passed else 99


if __name__ == "__main__":
    sys.exit(main())
