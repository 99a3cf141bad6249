"""Run a load test from Python instead of the CLI.

Hits a local endpoint with 10 virtual users for 15 seconds and exits
non-zero if any threshold fails. Run it with:

    python examples/basic_run.py
"""

from __future__ import annotations

import sys

from loadgate import LoadTestRunner, RunConfig, text_summary
from loadgate._internal.logging import setup_logging


def main() -> int:
    setup_logging()
    config = RunConfig.create(
        "http://localhost:8080/api/users",
        vus=10,
        duration="15s",
        think_time="0.05-0.2",
        thresholds={
            "http_req_duration": ["p(95)<100", "p(99)<250"],
            "http_req_failed": ["rate<0.01"],
        },
    )

    result = LoadTestRunner(config).run()
    print(text_summary(result.metrics, config), end="")

    for failure in result.thresholds.failures:
        print(f"FAIL {failure.threshold} (observed {failure.observed:.3f})")
    return 0 if result.passed else 99


if __name__ == "__main__":
    sys.exit(main())
