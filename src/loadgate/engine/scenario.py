"""The default iteration: GET the target, record metrics, run checks."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loadgate._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from loadgate.engine.executor import HttpResult, RequestExecutor
    from loadgate.metrics.aggregator import MetricsAggregator

logger = get_logger("engine.scenario")

Check = tuple[str, "Callable[[HttpResult], bool]"]

DEFAULT_CHECKS: tuple[Check, ...] = (
    ("status is 200", lambda result: result.status_code == 200),
    ("response has body", lambda result: result.body_length > 0),
)


class HttpCheckScenario:
    """Iteration body that requests one URL and validates the response.

    Each call issues a single GET and records ``http_reqs``,
    ``http_req_duration``, ``http_req_failed``, ``data_received`` and
    ``request_duration``. Every check adds a sample to ``checks``, and
    ``errors`` gets a 1 if any check failed in the iteration.

    Attributes:
        target_url: URL requested on every iteration.
        checks: ``(name, predicate)`` pairs run against each response.
    """

    def __init__(self, target_url: str, checks: Sequence[Check] = DEFAULT_CHECKS) -> None:
        self.target_url = target_url
        self.checks = tuple(checks)

    async def __call__(self, executor: RequestExecutor, metrics: MetricsAggregator) -> HttpResult:
        """Run one iteration.

        Args:
            executor: The calling virtual user's executor.
            metrics: Shared aggregator to record samples into.

        Returns:
            The response, so subclasses can record more from it.
        """
        result = await executor.get(self.target_url)

        metrics.add_value("http_reqs", 1)
        metrics.add_value("http_req_duration", result.elapsed_ms)
        metrics.add_value("http_req_failed", result.failed)
        metrics.add_value("data_received", result.body_length)
        metrics.add_value("request_duration", result.elapsed_ms)

        if result.error is not None:
            logger.debug("Request to %s failed: %s", result.url, result.error)

        all_passed = True
        for name, predicate in self.checks:
            passed = predicate(result)
            metrics.add_value("checks", passed)
            if not passed:
                all_passed = False
                logger.debug("Check %r failed (status=%d)", name, result.status_code)

        metrics.add_value("errors", not all_passed)
        return result
