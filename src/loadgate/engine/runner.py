"""Top-level load test orchestrator."""

from __future__ import annotations

import asyncio
import signal
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loadgate._internal.errors import EngineError, LoadGateError
from loadgate._internal.logging import get_logger
from loadgate.engine.pool import VirtualUserPool
from loadgate.engine.scenario import HttpCheckScenario
from loadgate.metrics.aggregator import MetricsAggregator
from loadgate.thresholds import ThresholdReport, evaluate_thresholds, validate_thresholds

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from loadgate.config import RunConfig
    from loadgate.engine.pool import ExecutorFactory, Iteration, PoolResult, RunProgress
    from loadgate.metrics.models import MetricType, RunMetrics

logger = get_logger("engine.runner")


@dataclass
class RunResult:
    """Complete result of a load test run.

    Attributes:
        config: Configuration the run used.
        metrics: Finalized metrics keyed by name.
        thresholds: Outcome of every configured threshold.
        pool: Iteration counts and timing from the virtual user pool.
    """

    config: RunConfig
    metrics: RunMetrics
    thresholds: ThresholdReport
    pool: PoolResult

    @property
    def passed(self) -> bool:
        """Return True if every threshold passed."""
        return self.thresholds.passed

    @property
    def duration_seconds(self) -> float:
        """Return the wall-clock duration of the run."""
        return self.pool.elapsed_seconds


class LoadTestRunner:
    """Runs one load test from a validated :class:`RunConfig`.

    Wires together the metrics aggregator, the virtual user pool and the
    threshold evaluator. ``run()`` blocks until the test completes or a
    SIGINT/SIGTERM triggers a graceful stop.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        iteration: Iteration | None = None,
        executor_factory: ExecutorFactory | None = None,
        on_progress: Callable[[RunProgress], None] | None = None,
        custom_metrics: Mapping[str, MetricType] | None = None,
        handle_signals: bool = True,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Validated run configuration.
            iteration: Iteration body. Defaults to an
                :class:`HttpCheckScenario` against ``config.target_url``.
            executor_factory: Per-user executor factory, see
                :class:`VirtualUserPool`.
            on_progress: Optional callback invoked every tick.
            custom_metrics: Extra metrics the iteration records, declared
                on the aggregator before the run starts.
            handle_signals: Install SIGINT/SIGTERM handlers for the
                duration of the run.
        """
        self.config = config
        self._iteration = iteration or HttpCheckScenario(config.target_url)
        self._executor_factory = executor_factory
        self._on_progress = on_progress
        self._custom_metrics = dict(custom_metrics or {})
        self._handle_signals = handle_signals

    def run(self) -> RunResult:
        """Execute the load test and return results.

        Returns:
            RunResult with finalized metrics and threshold outcomes.

        Raises:
            ConfigError: If a threshold does not fit its metric's type.
            EngineError: If the test fails to execute.
        """
        try:
            return asyncio.run(self._run())
        except LoadGateError:
            raise
        except Exception as exc:
            logger.exception("Load test failed")
            raise EngineError("Load test failed") from exc

    async def _run(self) -> RunResult:
        config = self.config
        metrics = MetricsAggregator()
        for name, metric_type in self._custom_metrics.items():
            metrics.declare(name, metric_type)
        validate_thresholds(config.thresholds, metrics.metric_types())

        pool = VirtualUserPool(
            config,
            self._iteration,
            metrics,
            executor_factory=self._executor_factory,
            on_progress=self._on_progress,
        )

        if self._handle_signals:
            self._install_signal_handlers(pool)
        try:
            pool_result = await pool.run()
        finally:
            if self._handle_signals:
                self._remove_signal_handlers()

        run_metrics = metrics.finalize(pool_result.elapsed_seconds)
        report = evaluate_thresholds(run_metrics, config.thresholds)

        http_reqs = run_metrics.get("http_reqs")
        failed = run_metrics.get("http_req_failed")
        logger.info(
            "Load test completed: duration=%.1fs, requests=%d, failed_rate=%.2f%%, thresholds=%s",
            pool_result.elapsed_seconds,
            int(http_reqs.total) if http_reqs is not None else 0,
            (failed.rate if failed is not None else 0.0) * 100,
            "passed" if report.passed else "FAILED",
        )

        return RunResult(config=config, metrics=run_metrics, thresholds=report, pool=pool_result)

    def _install_signal_handlers(self, pool: VirtualUserPool) -> None:
        """Route SIGINT and SIGTERM to a pool stop.

        The first signal starts a graceful stop; a signal received while
        iterations drain cancels them.
        """
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            pool.stop()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            # Windows doesn't support add_signal_handler
            signal.signal(signal.SIGINT, lambda _s, _f: loop.call_soon_threadsafe(_signal_handler))
            signal.signal(signal.SIGTERM, lambda _s, _f: loop.call_soon_threadsafe(_signal_handler))

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
