"""Virtual user pool: N independent iteration loops for a fixed duration."""

from __future__ import annotations

import asyncio
import contextlib
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loadgate._internal.logging import get_logger
from loadgate.engine.executor import RequestExecutor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from contextlib import AbstractAsyncContextManager

    from loadgate.config import RunConfig
    from loadgate.metrics.aggregator import MetricsAggregator

    Iteration = Callable[[RequestExecutor, MetricsAggregator], Awaitable[object]]
    ExecutorFactory = Callable[[], AbstractAsyncContextManager[RequestExecutor]]

logger = get_logger("engine.pool")


@dataclass(frozen=True)
class RunProgress:
    """Live view of a running pool, emitted once per tick.

    Attributes:
        elapsed_seconds: Seconds since the pool started.
        duration_seconds: Configured test duration.
        active_vus: Virtual users still running.
        iterations: Iterations completed so far.
        requests: HTTP requests issued so far.
        failed_requests: HTTP requests that failed so far.
    """

    elapsed_seconds: float
    duration_seconds: float
    active_vus: int
    iterations: int
    requests: int
    failed_requests: int


@dataclass(frozen=True)
class PoolResult:
    """What the pool did over the run.

    Attributes:
        iterations: Iterations that completed normally.
        failed_iterations: Iterations that raised an exception.
        interrupted_iterations: Iterations cancelled after the graceful
            stop window ran out.
        elapsed_seconds: Wall time from start until every user stopped.
        stopped_early: True if :meth:`VirtualUserPool.stop` ended the run
            before the duration elapsed or cut the graceful stop window
            short.
    """

    iterations: int
    failed_iterations: int
    interrupted_iterations: int
    elapsed_seconds: float
    stopped_early: bool


class VirtualUserPool:
    """Runs ``config.vus`` iteration loops concurrently as asyncio tasks.

    Each virtual user owns a :class:`RequestExecutor` and loops
    ``iteration -> think time`` until the configured duration elapses.
    After that no new iteration starts; iterations already running get
    ``config.graceful_stop`` seconds to finish before they are cancelled.
    Calling :meth:`stop` while they drain cancels them right away.
    The aggregator is the only state the users share.
    """

    def __init__(
        self,
        config: RunConfig,
        iteration: Iteration,
        metrics: MetricsAggregator,
        *,
        executor_factory: ExecutorFactory | None = None,
        on_progress: Callable[[RunProgress], None] | None = None,
    ) -> None:
        """Initialize the pool.

        Args:
            config: Run parameters (user count, duration, think time...).
            iteration: Coroutine function run once per iteration.
            metrics: Shared aggregator passed to every iteration.
            executor_factory: Builds one executor per virtual user.
                Defaults to a :class:`RequestExecutor` using the config's
                timeout and pool size.
            on_progress: Optional callback invoked every tick.
        """
        self._config = config
        self._iteration = iteration
        self._metrics = metrics
        self._executor_factory = executor_factory or self._default_executor
        self._on_progress = on_progress

        self._stop_event = asyncio.Event()
        self._abort_event = asyncio.Event()
        self._stop_requested = False
        self._user_tasks: list[asyncio.Task[None]] = []
        self._iterations = 0
        self._failed_iterations = 0
        self._interrupted_iterations = 0
        self._start_time = 0.0

    @property
    def active_user_count(self) -> int:
        """Return the number of virtual users that have not finished."""
        return sum(1 for task in self._user_tasks if not task.done())

    def stop(self) -> None:
        """Request an early, graceful stop.

        The first call stops new iterations and lets running ones drain.
        A call made while iterations are already draining, after the
        duration elapsed or after an earlier ``stop()``, cancels them
        immediately.

        Safe to call from a signal handler running on the event loop.
        """
        self._stop_requested = True
        if not self._stop_event.is_set():
            logger.info("Graceful shutdown requested")
            self._stop_event.set()
        elif not self._abort_event.is_set():
            logger.warning("Stop requested while draining, cancelling in-flight iterations")
            self._abort_event.set()

    async def run(self) -> PoolResult:
        """Run every virtual user until the duration elapses.

        Returns:
            Iteration counts and timing for the run.
        """
        config = self._config
        self._start_time = time.monotonic()
        logger.info(
            "Starting %d virtual users for %s against %s",
            config.vus,
            config.duration,
            config.target_url,
        )

        self._user_tasks = [
            asyncio.create_task(self._run_virtual_user(user_id), name=f"virtual-user-{user_id}")
            for user_id in range(config.vus)
        ]
        ticker = asyncio.create_task(self._tick_loop(), name="progress-ticker")

        try:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=config.duration_seconds)
            # No new iterations from here on
            self._stop_event.set()
            await self._drain_users()
        finally:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
            for task in self._user_tasks:
                task.cancel()
            outcomes = await asyncio.gather(*self._user_tasks, return_exceptions=True)
            for user_id, outcome in enumerate(outcomes):
                if isinstance(outcome, Exception):
                    logger.error("Virtual user %d crashed: %r", user_id, outcome)

        elapsed = time.monotonic() - self._start_time
        logger.info(
            "Virtual users finished: iterations=%d, failed=%d, interrupted=%d, elapsed=%.2fs",
            self._iterations,
            self._failed_iterations,
            self._interrupted_iterations,
            elapsed,
        )
        return PoolResult(
            iterations=self._iterations,
            failed_iterations=self._failed_iterations,
            interrupted_iterations=self._interrupted_iterations,
            elapsed_seconds=elapsed,
            stopped_early=self._stop_requested,
        )

    async def _drain_users(self) -> None:
        """Wait out the graceful stop window, then cancel stragglers.

        The window ends early when every user has finished or when
        :meth:`stop` is called during it.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.graceful_stop
        pending = {task for task in self._user_tasks if not task.done()}
        abort = asyncio.create_task(self._abort_event.wait(), name="drain-abort")
        try:
            while pending and not abort.done():
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                _done, pending = await asyncio.wait(
                    pending | {abort},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending.discard(abort)
        finally:
            abort.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await abort

        if pending:
            if self._abort_event.is_set():
                logger.warning("Cancelling %d in-flight virtual users on request", len(pending))
            else:
                logger.warning(
                    "%d virtual users still busy after %.1fs graceful stop, cancelling",
                    len(pending),
                    self._config.graceful_stop,
                )
            for task in pending:
                task.cancel()
            await asyncio.wait(pending)

    async def _run_virtual_user(self, user_id: int) -> None:
        """Loop iterations for one virtual user until stopped.

        Args:
            user_id: Index of this virtual user, for logging.
        """
        min_think, max_think = self._config.think_time
        async with self._executor_factory() as executor:
            while not self._stop_event.is_set():
                started = time.monotonic()
                try:
                    await self._iteration(executor, self._metrics)
                except asyncio.CancelledError:
                    self._interrupted_iterations += 1
                    raise
                except Exception:
                    self._failed_iterations += 1
                    logger.debug("Iteration failed for user %d", user_id, exc_info=True)
                else:
                    self._iterations += 1
                    self._metrics.add_value("iterations", 1)
                    self._metrics.add_value(
                        "iteration_duration", (time.monotonic() - started) * 1000
                    )

                think = random.uniform(min_think, max_think)  # noqa: S311
                if think > 0:
                    with contextlib.suppress(TimeoutError):
                        await asyncio.wait_for(self._stop_event.wait(), timeout=think)
                else:
                    # Yield so the deadline timer can run between iterations
                    await asyncio.sleep(0)

    async def _tick_loop(self) -> None:
        """Record the ``vus`` gauge and report progress every tick."""
        while True:
            await asyncio.sleep(self._config.tick_interval)
            active = self.active_user_count
            self._metrics.add_value("vus", active)
            progress = RunProgress(
                elapsed_seconds=time.monotonic() - self._start_time,
                duration_seconds=self._config.duration_seconds,
                active_vus=active,
                iterations=self._iterations,
                requests=self._metrics.count("http_reqs"),
                failed_requests=int(self._metrics.total("http_req_failed")),
            )
            logger.debug(
                "Tick %.1fs: vus=%d, iterations=%d, requests=%d, failed=%d",
                progress.elapsed_seconds,
                progress.active_vus,
                progress.iterations,
                progress.requests,
                progress.failed_requests,
            )
            if self._on_progress is not None:
                self._on_progress(progress)

    def _default_executor(self) -> RequestExecutor:
        return RequestExecutor(
            timeout=self._config.request_timeout,
            pool_size=self._config.connection_pool_size,
        )
