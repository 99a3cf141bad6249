"""``loadgate run``: execute a load test with live terminal output."""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from loadgate._internal.errors import LoadGateError
from loadgate._internal.logging import setup_logging
from loadgate.config import RunConfig
from loadgate.engine.runner import LoadTestRunner
from loadgate.report.summary import text_summary, write_summary_json
from loadgate.thresholds import DEFAULT_THRESHOLDS

if TYPE_CHECKING:
    from loadgate._internal.types import ThresholdSpec
    from loadgate.engine.pool import RunProgress
    from loadgate.thresholds import ThresholdReport

console = Console(stderr=True)

DEFAULT_TARGET_URL = "http://localhost:8080/api/users"

# Exit status when the run completed but at least one threshold failed.
THRESHOLDS_FAILED_EXIT_CODE = 99


# ---------------------------------------------------------------------------
# Option parsing helpers
# ---------------------------------------------------------------------------


def _parse_threshold_options(
    options: list[str] | None,
    *,
    disabled: bool,
) -> ThresholdSpec:
    """Turn repeated ``METRIC:EXPR`` options into a threshold mapping.

    Args:
        options: Raw ``--threshold`` values, or None when not given.
        disabled: True when ``--no-thresholds`` was passed.

    Returns:
        Threshold expressions keyed by metric name. The defaults apply
        when no ``--threshold`` option was given.

    Raises:
        typer.BadParameter: If an option is missing the ``:`` separator.
    """
    if disabled:
        return {}
    if not options:
        return {metric: list(exprs) for metric, exprs in DEFAULT_THRESHOLDS.items()}

    thresholds: ThresholdSpec = {}
    for option in options:
        metric, sep, expression = option.partition(":")
        if not sep or not metric.strip() or not expression.strip():
            msg = f"expected METRIC:EXPRESSION, e.g. 'http_req_duration:p(95)<200', got {option!r}"
            raise typer.BadParameter(msg, param_hint="--threshold")
        thresholds.setdefault(metric.strip(), []).append(expression.strip())
    return thresholds


# ---------------------------------------------------------------------------
# Rich output
# ---------------------------------------------------------------------------


def _make_progress_table(progress: RunProgress | None) -> Table:
    """Build a Rich table showing the run's current progress.

    Args:
        progress: Latest progress tick, or None before the first tick.

    Returns:
        Formatted Rich Table.
    """
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if progress is None:
        table.add_row("Status", "Starting...")
        return table

    table.add_row(
        "Elapsed",
        f"{progress.elapsed_seconds:.0f}s / {progress.duration_seconds:.0f}s",
    )
    table.add_row("Active VUs", str(progress.active_vus))
    table.add_row("Iterations", str(progress.iterations))
    table.add_row("Requests", str(progress.requests))
    table.add_row("Failed Requests", str(progress.failed_requests))
    return table


def _print_thresholds(report: ThresholdReport) -> None:
    """Print one row per threshold with its observed value and outcome.

    Args:
        report: Evaluated thresholds.
    """
    if not report.results:
        return

    table = Table(title="Thresholds", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Threshold")
    table.add_column("Observed", justify="right")
    table.add_column("Result", justify="center")

    for result in report.results:
        observed = f"{result.observed:.4g}"
        if result.absent:
            observed += " (absent)"
        table.add_row(
            result.threshold.metric,
            result.threshold.expression,
            observed,
            "[green]✓ pass[/green]" if result.passed else "[red]✗ fail[/red]",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    url: str = typer.Argument(
        DEFAULT_TARGET_URL,
        help="Target URL requested with GET on every iteration.",
    ),
    vus: int = typer.Option(
        100,
        "--vus",
        "-u",
        help="Number of concurrent virtual users.",
    ),
    duration: str = typer.Option(
        "30s",
        "--duration",
        "-d",
        help="Test duration, e.g. 30s, 1m30s or 500ms.",
    ),
    think_time: str = typer.Option(
        "0.1",
        "--think-time",
        "-t",
        help="Seconds to pause between iterations; a range such as 0.05-0.2 is sampled uniformly.",
    ),
    threshold: list[str] | None = typer.Option(
        None,
        "--threshold",
        "-T",
        help="METRIC:EXPRESSION, repeatable. Replaces the default thresholds.",
    ),
    no_thresholds: bool = typer.Option(
        False,
        "--no-thresholds",
        help="Do not evaluate any thresholds.",
    ),
    summary_export: Path | None = typer.Option(
        None,
        "--summary-export",
        help="Also write the full summary as JSON to this file.",
    ),
    no_progress: bool = typer.Option(
        False,
        "--no-progress",
        help="Disable the live progress table.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit logs as one JSON object per line.",
    ),
) -> None:
    """Run a load test and print the summary to stdout."""
    setup_logging(logging.DEBUG if verbose else logging.INFO, json_format=json_logs)

    thresholds = _parse_threshold_options(threshold, disabled=no_thresholds)

    try:
        config = RunConfig.create(
            url,
            vus=vus,
            duration=duration,
            think_time=think_time,
            thresholds=thresholds,
        )
    except LoadGateError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            f"[bold]Target:[/bold]     {config.target_url}\n"
            f"[bold]VUs:[/bold]        {config.vus}\n"
            f"[bold]Duration:[/bold]   {config.duration}\n"
            f"[bold]Think time:[/bold] {config.think_time[0]:g}-{config.think_time[1]:g}s",
            title="loadgate",
            border_style="cyan",
        )
    )

    live: Live | None = None

    def _on_progress(progress: RunProgress) -> None:
        if live is not None:
            live.update(_make_progress_table(progress))

    try:
        with contextlib.ExitStack() as stack:
            if not no_progress:
                live = stack.enter_context(
                    Live(
                        _make_progress_table(None),
                        console=console,
                        refresh_per_second=2,
                        transient=True,
                    )
                )
            result = LoadTestRunner(config, on_progress=_on_progress).run()
    except LoadGateError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(text_summary(result.metrics, config), nl=False)
    _print_thresholds(result.thresholds)

    if summary_export is not None:
        write_summary_json(result, summary_export)

    if result.pool.stopped_early:
        console.print("[yellow]Run was stopped before the full duration elapsed.[/yellow]")

    if not result.passed:
        failed = ", ".join(str(item.threshold) for item in result.thresholds.failures)
        console.print(f"[red]FAIL:[/red] thresholds crossed: {failed}")
        raise typer.Exit(code=THRESHOLDS_FAILED_EXIT_CODE)

    console.print("[green]Load test completed successfully.[/green]")
