"""Main Typer application, the entry point for the ``loadgate`` CLI."""

from __future__ import annotations

import typer

from loadgate import __version__
from loadgate.cli.run import run_cmd

app = typer.Typer(
    name="loadgate",
    help="Load test an HTTP endpoint and gate on latency and error thresholds.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a load test against a URL.")(run_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"loadgate {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """loadgate: load test an HTTP endpoint and gate on thresholds."""
