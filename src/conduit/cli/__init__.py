"""Conduit command-line interface.

Commands live in ``cli/commands/`` (status, run, extract). Global options
are applied through eager callbacks so they take effect before any command
body runs; ``helpers`` holds the resulting process-wide state.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from conduit import __version__

# Tests reset CLI state through this module
from . import helpers as helpers
from .commands import extract, run, status
from .helpers import (
    OutputLevel,
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
    set_output_level,
)
from .output import console

app = typer.Typer(
    name="conduit",
    help="Run AI command-line tools with timeouts, retries, and a circuit breaker.",
    no_args_is_help=True,
    add_completion=False,
)


def _show_version(value: bool) -> None:
    if not value:
        return
    console.print(f"Conduit v{__version__}")
    raise typer.Exit()


def _use_verbose(value: bool) -> None:
    if value:
        set_output_level(OutputLevel.VERBOSE)


def _use_quiet(value: bool) -> None:
    if value:
        set_output_level(OutputLevel.QUIET)


def _store(setter):  # type: ignore[no-untyped-def]
    """Wrap a helpers setter as a typer callback that passes values through."""

    def callback(value):  # type: ignore[no-untyped-def]
        if value:
            setter(value)
        return value

    return callback


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_show_version, is_eager=True, help="Print version"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            callback=_use_verbose,
            is_eager=True,
            help="Show retry notices and extra detail",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            callback=_use_quiet,
            is_eager=True,
            help="Only print results and errors",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            callback=_store(set_log_level),
            help="DEBUG, INFO, WARNING or ERROR",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=_store(set_log_format),
            help="console, json or both (both needs --log-file)",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", callback=_store(set_log_file), help="Write logs here"),
    ] = None,
) -> None:
    """Resilient execution of AI command-line tools."""
    configure_global_logging(console)


app.command()(status)
app.command()(run)
app.command()(extract)


__all__ = ["OutputLevel", "app", "console", "main"]
