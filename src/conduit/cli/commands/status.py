"""Status command for Conduit CLI.

Probes the external CLI (installation, version, credentials, models) and
shows the result together with the circuit breaker configuration.

Exit codes:
  0: CLI is ready
  1: CLI is not ready
  2: Config cannot be loaded
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from conduit.backends.process_manager import ProcessRunner
from conduit.backends.readiness import ProviderReadiness
from conduit.core.errors import ErrorClassifier
from conduit.execution.circuit_breaker import CircuitBreaker

from ..helpers import configure_global_logging, load_engine_config
from ..output import (
    console,
    create_breaker_table,
    create_readiness_table,
    output_error,
    output_json,
)


def status(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML engine configuration",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output readiness as JSON",
    ),
) -> None:
    """Show whether the external CLI is installed, authenticated, and usable."""
    configure_global_logging(console)
    config = load_engine_config(config_file, console)

    program = config.backend.command
    readiness = ProviderReadiness(
        config.readiness,
        program=program,
        runner=ProcessRunner(classifier=ErrorClassifier(program)),
    )
    snapshot = asyncio.run(readiness.refresh())
    breaker = CircuitBreaker.from_config(config.circuit_breaker)

    if json_output:
        output_json(
            {
                "program": program,
                "ready": snapshot.ready,
                "readiness": snapshot.to_dict(),
                "circuit_breaker": breaker.snapshot().to_dict(),
            }
        )
    else:
        console.print(create_readiness_table(snapshot, program))
        if config.circuit_breaker.enabled:
            console.print(create_breaker_table(breaker.snapshot()))
        blocking = snapshot.blocking_error()
        if blocking is not None:
            output_error(blocking)
        else:
            console.print("[green]Ready[/green]")

    if not snapshot.ready:
        raise typer.Exit(1)
