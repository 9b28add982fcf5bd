"""Run command for Conduit CLI.

Runs one operation (extraction, solution, debugging) through the retry
orchestrator and prints the extracted data or a classified error.

Exit codes:
  0: Operation succeeded
  1: Operation failed
  2: Config cannot be loaded
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer

from conduit.backends.base import ExecutionResult
from conduit.execution.cancellation import CancellationToken
from conduit.execution.operations import OperationResult, OperationType, ProcessingService
from conduit.execution.orchestrator import RetryOrchestrator

from ..helpers import (
    configure_global_logging,
    is_quiet,
    is_verbose,
    load_engine_config,
    parse_prompt_vars,
)
from ..output import ConsoleProgressSink, console, output_error, output_json


def run(
    operation: OperationType = typer.Argument(
        ...,
        help="Operation to run",
        case_sensitive=False,
    ),
    prompt_var: list[str] | None = typer.Option(
        None,
        "--prompt-var",
        "-p",
        help="Prompt variable as key=value (repeatable)",
    ),
    images: int = typer.Option(
        0,
        "--images",
        min=0,
        help="Number of images accompanying the request",
    ),
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
        help="Output the result as JSON",
    ),
) -> None:
    """Run an operation against the external CLI with retries."""
    configure_global_logging(console)
    config = load_engine_config(config_file, console)
    variables = parse_prompt_vars(prompt_var)

    sink = None if (json_output or is_quiet()) else ConsoleProgressSink(console)
    orchestrator = RetryOrchestrator.from_config(config, sink=sink)
    service = ProcessingService(orchestrator, backend=config.backend)

    result = asyncio.run(_run(service, operation, variables, images))

    if json_output:
        output_json(result.to_dict())
    elif result.success:
        _print_success(result)
    elif result.error is not None:
        output_error(result.error, degradation=result.degradation)

    if not result.success:
        raise typer.Exit(1)


async def _run(
    service: ProcessingService,
    operation: OperationType,
    variables: dict[str, str],
    images: int,
) -> OperationResult:
    token = CancellationToken()
    try:
        return await service.run_operation(operation, variables, images=images, cancel_token=token)
    except asyncio.CancelledError:
        token.cancel("interrupted")
        raise


def _print_success(result: OperationResult) -> None:
    if result.recovered:
        console.print("[yellow]Response was not structured; showing recovered text.[/yellow]")
        console.print(result.data.get("content", ""))
        return
    if isinstance(result.data, str):
        console.print(result.data)
    else:
        console.print_json(json.dumps(result.data))
    if result.attempts > 1:
        console.print(f"[dim]Succeeded after {result.attempts} attempts[/dim]")
    if is_verbose() and result.execution is not None:
        _print_execution_details(result, result.execution)


def _print_execution_details(result: OperationResult, execution: ExecutionResult) -> None:
    delays = ", ".join(f"{d:.1f}s" for d in execution.retry_delays) or "none"
    strategy = result.extraction.strategy if result.extraction else "n/a"
    console.print(f"[dim]operation {result.operation_id}[/dim]")
    console.print(f"[dim]{execution.duration_seconds:.2f}s in CLI, backoff {delays}[/dim]")
    console.print(f"[dim]extracted via {strategy}[/dim]")
