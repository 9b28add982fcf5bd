"""Extract command for Conduit CLI.

Runs the Response Extractor (with recovery) over captured CLI output, read
from a file or stdin. Useful for checking how a given response is parsed.
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from conduit.execution.extractor import ResponseExtractor

from ..helpers import ErrorMessages, configure_global_logging
from ..output import console, output_error, output_json


def extract(
    source: str = typer.Argument(
        "-",
        help="File containing captured output, or '-' for stdin",
    ),
    no_recover: bool = typer.Option(
        False,
        "--no-recover",
        help="Do not fall back to plain-text recovery",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the result as JSON",
    ),
) -> None:
    """Extract structured data from captured CLI output."""
    configure_global_logging(console)

    try:
        raw = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]{ErrorMessages.INPUT_READ_ERROR}:[/red] {e}")
        raise typer.Exit(2) from None

    extractor = ResponseExtractor()
    result = extractor.extract(raw)
    if not result.success and not no_recover:
        original = result.error.message if result.error else None
        result = extractor.recover(raw, original)

    if json_output:
        output_json(
            {
                "success": result.success,
                "strategy": result.strategy,
                "data": result.data,
                "error": result.error.to_dict() if result.error else None,
            }
        )
    elif result.success:
        console.print(f"[dim]strategy: {result.strategy}[/dim]")
        output_json({"data": result.data})
    elif result.error is not None:
        output_error(result.error)

    if not result.success:
        raise typer.Exit(1)
