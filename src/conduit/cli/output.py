"""Rich output formatting for the Conduit CLI.

Tables and panels for readiness, breaker state, classified errors, and
operation results, plus a progress sink that prints retry notices.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from conduit.backends.readiness import ReadinessSnapshot
    from conduit.core.errors import ClassifiedError
    from conduit.execution.circuit_breaker import CircuitBreakerState
    from conduit.execution.progress import ProgressMessage

# =============================================================================
# Shared console instance
# =============================================================================

console = Console()


# =============================================================================
# Color schemes
# =============================================================================


class StatusColors:
    """Color mappings for severities and breaker states."""

    SEVERITY: dict[str, str] = {
        "critical": "red",
        "high": "red",
        "medium": "yellow",
        "low": "dim",
    }

    PROGRESS: dict[str, str] = {
        "info": "cyan",
        "warning": "yellow",
        "error": "red",
    }

    BREAKER: dict[str, str] = {
        "closed": "green",
        "half_open": "yellow",
        "open": "red",
    }

    @classmethod
    def get_severity_color(cls, severity: str) -> str:
        return cls.SEVERITY.get(severity, "white")

    @classmethod
    def get_breaker_color(cls, state: str) -> str:
        return cls.BREAKER.get(state, "white")


def format_duration(seconds: float | None) -> str:
    """Format a duration in seconds as a short human-readable string."""
    if seconds is None:
        return "N/A"
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


# =============================================================================
# Tables
# =============================================================================


def create_readiness_table(snapshot: ReadinessSnapshot, program: str) -> Table:
    """Table summarizing a readiness snapshot."""
    table = Table(title=f"{program} readiness", show_header=False)
    table.add_column("Property", style="bold")
    table.add_column("Value")

    table.add_row("Installed", _yes_no(snapshot.installed))
    table.add_row("Version", snapshot.version or "-")
    table.add_row("Compatible", _yes_no(snapshot.compatible))
    table.add_row("Authenticated", _yes_no(snapshot.authenticated))
    table.add_row("Auth source", snapshot.auth_method or "-")
    table.add_row("Models", ", ".join(snapshot.models) or "-")
    if snapshot.checked_at is not None:
        table.add_row("Checked", snapshot.checked_at.strftime("%Y-%m-%d %H:%M:%S UTC"))
    if snapshot.error is not None:
        table.add_row("Error", f"[red]{escape(str(snapshot.error))}[/red]")
    return table


def create_breaker_table(state: CircuitBreakerState) -> Table:
    table = Table(title="Circuit breaker", show_header=False)
    table.add_column("Property", style="bold")
    table.add_column("Value")

    color = StatusColors.get_breaker_color(state.state.value)
    table.add_row("State", f"[{color}]{state.state.value}[/{color}]")
    table.add_row("Failures", f"{state.consecutive_failures}/{state.failure_threshold}")
    table.add_row("Cooldown", format_duration(state.cooldown_seconds))
    return table


# =============================================================================
# Panels
# =============================================================================


def create_error_panel(error: ClassifiedError, degradation: str | None = None) -> Panel:
    """Panel showing "<Category> Error", the message, and remediation steps."""
    rendered = error.format_for_user()
    color = StatusColors.get_severity_color(rendered.severity)

    lines = [escape(rendered.message), ""]
    if rendered.remediation:
        lines.append("[bold]What you can do:[/bold]")
        lines.extend(f"  {i}. {escape(step)}" for i, step in enumerate(rendered.remediation, 1))
    if rendered.help_url:
        lines.extend(["", f"[dim]More help: {rendered.help_url}[/dim]"])
    if degradation:
        lines.extend(["", f"[dim]{escape(degradation)}[/dim]"])

    return Panel(
        "\n".join(lines).rstrip(),
        title=f"[{color}]{rendered.title}[/{color}] [dim]({error.code.value})[/dim]",
        border_style=color,
    )


def output_json(payload: dict[str, Any], console_instance: Console | None = None) -> None:
    out = console_instance or console
    out.print_json(json.dumps(payload, default=str))


def output_error(
    error: ClassifiedError,
    *,
    degradation: str | None = None,
    json_output: bool = False,
    console_instance: Console | None = None,
) -> None:
    """Print a classified error as a panel, or as JSON."""
    out = console_instance or console
    if json_output:
        payload: dict[str, Any] = {"success": False, "error": error.to_dict()}
        if degradation:
            payload["degradation"] = degradation
        output_json(payload, out)
        return
    out.print(create_error_panel(error, degradation))


class ConsoleProgressSink:
    """Progress sink that prints notifications to a rich console."""

    def __init__(self, console_instance: Console | None = None) -> None:
        self.console = console_instance or console

    def __call__(self, message: ProgressMessage) -> None:
        color = StatusColors.PROGRESS.get(message.severity, "white")
        self.console.print(f"[{color}]{escape(message.text)}[/{color}]")
