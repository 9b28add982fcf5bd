"""User-visible progress notifications for retried operations.

The orchestrator reports retries and final failures to a sink supplied by
the caller (a UI, the CLI console, a test list). Delivery is
fire-and-forget: a sink that raises is logged and otherwise ignored, so a
broken UI can never fail an operation.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from conduit.core.errors import ClassifiedError, Severity
from conduit.core.logging import get_logger
from conduit.utils.time import utc_now

_logger = get_logger("progress")

ProgressSeverity = Literal["info", "warning", "error"]


@dataclass(frozen=True)
class ProgressMessage:
    """One notification for the user."""

    text: str
    severity: ProgressSeverity = "info"
    timestamp: datetime = field(default_factory=utc_now)


ProgressSink = Callable[[ProgressMessage], None]


def retry_message(error: ClassifiedError, delay: float, attempt: int, max_attempts: int) -> str:
    """Text announcing an upcoming retry.

    Example:
        "Network Error: Retrying in 3 seconds... (attempt 1/3)"
    """
    return (
        f"{error.title}: Retrying in {math.ceil(delay)} seconds... "
        f"(attempt {attempt}/{max_attempts})"
    )


def failure_message(error: ClassifiedError) -> str:
    return f"CLI command failed: {error.user_message}"


def failure_severity(error: ClassifiedError) -> ProgressSeverity:
    """``error`` for critical/high failures, ``warning`` otherwise."""
    return "error" if error.severity <= Severity.HIGH else "warning"


class ProgressNotifier:
    """Delivers ProgressMessages to an optional sink, never raising."""

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self.sink = sink

    def notify(self, text: str, severity: ProgressSeverity = "info") -> ProgressMessage:
        message = ProgressMessage(text=text, severity=severity)
        if self.sink is None:
            return message
        try:
            self.sink(message)
        except Exception as e:
            _logger.warning("progress.sink_failed", error=str(e), text=text)
        return message

    def retrying(
        self, error: ClassifiedError, delay: float, attempt: int, max_attempts: int
    ) -> ProgressMessage:
        return self.notify(retry_message(error, delay, attempt, max_attempts), "warning")

    def failed(self, error: ClassifiedError) -> ProgressMessage:
        return self.notify(failure_message(error), failure_severity(error))

    def recovered(self, attempts: int) -> ProgressMessage:
        return self.notify(f"CLI command succeeded after {attempts} attempts", "info")


__all__ = [
    "ProgressMessage",
    "ProgressNotifier",
    "ProgressSeverity",
    "ProgressSink",
    "failure_message",
    "failure_severity",
    "retry_message",
]
