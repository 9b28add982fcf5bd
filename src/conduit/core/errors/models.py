"""Data models for error classification.

This module provides:
- ClassifiedError: A single categorized failure with remediation guidance
- UserFacingError: The rendering of a ClassifiedError shown to end users
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .codes import ErrorCategory, ErrorCode, Severity


@dataclass(frozen=True)
class UserFacingError:
    """What a user sees for a terminal failure.

    Never contains a raw stack trace or a bare exit code.
    """

    title: str
    """Category heading, e.g. "Network Error"."""

    message: str
    """Short human-readable explanation."""

    remediation: tuple[str, ...]
    """Ordered, concrete steps the user can take."""

    severity: str
    """Severity label: critical, high, medium, or low."""

    help_url: str | None = None
    """Optional documentation link."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "remediation": list(self.remediation),
            "severity": self.severity,
            "help_url": self.help_url,
        }


@dataclass(frozen=True)
class ClassifiedError:
    """A structured, categorized failure.

    Derived deterministically from raw text and exit code by the
    ErrorClassifier, or built directly from an ErrorCode with from_code().
    Instances are immutable.
    """

    code: ErrorCode
    """Stable error code."""

    category: ErrorCategory
    """High-level category (drives backoff tier and breaker accounting)."""

    severity: Severity
    """Severity level."""

    message: str
    """Technical message (may include specifics such as the CLI's own error text)."""

    user_message: str
    """Message shown to end users."""

    remediation: tuple[str, ...] = ()
    """Ordered remediation steps."""

    retryable: bool = False
    """Whether the orchestrator may retry after this error."""

    help_url: str | None = None
    """Optional documentation link."""

    exit_code: int | None = None
    """Exit code of the process, when one was observed."""

    technical_details: str | None = None
    """Raw text the classification was derived from (truncated)."""

    retry_after_seconds: float | None = None
    """For EXEC_UNAVAILABLE: estimated seconds until the breaker admits a probe."""

    context: dict[str, Any] = field(default_factory=dict, compare=False)
    """Free-form diagnostic context (command, operation, ...)."""

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        *,
        message: str | None = None,
        exit_code: int | None = None,
        technical_details: str | None = None,
        retry_after_seconds: float | None = None,
        context: dict[str, Any] | None = None,
    ) -> ClassifiedError:
        """Build an error from the static definition of ``code``.

        Args:
            code: The error code.
            message: Override for the technical message.
            exit_code: Observed process exit code.
            technical_details: Raw text behind the classification.
            retry_after_seconds: Remaining breaker cooldown, if any.
            context: Extra diagnostic context.
        """
        definition = code.definition
        return cls(
            code=code,
            category=definition.category,
            severity=definition.severity,
            message=message or definition.message,
            user_message=definition.user_message,
            remediation=definition.remediation,
            retryable=definition.retryable,
            help_url=definition.help_url,
            exit_code=exit_code,
            technical_details=technical_details,
            retry_after_seconds=retry_after_seconds,
            context=dict(context or {}),
        )

    @property
    def title(self) -> str:
        return self.category.title

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def format_for_user(self) -> UserFacingError:
        """Render this error for display: title, message, ordered steps."""
        return UserFacingError(
            title=self.title,
            message=self.user_message,
            remediation=self.remediation,
            severity=self.severity.label,
            help_url=self.help_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and JSON output."""
        return {
            "code": self.code.value,
            "name": self.code.name,
            "category": self.category.value,
            "severity": self.severity.label,
            "message": self.message,
            "user_message": self.user_message,
            "remediation": list(self.remediation),
            "retryable": self.retryable,
            "help_url": self.help_url,
            "exit_code": self.exit_code,
            "retry_after_seconds": self.retry_after_seconds,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.title}: {self.message}"
