"""ErrorClassifier for turning raw CLI output into ClassifiedError values.

Classification is an ordered list of case-insensitive rules over the text, the
exit code, and an optional context string. The first rule that matches
decides the error code; when none match the exit code decides, and
otherwise the error is UNKNOWN_ERROR.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from conduit.core.constants import TRUNCATE_DETAILS_CHARS
from conduit.core.logging import get_logger

from .codes import ErrorCode
from .models import ClassifiedError
from .signals import get_signal_name

_logger = get_logger("errors")

COMMAND_NOT_FOUND_EXIT_CODE = 127
"""Conventional shell exit status for a missing executable."""


# =============================================================================
# Default pattern strings, kept at module scope so they are reviewable as data.
# =============================================================================

_DEFAULT_NOT_FOUND_PATTERNS: list[str] = [
    r"command not found",
    r"not recognized",
    r"ENOENT",
    r"no such file or directory",
    r"not found in PATH",
]

_DEFAULT_VERSION_PATTERNS: list[str] = [
    r"version.*\b(incompatible|unsupported)\b",
    r"\b(incompatible|unsupported)\b.*version",
]

_DEFAULT_NOT_AUTHENTICATED_PATTERNS: list[str] = [
    r"not authenticated",
    r"authentication required",
    r"not logged in",
]

_DEFAULT_TOKEN_EXPIRED_PATTERNS: list[str] = [
    r"token expired",
    r"expired.*auth",
    r"auth.*expired",
]

_DEFAULT_INVALID_CREDENTIAL_PATTERNS: list[str] = [
    r"invalid credentials",
    r"invalid token",
    r"authentication failed",
]

_DEFAULT_PERMISSION_PATTERNS: list[str] = [
    r"permission denied",
    r"access denied",
    r"forbidden",
]

_DEFAULT_QUOTA_PATTERNS: list[str] = [
    r"quota.*exceeded",
    r"exceeded.*quota",
]

_DEFAULT_RATE_LIMIT_PATTERNS: list[str] = [
    r"rate.?limit",
    r"too many requests",
]

_DEFAULT_NETWORK_PATTERNS: list[str] = [
    r"network",
    r"connection",
]

_DEFAULT_TIMEOUT_PATTERNS: list[str] = [
    r"timed out",
]

_DEFAULT_INVALID_JSON_PATTERNS: list[str] = [
    r"json.*\b(invalid|malformed)\b",
    r"\b(invalid|malformed)\b.*json",
]

_DEFAULT_EMPTY_RESPONSE_PATTERNS: list[str] = [
    r"empty response",
    r"no response",
]

_DEFAULT_MALFORMED_PATTERNS: list[str] = [
    r"malformed",
    r"invalid format",
]


def _compile_patterns(strings: list[str]) -> list[re.Pattern[str]]:
    """Compile a list of regex strings into case-insensitive Pattern objects."""
    return [re.compile(p, re.IGNORECASE | re.DOTALL) for p in strings]


@dataclass(frozen=True)
class _TextRule:
    code: ErrorCode
    patterns: list[re.Pattern[str]]

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


class ErrorClassifier:
    """Classifies CLI failures from output text, exit code, and context.

    Rules are evaluated in a fixed order so that specific causes (missing
    binary, authentication) win over generic ones (network, non-zero exit).

    Example:
        classifier = ErrorClassifier(program="gemini")
        error = classifier.classify("network connection failed", exit_code=1)
        assert error.code == ErrorCode.NETWORK_CONNECTION_FAILED
    """

    def __init__(self, program: str = "gemini") -> None:
        """Initialize the classifier.

        Args:
            program: Name of the CLI executable, used to recognise
                "<program>: not found" messages from shells.
        """
        self._program = program
        not_found = _DEFAULT_NOT_FOUND_PATTERNS + [
            rf"{re.escape(program)}:\s*(command\s+)?not found"
        ]
        self._rules: list[_TextRule] = [
            _TextRule(ErrorCode.CLI_NOT_FOUND, _compile_patterns(not_found)),
            _TextRule(
                ErrorCode.CLI_VERSION_INCOMPATIBLE,
                _compile_patterns(_DEFAULT_VERSION_PATTERNS),
            ),
            _TextRule(
                ErrorCode.AUTH_NOT_AUTHENTICATED,
                _compile_patterns(_DEFAULT_NOT_AUTHENTICATED_PATTERNS),
            ),
            _TextRule(
                ErrorCode.AUTH_TOKEN_EXPIRED,
                _compile_patterns(_DEFAULT_TOKEN_EXPIRED_PATTERNS),
            ),
            _TextRule(
                ErrorCode.AUTH_INVALID_CREDENTIALS,
                _compile_patterns(_DEFAULT_INVALID_CREDENTIAL_PATTERNS),
            ),
            _TextRule(
                ErrorCode.AUTH_PERMISSION_DENIED,
                _compile_patterns(_DEFAULT_PERMISSION_PATTERNS),
            ),
            _TextRule(ErrorCode.QUOTA_EXCEEDED, _compile_patterns(_DEFAULT_QUOTA_PATTERNS)),
            _TextRule(
                ErrorCode.RATE_LIMIT_EXCEEDED,
                _compile_patterns(_DEFAULT_RATE_LIMIT_PATTERNS),
            ),
            _TextRule(
                ErrorCode.NETWORK_CONNECTION_FAILED,
                _compile_patterns(_DEFAULT_NETWORK_PATTERNS),
            ),
        ]
        self._timeout_patterns = _compile_patterns(_DEFAULT_TIMEOUT_PATTERNS)
        self._late_rules: list[_TextRule] = [
            _TextRule(
                ErrorCode.RESPONSE_INVALID_JSON,
                _compile_patterns(_DEFAULT_INVALID_JSON_PATTERNS),
            ),
            _TextRule(
                ErrorCode.RESPONSE_EMPTY,
                _compile_patterns(_DEFAULT_EMPTY_RESPONSE_PATTERNS),
            ),
            _TextRule(
                ErrorCode.RESPONSE_MALFORMED,
                _compile_patterns(_DEFAULT_MALFORMED_PATTERNS),
            ),
        ]

    @property
    def program(self) -> str:
        return self._program

    def classify(
        self,
        raw_text: str,
        exit_code: int | None = None,
        context: str | None = None,
    ) -> ClassifiedError:
        """Classify a failure.

        Args:
            raw_text: Combined stderr/stdout, or an exception message.
            exit_code: Process exit code; negative means killed by a signal.
            context: Optional free-form context (e.g. "timeout").

        Returns:
            ClassifiedError with technical details attached.
        """
        text = raw_text or ""
        code = self._match(text, exit_code, context)
        message = self._message_for(code, text, exit_code)
        details = text[:TRUNCATE_DETAILS_CHARS] if text else None

        _logger.debug(
            "error.classified",
            code=code.value,
            name=code.name,
            category=code.category.value,
            exit_code=exit_code,
            context=context,
        )

        return ClassifiedError.from_code(
            code,
            message=message,
            exit_code=exit_code,
            technical_details=details,
            context={"context": context} if context else None,
        )

    def classify_exception(self, exc: BaseException, context: str | None = None) -> ClassifiedError:
        """Classify an exception raised while launching or talking to a process."""
        if isinstance(exc, PermissionError):
            return ClassifiedError.from_code(
                ErrorCode.AUTH_PERMISSION_DENIED,
                message=f"Permission denied launching {self._program}: {exc}",
                technical_details=str(exc),
            )
        if isinstance(exc, FileNotFoundError):
            return ClassifiedError.from_code(
                ErrorCode.CLI_NOT_FOUND,
                message=f"{self._program} executable not found: {exc}",
                technical_details=str(exc),
            )
        if isinstance(exc, MemoryError):
            return ClassifiedError.from_code(
                ErrorCode.EXEC_RESOURCE_EXHAUSTED,
                technical_details=repr(exc),
            )
        return self.classify(f"{type(exc).__name__}: {exc}", context=context)

    def _match(self, text: str, exit_code: int | None, context: str | None) -> ErrorCode:
        if exit_code == COMMAND_NOT_FOUND_EXIT_CODE:
            return ErrorCode.CLI_NOT_FOUND

        for rule in self._rules:
            if rule.matches(text):
                return rule.code

        if (context and "timeout" in context.lower()) or any(
            p.search(text) for p in self._timeout_patterns
        ):
            return ErrorCode.EXEC_TIMEOUT

        if exit_code is not None and exit_code < 0:
            return ErrorCode.EXEC_PROCESS_CRASHED

        for rule in self._late_rules:
            if rule.matches(text):
                return rule.code

        if exit_code is not None and exit_code > 0:
            return ErrorCode.EXEC_COMMAND_FAILED

        return ErrorCode.UNKNOWN_ERROR

    def _message_for(self, code: ErrorCode, text: str, exit_code: int | None) -> str:
        base = code.definition.message
        if code == ErrorCode.EXEC_PROCESS_CRASHED and exit_code is not None:
            return f"{base} ({get_signal_name(-exit_code)})"
        if code == ErrorCode.EXEC_COMMAND_FAILED and exit_code is not None:
            first_line = _first_line(text)
            suffix = f": {first_line}" if first_line else ""
            return f"{base} with exit code {exit_code}{suffix}"
        return base


def _first_line(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped[:200]
    return ""
