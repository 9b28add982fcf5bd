"""Turns free-form CLI output into structured data.

The CLI is asked for JSON but routinely wraps it in prose, code fences, or
terminal color codes. ResponseExtractor tries a fixed sequence of named
strategies against the cleaned text, validates the first decoded value
against the record shapes callers understand, and, when all of that fails,
offers recover() to salvage plain text or explain the failure.

Neither extract() nor recover() raises; failures come back as an
ExtractionResult carrying a ClassifiedError.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from conduit.core.constants import RECOVERY_MIN_CONTENT_CHARS, TRUNCATE_PREVIEW_CHARS
from conduit.core.errors import ClassifiedError, ErrorCode
from conduit.core.logging import get_logger

_logger = get_logger("extractor")

# =============================================================================
# Text cleanup
# =============================================================================

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b\][^\x07]*(?:\x07|\x1b\\)")
_CHROME_RE = re.compile(r"^[ \t]*[>$#*+\-]+[ \t]*", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")

_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)
_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)

_ERROR_LINE_RE = re.compile(r"error[:\s]+(.*)", re.IGNORECASE)
_AUTH_PHRASES = (
    "not authenticated",
    "authentication",
    "please login",
    "please log in",
    "login required",
    "unauthorized",
)
_INSTALL_PHRASES = ("command not found", "not recognized")


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences."""
    return _ANSI_RE.sub("", text)


def _preview(text: str, limit: int = TRUNCATE_PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of extract() or recover()."""

    success: bool
    data: Any = None
    error: ClassifiedError | None = None
    strategy: str | None = None
    """Name of the strategy that produced ``data`` ("recovered" for recover())."""

    raw_preview: str = ""

    @classmethod
    def failed(cls, error: ClassifiedError, raw: str = "") -> ExtractionResult:
        return cls(success=False, error=error, raw_preview=_preview(raw))


# =============================================================================
# Strategies
# =============================================================================


class ExtractionStrategy(Protocol):
    """A named way of finding a JSON value in cleaned output."""

    name: str

    def attempt(self, text: str) -> tuple[bool, Any]:
        """Return ``(True, value)`` on a successful decode, else ``(False, None)``."""
        ...


def _try_decode(candidate: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except ValueError:
        return False, None


@dataclass(frozen=True)
class EmbeddedJsonStrategy:
    """JSON embedded in surrounding prose.

    Tries the widest ``{...}`` and ``[...]`` spans (whichever opens first
    goes first, so an array of objects is not cut down to one element),
    then scans left to right for the first position where a JSON value
    decodes.
    """

    name: str = "embedded_json"

    def attempt(self, text: str) -> tuple[bool, Any]:
        matches = [m for m in (_OBJECT_RE.search(text), _ARRAY_RE.search(text)) if m]
        for match in sorted(matches, key=lambda m: m.start()):
            ok, value = _try_decode(match.group(0))
            if ok:
                return True, value

        decoder = json.JSONDecoder()
        for index, char in enumerate(text):
            if char not in "{[":
                continue
            try:
                value, _ = decoder.raw_decode(text, index)
            except ValueError:
                continue
            return True, value
        return False, None


@dataclass(frozen=True)
class FencedBlockStrategy:
    """JSON inside a Markdown code fence, optionally tagged ``json``."""

    name: str = "fenced_block"

    def attempt(self, text: str) -> tuple[bool, Any]:
        for match in _FENCE_RE.finditer(text):
            ok, value = _try_decode(match.group(1).strip())
            if ok:
                return True, value
        return False, None


@dataclass(frozen=True)
class WholeOutputStrategy:
    """The entire cleaned output is a JSON document."""

    name: str = "whole_output"

    def attempt(self, text: str) -> tuple[bool, Any]:
        return _try_decode(text)


DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    EmbeddedJsonStrategy(),
    FencedBlockStrategy(),
    WholeOutputStrategy(),
)


# =============================================================================
# Validation
# =============================================================================

_OPTIONAL_STRING_FIELDS = ("constraints", "example_input", "example_output")


def validate_structure(data: Any) -> str | None:
    """Check a decoded value against the accepted record shapes.

    Returns:
        None when the value is acceptable, otherwise a reason string.
    """
    if isinstance(data, str):
        return None
    if isinstance(data, list):
        return None
    if not isinstance(data, dict):
        return f"Unexpected top-level type: {type(data).__name__}"

    if "problem_statement" in data:
        statement = data["problem_statement"]
        if not isinstance(statement, str) or not statement.strip():
            return "problem_statement must be a non-empty string"
        for key in _OPTIONAL_STRING_FIELDS:
            if key in data and data[key] is not None and not isinstance(data[key], str):
                return f"{key} must be a string"

    if "code" in data and not isinstance(data["code"], str):
        return "code must be a string"
    if "thoughts" in data and not isinstance(data["thoughts"], (list, str)):
        return "thoughts must be a list or a string"

    for key in ("content", "text"):
        if key in data and not isinstance(data[key], str):
            return f"{key} must be a string"

    return None


# =============================================================================
# Extractor
# =============================================================================


class ResponseExtractor:
    """Parses structured data out of raw CLI output.

    Example:
        extractor = ResponseExtractor()
        result = extractor.extract(stdout)
        if not result.success:
            result = extractor.recover(stdout, result.error.message)
    """

    def __init__(self, strategies: Sequence[ExtractionStrategy] | None = None) -> None:
        self.strategies: tuple[ExtractionStrategy, ...] = tuple(
            strategies if strategies is not None else DEFAULT_STRATEGIES
        )

    def extract(self, raw_output: str) -> ExtractionResult:
        """Find, decode, and validate structured data in ``raw_output``."""
        cleaned = strip_ansi(raw_output or "").strip()
        if not cleaned:
            return ExtractionResult.failed(
                ClassifiedError.from_code(
                    ErrorCode.RESPONSE_EMPTY, message="CLI returned empty response"
                ),
                raw_output or "",
            )

        for strategy in self.strategies:
            matched, value = strategy.attempt(cleaned)
            if not matched:
                continue

            if isinstance(value, dict) and value.get("error"):
                _logger.debug("extractor.error_field", strategy=strategy.name)
                return ExtractionResult.failed(
                    ClassifiedError.from_code(
                        ErrorCode.RESPONSE_VALIDATION_FAILED,
                        message=str(value["error"]),
                        technical_details=_preview(cleaned),
                    ),
                    cleaned,
                )

            problem = validate_structure(value)
            if problem is not None:
                _logger.debug("extractor.validation_failed", strategy=strategy.name, reason=problem)
                return ExtractionResult.failed(
                    ClassifiedError.from_code(
                        ErrorCode.RESPONSE_VALIDATION_FAILED,
                        message=f"Invalid response structure: {problem}",
                        technical_details=_preview(cleaned),
                    ),
                    cleaned,
                )

            _logger.debug("extractor.extracted", strategy=strategy.name)
            return ExtractionResult(
                success=True, data=value, strategy=strategy.name, raw_preview=_preview(cleaned)
            )

        return ExtractionResult.failed(
            ClassifiedError.from_code(
                ErrorCode.RESPONSE_INVALID_JSON,
                message="No valid structured data found in CLI response",
                technical_details=_preview(cleaned),
            ),
            cleaned,
        )

    def recover(self, raw_output: str, original_error: str | None = None) -> ExtractionResult:
        """Salvage something useful after extract() failed.

        Returns plain-text content when there is enough of it, otherwise an
        error describing what the output most likely means.
        """
        raw = raw_output or ""
        cleaned = self._clean_for_recovery(raw)

        if len(cleaned) > RECOVERY_MIN_CONTENT_CHARS:
            _logger.info("extractor.recovered_text", chars=len(cleaned))
            return ExtractionResult(
                success=True,
                data={
                    "content": cleaned,
                    "recovered": True,
                    "original_error": original_error,
                },
                strategy="recovered",
                raw_preview=_preview(raw),
            )

        stripped = strip_ansi(raw)
        error_match = _ERROR_LINE_RE.search(stripped)
        if error_match:
            return ExtractionResult.failed(
                ClassifiedError.from_code(
                    ErrorCode.EXEC_COMMAND_FAILED,
                    message=f"CLI error: {error_match.group(1).strip()}",
                    technical_details=_preview(raw),
                ),
                raw,
            )

        lowered = stripped.lower()
        if any(phrase in lowered for phrase in _AUTH_PHRASES):
            return ExtractionResult.failed(
                ClassifiedError.from_code(
                    ErrorCode.AUTH_NOT_AUTHENTICATED, technical_details=_preview(raw)
                ),
                raw,
            )
        if any(phrase in lowered for phrase in _INSTALL_PHRASES):
            return ExtractionResult.failed(
                ClassifiedError.from_code(ErrorCode.CLI_NOT_FOUND, technical_details=_preview(raw)),
                raw,
            )

        return ExtractionResult.failed(
            ClassifiedError.from_code(
                ErrorCode.RESPONSE_MALFORMED,
                message=(
                    "Failed to parse CLI response: "
                    f"{original_error or 'no structured data found'}. "
                    f"Raw output: {_preview(raw)}"
                ),
                technical_details=_preview(raw),
            ),
            raw,
        )

    @staticmethod
    def _clean_for_recovery(raw: str) -> str:
        text = strip_ansi(raw)
        text = _CHROME_RE.sub("", text)
        text = _BLANK_RUN_RE.sub("\n\n", text)
        return text.strip()


__all__ = [
    "DEFAULT_STRATEGIES",
    "EmbeddedJsonStrategy",
    "ExtractionResult",
    "ExtractionStrategy",
    "FencedBlockStrategy",
    "ResponseExtractor",
    "WholeOutputStrategy",
    "strip_ansi",
    "validate_structure",
]
