"""Structured logging for Conduit.

Everything logs through structlog via ``get_logger(component)``. Event names
are dotted snake_case (``retry.scheduled``, ``runner.timeout``). Operation
correlation fields come from an ``OperationContext`` held in a ContextVar, so
concurrent operations on one event loop never mix their fields.

Usage:
    configure_logging(level="DEBUG", format="json", file_path=Path("conduit.log"))

    logger = get_logger("orchestrator")
    with with_context(OperationContext(operation_type="extraction")):
        logger.info("retry.scheduled", attempt=2, delay_seconds=2.1)

Output goes through stdlib handlers, each with its own structlog renderer:
console text on stderr, JSON lines in the log file (or on stdout for
``format="json"`` without a file).
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from conduit.utils.time import utc_now

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console", "both"]

SENSITIVE_PATTERNS = frozenset(
    {
        "api_key",
        "apikey",
        "api-key",
        "token",
        "secret",
        "password",
        "credential",
        "bearer",
        "authorization",
    }
)
"""Substrings that mark a field name as sensitive (matched case-insensitively)."""

REDACTED = "[REDACTED]"

_MEGABYTE = 1024 * 1024


# =============================================================================
# Operation context
# =============================================================================


@dataclass(frozen=True)
class OperationContext:
    """Correlation fields for one logical operation.

    Attributes:
        operation_id: UUID shared by every log line of the operation.
        operation_type: "extraction", "solution" or "debugging".
        attempt: Attempt number while inside the retry loop.
        component: Component handling the current step.
    """

    operation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    operation_type: str | None = None
    attempt: int | None = None
    component: str = "unknown"

    def with_attempt(self, attempt: int) -> OperationContext:
        return replace(self, attempt=attempt)

    def with_component(self, component: str) -> OperationContext:
        return replace(self, component=component)

    def to_dict(self) -> dict[str, Any]:
        """Fields for a log entry; unset optional fields are left out."""
        fields: dict[str, Any] = {
            "operation_id": self.operation_id,
            "component": self.component,
            "operation_type": self.operation_type,
            "attempt": self.attempt,
        }
        return {key: value for key, value in fields.items() if value is not None}


_current_context: ContextVar[OperationContext | None] = ContextVar(
    "conduit_operation_context", default=None
)


def get_current_context() -> OperationContext | None:
    return _current_context.get()


@contextmanager
def with_context(ctx: OperationContext) -> Iterator[OperationContext]:
    """Make ``ctx`` the current operation context inside the block.

    The previous context (if any) is restored on exit, including when the
    block raises.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


# =============================================================================
# Processors
# =============================================================================


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in SENSITIVE_PATTERNS)


def _sanitize_value(key: str, value: Any) -> Any:
    return REDACTED if _is_sensitive(key) else value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Redact sensitive keys, including keys of directly nested mappings."""
    for key, value in list(event_dict.items()):
        if isinstance(value, Mapping):
            event_dict[key] = {k: _sanitize_value(str(k), v) for k, v in value.items()}
        else:
            event_dict[key] = _sanitize_value(key, value)
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Merge the current OperationContext; explicitly passed keys win."""
    ctx = get_current_context()
    if ctx is None:
        return event_dict
    for key, value in ctx.to_dict().items():
        event_dict.setdefault(key, value)
    return event_dict


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = utc_now().isoformat()
    return event_dict


def _shared_processors(include_timestamps: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _add_context,
        _sanitize_event_dict,
    ]
    if include_timestamps:
        processors.append(_add_timestamp)
    processors += [
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    return processors


# =============================================================================
# Logger wrapper
# =============================================================================


class ConduitLogger:
    """Component-scoped logger.

    The structlog logger is looked up on every call rather than cached, so
    module-level loggers created at import time follow whatever
    configure_logging() sets up later.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    @property
    def component(self) -> str:
        return self._component

    def bind(self, **context: Any) -> ConduitLogger:
        """Return a new logger carrying extra fields."""
        return self._derive({**self._context, **context})

    def unbind(self, *keys: str) -> ConduitLogger:
        """Return a new logger without the given fields."""
        return self._derive({k: v for k, v in self._context.items() if k not in keys})

    def _derive(self, context: dict[str, Any]) -> ConduitLogger:
        derived = ConduitLogger.__new__(ConduitLogger)
        derived._component = self._component
        derived._context = context
        return derived

    def _emit(self, method: str, event: str, fields: dict[str, Any]) -> None:
        bound = structlog.get_logger().bind(**self._context)
        getattr(bound, method)(event, **fields)

    def debug(self, event: str, **kw: Any) -> None:
        self._emit("debug", event, kw)

    def info(self, event: str, **kw: Any) -> None:
        self._emit("info", event, kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._emit("warning", event, kw)

    def error(self, event: str, **kw: Any) -> None:
        self._emit("error", event, kw)

    def critical(self, event: str, **kw: Any) -> None:
        self._emit("critical", event, kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._emit("exception", event, kw)


def get_logger(component: str, **initial_context: Any) -> ConduitLogger:
    """Return a logger bound to ``component`` (e.g. "runner", "readiness")."""
    return ConduitLogger(component, **initial_context)


# =============================================================================
# Configuration
# =============================================================================


def _handler(target: logging.Handler, renderer: Processor, level: int) -> logging.Handler:
    target.setLevel(level)
    target.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    return target


def _build_handlers(
    format: LogFormat,  # noqa: A002
    file_path: Path | None,
    level: int,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    json_renderer = structlog.processors.JSONRenderer()

    if format in ("console", "both"):
        console_renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        handlers.append(_handler(logging.StreamHandler(sys.stderr), console_renderer, level))

    if format in ("json", "both"):
        if file_path is None:
            handlers.append(_handler(logging.StreamHandler(sys.stdout), json_renderer, level))
        else:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
            handlers.append(_handler(rotating, json_renderer, level))

    return handlers


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
    include_timestamps: bool = True,
) -> None:
    """Configure structlog and the root stdlib logger.

    Safe to call more than once; each call replaces the root handlers.

    Args:
        level: Minimum level to emit.
        format: "console" (stderr), "json" (file_path, else stdout), or
            "both" (console on stderr plus JSON lines in file_path).
        file_path: Log file; rotated at ``max_file_size_mb``.
        max_file_size_mb: Rotation size.
        backup_count: Rotated files to keep.
        include_timestamps: Add an ISO 8601 UTC ``timestamp`` field.

    Raises:
        ValueError: ``format="both"`` without ``file_path``.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    numeric_level = getattr(logging, level)
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in _build_handlers(
        format, file_path, numeric_level, max_file_size_mb * _MEGABYTE, backup_count
    ):
        root.addHandler(handler)
    root.setLevel(numeric_level)

    structlog.configure(
        processors=[
            *_shared_processors(include_timestamps),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


__all__ = [
    "REDACTED",
    "SENSITIVE_PATTERNS",
    "ConduitLogger",
    "LogFormat",
    "LogLevel",
    "OperationContext",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
