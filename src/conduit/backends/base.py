"""Invocation and result types shared by the runner and the orchestrator."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from conduit.core.constants import PROCESS_DEFAULT_TIMEOUT_SECONDS
from conduit.core.errors import ClassifiedError, ErrorCode
from conduit.core.errors.signals import get_signal_name

ExecutionOutcome = Literal[
    "completed",     # process exited on its own
    "timeout",       # runner stopped it after the invocation timeout
    "cancelled",     # runner stopped it after the cancel token fired
    "launch_error",  # process could not be started
    "error",         # unexpected failure while supervising the process
    "rejected",      # orchestrator refused to launch (breaker, readiness, prompt)
]


@dataclass(frozen=True)
class Invocation:
    """One request to run the external program.

    Immutable; a new Invocation is built for every call.
    """

    program: str
    """Executable name or path (not sanitized)."""

    args: tuple[str, ...] = ()
    """Ordered arguments; sanitized by the runner before launch."""

    stdin: str | None = None
    """Payload piped to the process; stdin is closed when None."""

    timeout_seconds: float = PROCESS_DEFAULT_TIMEOUT_SECONDS
    """Hard limit on the process runtime."""

    env: Mapping[str, str] | None = None
    """Extra environment variables merged over the current environment."""

    cwd: str | None = None
    """Working directory for the process."""

    def __post_init__(self) -> None:
        if not self.program:
            raise ValueError("program must not be empty")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        # Accept any sequence for args but store a tuple
        if not isinstance(self.args, tuple):
            object.__setattr__(self, "args", tuple(self.args))

    @property
    def display(self) -> str:
        """Short description for logs: program plus argument count."""
        return f"{self.program} ({len(self.args)} args)"


@dataclass
class ExecutionResult:
    """Result of one process invocation (or of a whole retried operation).

    Produced once per Process Runner call. The orchestrator returns the
    result of the final attempt with ``attempts`` filled in, or a rejected
    result when it refuses to launch.
    """

    success: bool
    """True when the process exited with status 0."""

    stdout: str = ""
    """Captured standard output (trimmed on success)."""

    stderr: str = ""
    """Captured standard error."""

    exit_code: int | None = None
    """Exit code; negative when the process was killed by a signal."""

    error: ClassifiedError | None = None
    """Classified failure; None on success."""

    duration_seconds: float = 0.0
    """Wall-clock time spent in the process."""

    outcome: ExecutionOutcome = "completed"
    """How the invocation ended."""

    termination_signals: tuple[str, ...] = ()
    """Signals the runner sent while stopping the process, in order."""

    attempts: int = 1
    """Number of attempts made (set by the orchestrator)."""

    retry_delays: tuple[float, ...] = field(default=())
    """Backoff delays slept between attempts (set by the orchestrator)."""

    @property
    def exit_signal(self) -> str | None:
        """Name of the signal that killed the process, if any."""
        if self.exit_code is not None and self.exit_code < 0:
            return get_signal_name(-self.exit_code)
        return None

    @property
    def error_code(self) -> ErrorCode | None:
        return self.error.code if self.error else None

    @property
    def output(self) -> str:
        """Combined stderr and stdout, as used for classification."""
        return "\n".join(part for part in (self.stderr, self.stdout) if part)

    @classmethod
    def failure(
        cls,
        error: ClassifiedError,
        *,
        outcome: ExecutionOutcome = "rejected",
        attempts: int = 0,
    ) -> ExecutionResult:
        """Build a result for a failure where no process output exists."""
        return cls(success=False, error=error, outcome=outcome, attempts=attempts)
