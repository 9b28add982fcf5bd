"""Shared test helpers for Conduit tests."""

import asyncio
from collections.abc import Iterable

from conduit.backends.base import ExecutionResult, Invocation
from conduit.backends.readiness import ReadinessSnapshot
from conduit.core.errors import ClassifiedError, ErrorClassifier, ErrorCode
from conduit.execution.cancellation import CancellationToken


def success_result(stdout: str = "{}") -> ExecutionResult:
    return ExecutionResult(success=True, stdout=stdout, exit_code=0)


def failure_result(stderr: str, exit_code: int = 1) -> ExecutionResult:
    """A completed-but-failed result classified the way the runner would."""
    return ExecutionResult(
        success=False,
        stderr=stderr,
        exit_code=exit_code,
        error=ErrorClassifier().classify(stderr, exit_code=exit_code),
    )


def error_result(code: ErrorCode, **kwargs: object) -> ExecutionResult:
    return ExecutionResult(
        success=False,
        error=ClassifiedError.from_code(code),
        **kwargs,  # type: ignore[arg-type]
    )


class ScriptedRunner:
    """Process Runner double that returns queued results in order.

    Records every invocation it receives; the last result repeats once the
    script runs out.
    """

    def __init__(self, results: Iterable[ExecutionResult]) -> None:
        self.results = list(results)
        self.invocations: list[Invocation] = []

    @property
    def calls(self) -> int:
        return len(self.invocations)

    async def run(
        self, invocation: Invocation, cancel_token: CancellationToken | None = None
    ) -> ExecutionResult:
        self.invocations.append(invocation)
        index = min(len(self.invocations), len(self.results)) - 1
        template = self.results[index]
        # Fresh copy so the orchestrator can annotate attempts independently
        return ExecutionResult(
            success=template.success,
            stdout=template.stdout,
            stderr=template.stderr,
            exit_code=template.exit_code,
            error=template.error,
            outcome=template.outcome,
        )


class StaticReadiness:
    """Readiness double that always reports the given snapshot."""

    def __init__(self, snapshot: ReadinessSnapshot) -> None:
        self._snapshot = snapshot
        self.ensure_calls = 0

    @property
    def snapshot(self) -> ReadinessSnapshot:
        return self._snapshot

    async def ensure_ready(self) -> ReadinessSnapshot:
        self.ensure_calls += 1
        return self._snapshot


READY = ReadinessSnapshot(
    installed=True,
    authenticated=True,
    models=("gemini-2.0-flash",),
    version="1.2.3",
    compatible=True,
    auth_method="env:GEMINI_API_KEY",
)


class RecordingSleep:
    """Injectable sleep that records delays instead of waiting."""

    def __init__(self, cancel_on_call: int | None = None) -> None:
        self.delays: list[float] = []
        self.cancel_on_call = cancel_on_call

    async def __call__(self, delay: float, token: CancellationToken | None) -> bool:
        self.delays.append(delay)
        if self.cancel_on_call is not None and len(self.delays) >= self.cancel_on_call:
            if token is not None:
                token.cancel("test")
            return False
        return True


class HangingRunner:
    """Process Runner double whose run() blocks until the task is cancelled."""

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def run(
        self, invocation: Invocation, cancel_token: CancellationToken | None = None
    ) -> ExecutionResult:
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")
