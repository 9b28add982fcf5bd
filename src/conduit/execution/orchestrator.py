"""Retry orchestration for CLI invocations.

RetryOrchestrator wraps the Process Runner with everything that turns a
single flaky process launch into a dependable logical operation:

1. Fast-fail gates: a pending cancellation, an open circuit breaker, or a
   readiness snapshot showing the CLI is missing or unauthenticated all
   return immediately without spawning a process.
2. Sequential attempts through the runner, classifying every failure.
3. Category-aware exponential backoff between retryable failures, bounded
   by a per-operation session budget and interruptible by the cancel token.
4. Breaker accounting and user-facing progress notifications.

All collaborators are injected, so tests can substitute the runner, the
readiness state, or the sleep function without touching process-wide state.
"""

from __future__ import annotations

import contextlib
from collections.abc import Awaitable, Callable, Iterator
from typing import TYPE_CHECKING

from conduit.backends.base import ExecutionResult, Invocation
from conduit.backends.process_manager import ProcessRunner
from conduit.core.config import EngineConfig, RetryConfig
from conduit.core.constants import DEFAULT_MAX_RETRIES
from conduit.core.errors import ClassifiedError, ErrorClassifier, ErrorCode
from conduit.core.logging import get_current_context, get_logger, with_context
from conduit.execution.cancellation import CancellationToken, cancellable_sleep
from conduit.execution.circuit_breaker import BreakerDecision, CircuitBreaker
from conduit.execution.progress import ProgressNotifier, ProgressSink
from conduit.execution.retry_strategy import BackoffPolicy, RetrySession

if TYPE_CHECKING:
    from conduit.backends.readiness import ProviderReadiness

_logger = get_logger("orchestrator")

SleepFn = Callable[[float, CancellationToken | None], Awaitable[bool]]
"""``async (delay, cancel_token) -> bool``; False means the sleep was cancelled."""

InvocationSource = Invocation | Callable[[], Invocation]


class RetryOrchestrator:
    """Executes invocations with gating, retries, and breaker accounting.

    Example:
        orchestrator = RetryOrchestrator.from_config(EngineConfig())
        result = await orchestrator.execute_with_retry(
            Invocation("gemini", ("generate",), stdin=prompt),
            cancel_token=token,
        )
        if not result.success:
            show(result.error.format_for_user())
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        breaker: CircuitBreaker | None = None,
        readiness: ProviderReadiness | None = None,
        classifier: ErrorClassifier | None = None,
        retry_config: RetryConfig | None = None,
        backoff: BackoffPolicy | None = None,
        sink: ProgressSink | None = None,
        sleep: SleepFn = cancellable_sleep,
        max_attempts: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            runner: Process Runner used for every attempt.
            breaker: Circuit breaker shared by all operations; None disables gating.
            readiness: Readiness state; None skips the readiness gate.
            classifier: Used when a failed result carries no classified error.
            retry_config: Backoff tiers and session budget.
            backoff: Explicit backoff policy (overrides ``retry_config`` delays).
            sink: Receives user-facing progress messages.
            sleep: Cancellable sleep, replaceable in tests.
            max_attempts: Default attempts per operation.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.classifier = classifier or ErrorClassifier()
        self.runner = runner or ProcessRunner(classifier=self.classifier)
        self.breaker = breaker
        self.readiness = readiness
        self.retry_config = retry_config or (backoff.config if backoff else RetryConfig())
        self.backoff = backoff or BackoffPolicy(self.retry_config)
        self.notifier = ProgressNotifier(sink)
        self.max_attempts = max_attempts
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        sink: ProgressSink | None = None,
        readiness: ProviderReadiness | None = None,
    ) -> RetryOrchestrator:
        """Build an orchestrator and its collaborators from engine config."""
        from conduit.backends.readiness import ProviderReadiness

        backend = config.backend
        classifier = ErrorClassifier(backend.command)
        runner = ProcessRunner(
            classifier=classifier,
            grace_period_seconds=backend.grace_period_seconds,
        )
        breaker = (
            CircuitBreaker.from_config(config.circuit_breaker)
            if config.circuit_breaker.enabled
            else None
        )
        if readiness is None:
            readiness = ProviderReadiness(config.readiness, program=backend.command, runner=runner)
        return cls(
            runner=runner,
            breaker=breaker,
            readiness=readiness,
            classifier=classifier,
            retry_config=config.retry,
            sink=sink,
            max_attempts=backend.max_attempts,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def execute_with_retry(
        self,
        invocation_builder: InvocationSource,
        max_attempts: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Run one logical operation.

        Args:
            invocation_builder: An Invocation, or a zero-argument callable
                returning one (called once per attempt).
            max_attempts: Attempts for this operation; defaults to the
                orchestrator's configured value. Values below 1 mean 1.
            cancel_token: Cancels the in-flight process or pending backoff.

        Returns:
            The final ExecutionResult, with ``attempts`` and ``retry_delays``
            filled in. Never raises for process or CLI failures.
        """
        attempts_allowed = max(1, max_attempts if max_attempts is not None else self.max_attempts)

        if cancel_token is not None and cancel_token.cancelled:
            return self._aborted(attempts=0)

        holds_probe = False
        if self.breaker is not None:
            decision = self.breaker.check()
            if not decision.allowed:
                return self._rejected_by_breaker(decision)
            holds_probe = decision.probe

        try:
            rejected = await self._check_readiness()
            if rejected is not None:
                return rejected

            session = RetrySession(
                max_attempts=attempts_allowed,
                budget_seconds=self.retry_config.session_budget_seconds,
            )
            return await self._attempt_loop(
                invocation_builder, session, cancel_token, holds_probe
            )
        except BaseException:
            # Task cancellation or a failing invocation builder: no outcome
            # was recorded, so the probe slot must be handed back
            if holds_probe:
                self._release_probe()
            raise

    async def _attempt_loop(
        self,
        invocation_builder: InvocationSource,
        session: RetrySession,
        cancel_token: CancellationToken | None,
        holds_probe: bool,
    ) -> ExecutionResult:
        attempts_allowed = session.max_attempts
        while True:
            attempt = session.start_attempt()
            invocation = self._resolve(invocation_builder)

            with self._attempt_context(attempt):
                _logger.debug(
                    "retry.attempt_starting",
                    attempt=attempt,
                    max_attempts=attempts_allowed,
                    invocation=invocation.display,
                )
                result = await self.runner.run(invocation, cancel_token)

            result.attempts = attempt
            result.retry_delays = tuple(session.delays)

            if result.success:
                if self.breaker is not None:
                    self.breaker.record_success()
                if attempt > 1:
                    self.notifier.recovered(attempt)
                    _logger.info("retry.recovered", attempts=attempt)
                return result

            error = result.error or self.classifier.classify(
                result.output, exit_code=result.exit_code
            )
            result.error = error

            if error.code == ErrorCode.EXEC_ABORTED or (
                cancel_token is not None and cancel_token.cancelled
            ):
                _logger.info("retry.aborted", attempt=attempt)
                if holds_probe:
                    self._release_probe()
                return self._aborted(attempts=attempt, delays=session.delays, source=result)

            if not error.retryable or session.is_last_attempt:
                _logger.warning(
                    "retry.giving_up",
                    attempt=attempt,
                    code=error.code.value,
                    retryable=error.retryable,
                )
                return self._final_failure(result, error)

            delay = self.backoff.compute_delay(error.category, attempt)
            if not session.can_afford(delay):
                budget_error = ClassifiedError.from_code(
                    ErrorCode.EXEC_RETRY_BUDGET_EXCEEDED,
                    message=(
                        "Maximum retry time exceeded "
                        f"({self.retry_config.session_budget_seconds:g}s)"
                    ),
                    technical_details=error.message,
                    context={"last_error": error.code.value},
                )
                _logger.warning(
                    "retry.budget_exceeded",
                    attempt=attempt,
                    accumulated_seconds=round(session.accumulated_delay, 3),
                    next_delay_seconds=round(delay, 3),
                    budget_seconds=session.budget_seconds,
                )
                self.notifier.notify(
                    f"Retry timeout exceeded: {budget_error.user_message}", "error"
                )
                # The breaker judges the CLI by what the last attempt returned
                if self.breaker is not None:
                    self.breaker.record_failure(error)
                result.error = budget_error
                return result

            session.add_delay(delay)
            self.notifier.retrying(error, delay, attempt, attempts_allowed)
            _logger.info(
                "retry.scheduled",
                attempt=attempt,
                max_attempts=attempts_allowed,
                code=error.code.value,
                category=error.category.value,
                delay_seconds=round(delay, 3),
            )

            completed = await self._sleep(delay, cancel_token)
            if not completed or (cancel_token is not None and cancel_token.cancelled):
                _logger.info("retry.aborted_during_backoff", attempt=attempt)
                if holds_probe:
                    self._release_probe()
                return self._aborted(attempts=attempt, delays=session.delays)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _rejected_by_breaker(self, decision: BreakerDecision) -> ExecutionResult:
        error = ClassifiedError.from_code(
            ErrorCode.EXEC_UNAVAILABLE,
            message=decision.reason,
            retry_after_seconds=decision.retry_after_seconds,
        )
        _logger.warning(
            "retry.rejected_by_breaker",
            retry_after_seconds=decision.retry_after_seconds,
        )
        self.notifier.notify(f"CLI temporarily unavailable: {decision.reason}", "warning")
        return ExecutionResult.failure(error)

    async def _check_readiness(self) -> ExecutionResult | None:
        """Return a rejected result when the CLI is missing or unauthenticated."""
        if self.readiness is not None:
            snapshot = await self.readiness.ensure_ready()
            blocking = snapshot.blocking_error()
            if blocking is not None:
                _logger.warning(
                    "retry.rejected_not_ready",
                    code=blocking.code.value,
                    installed=snapshot.installed,
                    authenticated=snapshot.authenticated,
                )
                self.notifier.notify(f"CLI setup required: {blocking.user_message}", "error")
                if self.breaker is not None:
                    self.breaker.record_failure(blocking)
                return ExecutionResult.failure(blocking)

        return None

    def _final_failure(self, result: ExecutionResult, error: ClassifiedError) -> ExecutionResult:
        if self.breaker is not None:
            self.breaker.record_failure(error)
        self.notifier.failed(error)
        return result

    def _release_probe(self) -> None:
        if self.breaker is not None:
            self.breaker.release_probe()

    @staticmethod
    def _resolve(source: InvocationSource) -> Invocation:
        if isinstance(source, Invocation):
            return source
        return source()

    @staticmethod
    def _aborted(
        attempts: int,
        delays: list[float] | None = None,
        source: ExecutionResult | None = None,
    ) -> ExecutionResult:
        error = ClassifiedError.from_code(ErrorCode.EXEC_ABORTED)
        if source is not None:
            source.error = error
            source.outcome = "cancelled"
            return source
        result = ExecutionResult.failure(error, outcome="cancelled", attempts=attempts)
        result.retry_delays = tuple(delays or ())
        return result

    @staticmethod
    @contextlib.contextmanager
    def _attempt_context(attempt: int) -> Iterator[None]:
        ctx = get_current_context()
        if ctx is None:
            yield
            return
        with with_context(ctx.with_attempt(attempt)):
            yield


__all__ = ["InvocationSource", "RetryOrchestrator", "SleepFn"]
