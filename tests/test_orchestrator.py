"""Tests for the RetryOrchestrator.

All tests substitute the Process Runner, readiness state, and sleep, so no
real process is spawned and no real time passes.
"""

import asyncio
import random
import textwrap

import pytest

from conduit.backends.base import ExecutionResult, Invocation
from conduit.backends.readiness import ReadinessSnapshot
from conduit.core.config import CircuitBreakerConfig, EngineConfig, RetryConfig
from conduit.core.errors import ClassifiedError, ErrorCode
from conduit.core.logging import OperationContext, get_current_context, with_context
from conduit.execution.cancellation import CancellationToken
from conduit.execution.circuit_breaker import CircuitBreaker, CircuitState
from conduit.execution.orchestrator import RetryOrchestrator
from conduit.execution.progress import ProgressMessage
from conduit.execution.retry_strategy import BackoffPolicy
from tests.helpers import (
    READY,
    HangingRunner,
    RecordingSleep,
    ScriptedRunner,
    StaticReadiness,
    error_result,
    failure_result,
    success_result,
)

INVOCATION = Invocation("gemini", ("generate",), stdin="Solve the problem please")


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_orchestrator(
    runner: ScriptedRunner,
    *,
    breaker: CircuitBreaker | None = None,
    readiness: StaticReadiness | None = None,
    retry_config: RetryConfig | None = None,
    sleep: RecordingSleep | None = None,
    messages: list[ProgressMessage] | None = None,
    max_attempts: int = 3,
    seed: int = 7,
) -> RetryOrchestrator:
    config = retry_config or RetryConfig()
    return RetryOrchestrator(
        runner=runner,  # type: ignore[arg-type]
        breaker=breaker if breaker is not None else CircuitBreaker(),
        readiness=readiness if readiness is not None else StaticReadiness(READY),  # type: ignore[arg-type]
        retry_config=config,
        backoff=BackoffPolicy(config, rng=random.Random(seed)),
        sink=messages.append if messages is not None else None,
        sleep=sleep or RecordingSleep(),
        max_attempts=max_attempts,
    )


class TestSuccess:
    """First-attempt and recovered successes."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self) -> None:
        runner = ScriptedRunner([success_result('{"code": "print(1)"}')])
        sleep = RecordingSleep()
        messages: list[ProgressMessage] = []
        orchestrator = make_orchestrator(runner, sleep=sleep, messages=messages)

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.success
        assert result.attempts == 1
        assert result.stdout == '{"code": "print(1)"}'
        assert result.retry_delays == ()
        assert runner.calls == 1
        assert sleep.delays == []
        assert messages == []

    @pytest.mark.asyncio
    async def test_transient_network_failures_then_success(self) -> None:
        """Three network failures back off with growing delays, then recover."""
        network = failure_result("network connection failed")
        runner = ScriptedRunner([network, network, network, success_result()])
        sleep = RecordingSleep()
        messages: list[ProgressMessage] = []
        breaker = CircuitBreaker()
        orchestrator = make_orchestrator(
            runner, breaker=breaker, sleep=sleep, messages=messages, max_attempts=4
        )

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.success
        assert result.attempts == 4
        assert runner.calls == 4
        assert len(sleep.delays) == 3
        d1, d2, d3 = sleep.delays
        assert 2.0 <= d1 < 2.2
        assert 4.0 <= d2 < 4.4
        assert 8.0 <= d3 < 8.8
        assert d1 < d2 < d3
        assert result.retry_delays == tuple(sleep.delays)

        assert breaker.snapshot().consecutive_failures == 0
        assert breaker.state == CircuitState.CLOSED

        retries = [m for m in messages if "Retrying in" in m.text]
        assert len(retries) == 3
        assert retries[0].text.startswith("Network Error: Retrying in ")
        assert retries[0].text.endswith("(attempt 1/4)")
        assert all(m.severity == "warning" for m in retries)
        assert messages[-1].text == "CLI command succeeded after 4 attempts"
        assert messages[-1].severity == "info"

    @pytest.mark.asyncio
    async def test_invocation_builder_called_per_attempt(self) -> None:
        runner = ScriptedRunner([failure_result("network connection failed"), success_result()])
        built: list[int] = []

        def builder() -> Invocation:
            built.append(len(built) + 1)
            return Invocation("gemini", (f"--attempt={len(built)}",))

        orchestrator = make_orchestrator(runner)
        result = await orchestrator.execute_with_retry(builder)

        assert result.success
        assert built == [1, 2]
        assert [inv.args for inv in runner.invocations] == [("--attempt=1",), ("--attempt=2",)]


class TestFailures:
    """Retries exhausted and non-retryable failures."""

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self) -> None:
        runner = ScriptedRunner([failure_result("Error: not authenticated")])
        sleep = RecordingSleep()
        messages: list[ProgressMessage] = []
        breaker = CircuitBreaker()
        orchestrator = make_orchestrator(runner, breaker=breaker, sleep=sleep, messages=messages)

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert not result.success
        assert result.error_code == ErrorCode.AUTH_NOT_AUTHENTICATED
        assert result.attempts == 1
        assert runner.calls == 1
        assert sleep.delays == []
        assert breaker.snapshot().consecutive_failures == 1
        assert messages[-1].text.startswith("CLI command failed: ")
        assert messages[-1].severity == "error"

    @pytest.mark.asyncio
    async def test_retries_exhausted_returns_last_error(self) -> None:
        runner = ScriptedRunner([failure_result("boom", exit_code=2)])
        sleep = RecordingSleep()
        messages: list[ProgressMessage] = []
        breaker = CircuitBreaker()
        orchestrator = make_orchestrator(runner, breaker=breaker, sleep=sleep, messages=messages)

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert not result.success
        assert result.error_code == ErrorCode.EXEC_COMMAND_FAILED
        assert result.attempts == 3
        assert runner.calls == 3
        assert len(sleep.delays) == 2
        # Medium-severity execution failures do not count toward the breaker
        assert breaker.snapshot().consecutive_failures == 0
        assert messages[-1].severity == "warning"

    @pytest.mark.asyncio
    async def test_max_attempts_override(self) -> None:
        runner = ScriptedRunner([failure_result("network down")])
        orchestrator = make_orchestrator(runner, max_attempts=5)

        result = await orchestrator.execute_with_retry(INVOCATION, max_attempts=2)

        assert result.attempts == 2
        assert runner.calls == 2

    @pytest.mark.asyncio
    async def test_zero_attempts_means_one(self) -> None:
        runner = ScriptedRunner([failure_result("network down")])
        orchestrator = make_orchestrator(runner)

        result = await orchestrator.execute_with_retry(INVOCATION, max_attempts=0)

        assert result.attempts == 1
        assert runner.calls == 1

    @pytest.mark.asyncio
    async def test_unclassified_failure_gets_classified(self) -> None:
        runner = ScriptedRunner(
            [ExecutionResult(success=False, stderr="rate limit hit", exit_code=1)]
        )
        orchestrator = make_orchestrator(runner, max_attempts=1)

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.error_code == ErrorCode.RATE_LIMIT_EXCEEDED

    def test_invalid_max_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            RetryOrchestrator(max_attempts=0)


class TestRetryBudget:
    """The summed backoff may not exceed the session budget."""

    @pytest.mark.asyncio
    async def test_budget_exceeded_stops_retrying(self) -> None:
        config = RetryConfig(jitter_fraction=0, session_budget_seconds=5)
        runner = ScriptedRunner([failure_result("network connection failed")])
        sleep = RecordingSleep()
        messages: list[ProgressMessage] = []
        orchestrator = make_orchestrator(
            runner, retry_config=config, sleep=sleep, messages=messages, max_attempts=5
        )

        result = await orchestrator.execute_with_retry(INVOCATION)

        # 2s fits, 2s + 4s does not
        assert sleep.delays == [2.0]
        assert runner.calls == 2
        assert not result.success
        assert result.error_code == ErrorCode.EXEC_RETRY_BUDGET_EXCEEDED
        assert result.error is not None
        assert not result.error.retryable
        assert messages[-1].text.startswith("Retry timeout exceeded: ")
        assert messages[-1].severity == "error"

    @pytest.mark.asyncio
    async def test_delay_exactly_at_budget_is_allowed(self) -> None:
        config = RetryConfig(jitter_fraction=0, session_budget_seconds=6)
        runner = ScriptedRunner([failure_result("network connection failed")])
        sleep = RecordingSleep()
        orchestrator = make_orchestrator(
            runner, retry_config=config, sleep=sleep, max_attempts=3
        )

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert sleep.delays == [2.0, 4.0]
        assert result.error_code == ErrorCode.NETWORK_CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_budget_exceeded_counts_underlying_failure(self) -> None:
        config = RetryConfig(jitter_fraction=0, session_budget_seconds=5)
        breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=60)
        runner = ScriptedRunner([failure_result("network connection failed")])
        orchestrator = make_orchestrator(
            runner, breaker=breaker, retry_config=config, max_attempts=5
        )

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.error_code == ErrorCode.EXEC_RETRY_BUDGET_EXCEEDED
        assert breaker.state == CircuitState.OPEN
        assert breaker.snapshot().consecutive_failures == 1


class TestCancellation:
    """Cancellation is never retried and never counted by the breaker."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self) -> None:
        runner = ScriptedRunner([success_result()])
        readiness = StaticReadiness(READY)
        orchestrator = make_orchestrator(runner, readiness=readiness)
        token = CancellationToken()
        token.cancel()

        result = await orchestrator.execute_with_retry(INVOCATION, cancel_token=token)

        assert result.outcome == "cancelled"
        assert result.error_code == ErrorCode.EXEC_ABORTED
        assert result.attempts == 0
        assert runner.calls == 0
        assert readiness.ensure_calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self) -> None:
        runner = ScriptedRunner([failure_result("network connection failed"), success_result()])
        sleep = RecordingSleep(cancel_on_call=1)
        breaker = CircuitBreaker()
        orchestrator = make_orchestrator(runner, breaker=breaker, sleep=sleep)
        token = CancellationToken()

        result = await orchestrator.execute_with_retry(INVOCATION, cancel_token=token)

        assert result.outcome == "cancelled"
        assert result.error_code == ErrorCode.EXEC_ABORTED
        assert result.attempts == 1
        assert runner.calls == 1
        assert breaker.snapshot().consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_aborted_attempt_not_retried(self) -> None:
        aborted = error_result(ErrorCode.EXEC_ABORTED, outcome="cancelled")
        runner = ScriptedRunner([aborted, success_result()])
        breaker = CircuitBreaker(failure_threshold=1)
        orchestrator = make_orchestrator(runner, breaker=breaker)

        result = await orchestrator.execute_with_retry(INVOCATION, cancel_token=CancellationToken())

        assert result.outcome == "cancelled"
        assert runner.calls == 1
        assert breaker.state == CircuitState.CLOSED


class TestBreakerGate:
    """Interaction with the circuit breaker."""

    @pytest.mark.asyncio
    async def test_repeated_missing_cli_opens_breaker(self) -> None:
        """Five CLI_NOT_FOUND failures open the circuit; the sixth call is rejected."""
        runner = ScriptedRunner([error_result(ErrorCode.CLI_NOT_FOUND, outcome="launch_error")])
        messages: list[ProgressMessage] = []
        breaker = CircuitBreaker(failure_threshold=5, cooldown_seconds=60)
        orchestrator = make_orchestrator(runner, breaker=breaker, messages=messages)

        for _ in range(5):
            result = await orchestrator.execute_with_retry(INVOCATION)
            assert result.error_code == ErrorCode.CLI_NOT_FOUND
        assert runner.calls == 5
        assert breaker.state == CircuitState.OPEN

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert runner.calls == 5
        assert result.error_code == ErrorCode.EXEC_UNAVAILABLE
        assert result.outcome == "rejected"
        assert result.attempts == 0
        assert result.error is not None
        assert result.error.retry_after_seconds is not None
        assert 0 < result.error.retry_after_seconds <= 60
        assert messages[-1].text.startswith("CLI temporarily unavailable: ")
        assert messages[-1].severity == "warning"

    @pytest.mark.asyncio
    async def test_half_open_probe_success_closes(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=60, clock=clock)
        breaker.record_failure(ClassifiedError.from_code(ErrorCode.NETWORK_CONNECTION_FAILED))
        assert breaker.state == CircuitState.OPEN

        runner = ScriptedRunner([success_result()])
        orchestrator = make_orchestrator(runner, breaker=breaker)

        rejected = await orchestrator.execute_with_retry(INVOCATION)
        assert rejected.error_code == ErrorCode.EXEC_UNAVAILABLE

        clock.advance(60)
        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.success
        assert breaker.state == CircuitState.CLOSED
        assert breaker.snapshot().consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_no_breaker(self) -> None:
        runner = ScriptedRunner([error_result(ErrorCode.CLI_NOT_FOUND)])
        orchestrator = RetryOrchestrator(
            runner=runner,  # type: ignore[arg-type]
            sleep=RecordingSleep(),
        )
        for _ in range(10):
            await orchestrator.execute_with_retry(INVOCATION)
        assert runner.calls == 10


class TestReadinessGate:
    """Fast-fail when the CLI is missing or unauthenticated."""

    @pytest.mark.asyncio
    async def test_not_installed_rejected_without_spawning(self) -> None:
        snapshot = ReadinessSnapshot(error=ClassifiedError.from_code(ErrorCode.CLI_NOT_FOUND))
        runner = ScriptedRunner([success_result()])
        messages: list[ProgressMessage] = []
        breaker = CircuitBreaker()
        orchestrator = make_orchestrator(
            runner, breaker=breaker, readiness=StaticReadiness(snapshot), messages=messages
        )

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert not result.success
        assert result.error_code == ErrorCode.CLI_NOT_FOUND
        assert runner.calls == 0
        assert breaker.snapshot().consecutive_failures == 1
        assert messages[-1].text.startswith("CLI setup required: ")
        assert messages[-1].severity == "error"

    @pytest.mark.asyncio
    async def test_not_authenticated_rejected(self) -> None:
        snapshot = ReadinessSnapshot(installed=True, version="1.0.0", compatible=True)
        runner = ScriptedRunner([success_result()])
        orchestrator = make_orchestrator(runner, readiness=StaticReadiness(snapshot))

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.error_code == ErrorCode.AUTH_NOT_AUTHENTICATED
        assert runner.calls == 0

    @pytest.mark.asyncio
    async def test_breaker_checked_before_readiness(self) -> None:
        breaker = CircuitBreaker()
        breaker.force_open()
        readiness = StaticReadiness(READY)
        orchestrator = make_orchestrator(
            ScriptedRunner([success_result()]), breaker=breaker, readiness=readiness
        )

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.error_code == ErrorCode.EXEC_UNAVAILABLE
        assert readiness.ensure_calls == 0


class TestProgressAndContext:
    """Progress delivery and logging context."""

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_break_execution(self) -> None:
        def broken_sink(message: ProgressMessage) -> None:
            raise RuntimeError("ui gone")

        runner = ScriptedRunner([failure_result("network connection failed"), success_result()])
        orchestrator = RetryOrchestrator(
            runner=runner,  # type: ignore[arg-type]
            sink=broken_sink,
            sleep=RecordingSleep(),
        )

        result = await orchestrator.execute_with_retry(INVOCATION)

        assert result.success
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_attempt_bound_into_operation_context(self) -> None:
        seen: list[int | None] = []

        class ContextRunner(ScriptedRunner):
            async def run(self, invocation, cancel_token=None):  # type: ignore[no-untyped-def]
                ctx = get_current_context()
                seen.append(ctx.attempt if ctx else None)
                return await super().run(invocation, cancel_token)

        runner = ContextRunner([failure_result("network connection failed"), success_result()])
        orchestrator = make_orchestrator(runner)

        ctx = OperationContext(operation_type="solution")
        with with_context(ctx):
            await orchestrator.execute_with_retry(INVOCATION)
            assert get_current_context() is ctx

        assert seen == [1, 2]


class TestFromConfig:
    """Building an orchestrator from EngineConfig."""

    def test_wires_collaborators(self) -> None:
        config = EngineConfig.from_yaml_string(
            textwrap.dedent(
                """
                backend:
                  command: my-gemini
                  max_retries: 4
                  grace_period_seconds: 2
                circuit_breaker:
                  failure_threshold: 3
                  cooldown_seconds: 10
                """
            )
        )
        orchestrator = RetryOrchestrator.from_config(config)

        assert orchestrator.max_attempts == 4
        assert orchestrator.runner.grace_period_seconds == 2
        assert orchestrator.classifier.program == "my-gemini"
        assert orchestrator.breaker is not None
        assert orchestrator.breaker.failure_threshold == 3
        assert orchestrator.readiness is not None
        assert orchestrator.readiness.program == "my-gemini"

    def test_breaker_disabled(self) -> None:
        config = EngineConfig(circuit_breaker=CircuitBreakerConfig(enabled=False))
        orchestrator = RetryOrchestrator.from_config(config)
        assert orchestrator.breaker is None


class TestProbeRelease:
    """An abandoned half-open probe frees the slot for the next caller."""

    @pytest.mark.asyncio
    async def test_cancelled_probe_releases_slot(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=60, clock=clock)
        breaker.record_failure(ClassifiedError.from_code(ErrorCode.NETWORK_CONNECTION_FAILED))
        clock.advance(60)

        runner = ScriptedRunner([failure_result("network connection failed")])
        orchestrator = make_orchestrator(
            runner, breaker=breaker, sleep=RecordingSleep(cancel_on_call=1)
        )
        result = await orchestrator.execute_with_retry(INVOCATION, cancel_token=CancellationToken())

        assert result.outcome == "cancelled"
        assert breaker.state == CircuitState.HALF_OPEN
        assert not breaker.snapshot().probe_in_flight
        assert breaker.check().allowed

    @pytest.mark.asyncio
    async def test_task_cancelled_in_half_open_releases_slot(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=60, clock=clock)
        breaker.record_failure(ClassifiedError.from_code(ErrorCode.NETWORK_CONNECTION_FAILED))
        clock.advance(60)

        runner = HangingRunner()
        orchestrator = make_orchestrator(runner, breaker=breaker)  # type: ignore[arg-type]
        task = asyncio.create_task(orchestrator.execute_with_retry(INVOCATION))
        await runner.started.wait()
        assert breaker.snapshot().probe_in_flight

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert breaker.state == CircuitState.HALF_OPEN
        assert not breaker.snapshot().probe_in_flight
        assert breaker.check().allowed

    @pytest.mark.asyncio
    async def test_failing_builder_releases_slot(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=60, clock=clock)
        breaker.record_failure(ClassifiedError.from_code(ErrorCode.NETWORK_CONNECTION_FAILED))
        clock.advance(60)

        def builder() -> Invocation:
            raise RuntimeError("template missing")

        runner = ScriptedRunner([success_result()])
        orchestrator = make_orchestrator(runner, breaker=breaker)
        with pytest.raises(RuntimeError, match="template missing"):
            await orchestrator.execute_with_retry(builder)

        assert runner.calls == 0
        assert not breaker.snapshot().probe_in_flight
        result = await orchestrator.execute_with_retry(INVOCATION)
        assert result.success
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_builder_error_while_closed_records_nothing(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=60)

        def builder() -> Invocation:
            raise RuntimeError("template missing")

        orchestrator = make_orchestrator(ScriptedRunner([success_result()]), breaker=breaker)
        with pytest.raises(RuntimeError):
            await orchestrator.execute_with_retry(builder)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.snapshot().consecutive_failures == 0
