"""Circuit breaker guarding invocations of the external CLI.

Blocks new invocations after repeated systemic failures so a missing
binary, expired credentials, or a network outage do not trigger a storm of
doomed process launches.

The circuit breaker has three states:
- CLOSED: Normal operation, invocations flow through
- OPEN: Blocking invocations after too many qualifying failures
- HALF_OPEN: Admitting exactly one probe to test recovery

State transitions:
- CLOSED -> OPEN: When the qualifying failure count reaches failure_threshold
- OPEN -> HALF_OPEN: On the first check() after cooldown_seconds have elapsed
- HALF_OPEN -> CLOSED: On success of the probe
- HALF_OPEN -> OPEN: On a qualifying failure of the probe

Only qualifying failures count: installation, authentication, and network
errors, plus execution errors of critical severity. Anything else (a
malformed response, a quota error, a single timeout) is ignored.

Example usage:
    from conduit.execution.circuit_breaker import CircuitBreaker

    breaker = CircuitBreaker(failure_threshold=5, cooldown_seconds=60.0)

    decision = breaker.check()
    if decision.allowed:
        result = await runner.run(invocation)
        if result.success:
            breaker.record_success()
        else:
            breaker.record_failure(result.error)
    else:
        print(decision.reason)
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any

from conduit.core.config import CircuitBreakerConfig
from conduit.core.constants import CIRCUIT_COOLDOWN_SECONDS, CIRCUIT_FAILURE_THRESHOLD
from conduit.core.errors import ClassifiedError, ErrorCategory, Severity
from conduit.core.logging import get_logger

# Module-level logger for circuit breaker events
_logger = get_logger("circuit_breaker")

QUALIFYING_CATEGORIES = frozenset(
    {ErrorCategory.INSTALLATION, ErrorCategory.AUTHENTICATION, ErrorCategory.NETWORK}
)
"""Categories that always count toward opening the circuit."""


def is_qualifying_failure(error: ClassifiedError) -> bool:
    """Whether ``error`` is systemic enough to count toward the threshold."""
    if error.category in QUALIFYING_CATEGORIES:
        return True
    return error.category == ErrorCategory.EXECUTION and error.severity == Severity.CRITICAL


class CircuitState(str, Enum):
    """State of the circuit breaker.

    - CLOSED: Normal operation. Qualifying failures are counted.
    - OPEN: Blocking mode. Invocations are rejected until the cooldown elapses.
    - HALF_OPEN: Testing mode. A single probe invocation is admitted.
    """

    CLOSED = "closed"
    """Normal operation - invocations are allowed and failures are tracked."""

    OPEN = "open"
    """Blocking calls - invocations are rejected, waiting for the cooldown."""

    HALF_OPEN = "half_open"
    """Testing recovery - one probe is allowed to test if the CLI recovered."""


@dataclass(frozen=True)
class BreakerDecision:
    """Outcome of CircuitBreaker.check()."""

    allowed: bool
    retry_after_seconds: float | None = None
    """Seconds until a probe may be admitted; set only when rejected while OPEN."""

    reason: str | None = None
    """User-readable rejection text."""

    probe: bool = False
    """True when this caller holds the HALF_OPEN probe slot."""


@dataclass(frozen=True)
class CircuitBreakerState:
    """Point-in-time view of the breaker."""

    state: CircuitState
    consecutive_failures: int
    last_failure_at: float | None
    """Monotonic timestamp of the last qualifying failure."""

    failure_threshold: int
    cooldown_seconds: float
    probe_in_flight: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "last_failure_at": self.last_failure_at,
            "failure_threshold": self.failure_threshold,
            "cooldown_seconds": self.cooldown_seconds,
            "probe_in_flight": self.probe_in_flight,
        }


@dataclass
class CircuitBreakerStats:
    """Statistics for circuit breaker monitoring."""

    total_successes: int = 0
    """Total number of successful invocations recorded."""

    total_failures: int = 0
    """Total number of qualifying failures recorded."""

    ignored_failures: int = 0
    """Failures that did not qualify and were not counted."""

    times_opened: int = 0
    """Number of times the circuit has transitioned to OPEN state."""

    times_half_opened: int = 0
    """Number of times the circuit has transitioned to HALF_OPEN state."""

    times_closed: int = 0
    """Number of times the circuit has transitioned to CLOSED from another state."""

    rejections: int = 0
    """Number of check() calls that were denied."""

    last_state_change_at: float | None = None
    """Timestamp of the most recent state transition (monotonic time)."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
            "ignored_failures": self.ignored_failures,
            "times_opened": self.times_opened,
            "times_half_opened": self.times_half_opened,
            "times_closed": self.times_closed,
            "rejections": self.rejections,
            "last_state_change_at": self.last_state_change_at,
        }


class CircuitBreaker:
    """Circuit breaker for the external CLI.

    Thread-safe: All state modifications are protected by a lock.

    Attributes:
        failure_threshold: Consecutive qualifying failures before opening.
        cooldown_seconds: Seconds in OPEN before a probe is admitted.
    """

    def __init__(
        self,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        cooldown_seconds: float = CIRCUIT_COOLDOWN_SECONDS,
        name: str = "cli",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            failure_threshold: Number of consecutive qualifying failures
                before opening the circuit. Default is 5.
            cooldown_seconds: Seconds to wait in OPEN state before admitting
                a probe. Default is 60.
            name: Name for this circuit breaker (used in logging).
            clock: Monotonic time source, replaceable in tests.
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be positive")

        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._name = name
        self._clock = clock

        # State (protected by lock)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._probe_in_flight = False
        self._stats = CircuitBreakerStats()

        self._lock = Lock()

        _logger.debug(
            "circuit_breaker.initialized",
            name=name,
            failure_threshold=failure_threshold,
            cooldown_seconds=cooldown_seconds,
        )

    @classmethod
    def from_config(cls, config: CircuitBreakerConfig, name: str = "cli") -> CircuitBreaker:
        return cls(
            failure_threshold=config.failure_threshold,
            cooldown_seconds=config.cooldown_seconds,
            name=name,
        )

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown_seconds

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        """Current state, without triggering the OPEN -> HALF_OPEN transition."""
        with self._lock:
            return self._state

    # =========================================================================
    # Gate
    # =========================================================================

    def check(self) -> BreakerDecision:
        """Decide whether a new invocation may proceed.

        In HALF_OPEN exactly one caller is admitted; everyone else is
        rejected until that probe records an outcome.
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                remaining = self._remaining_cooldown()
                if remaining > 0:
                    return self._reject(remaining)
                self._set_state(CircuitState.HALF_OPEN)
                _logger.info(
                    "circuit_breaker.state_changed",
                    name=self._name,
                    from_state=CircuitState.OPEN.value,
                    to_state=CircuitState.HALF_OPEN.value,
                    reason="cooldown_elapsed",
                )

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    return self._reject(None)
                self._probe_in_flight = True
                _logger.debug("circuit_breaker.probe_admitted", name=self._name)
                return BreakerDecision(allowed=True, probe=True)

            return BreakerDecision(allowed=True)

    def _reject(self, remaining: float | None) -> BreakerDecision:
        self._stats.rejections += 1
        if remaining is None:
            reason = (
                "CLI temporarily unavailable due to repeated failures. "
                "A recovery probe is in progress."
            )
        else:
            reason = (
                "CLI temporarily unavailable due to repeated failures. "
                f"Will retry after {math.ceil(remaining)} seconds."
            )
        _logger.debug(
            "circuit_breaker.rejected",
            name=self._name,
            state=self._state.value,
            retry_after_seconds=remaining,
        )
        return BreakerDecision(allowed=False, retry_after_seconds=remaining, reason=reason)

    def _remaining_cooldown(self) -> float:
        """Should be called while holding the lock."""
        if self._last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_time
        return max(0.0, self._cooldown_seconds - elapsed)

    def time_until_retry(self) -> float | None:
        """Seconds until a probe is admitted, or None if the circuit is not OPEN."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return None
            return self._remaining_cooldown()

    # =========================================================================
    # Recording outcomes
    # =========================================================================

    def record_success(self) -> None:
        """Record a successful invocation.

        Resets the count and forces CLOSED from any state.
        """
        with self._lock:
            self._stats.total_successes += 1
            self._failure_count = 0
            self._probe_in_flight = False

            if self._state != CircuitState.CLOSED:
                _logger.info(
                    "circuit_breaker.state_changed",
                    name=self._name,
                    from_state=self._state.value,
                    to_state=CircuitState.CLOSED.value,
                    reason="recovery_confirmed",
                )
                self._set_state(CircuitState.CLOSED)
            else:
                _logger.debug("circuit_breaker.success_recorded", name=self._name)

    def record_failure(self, error: ClassifiedError) -> bool:
        """Record a failed invocation.

        Args:
            error: The classified failure.

        Returns:
            True if the failure qualified and was counted.
        """
        with self._lock:
            if not is_qualifying_failure(error):
                self._stats.ignored_failures += 1
                # A non-systemic probe failure frees the slot for the next caller
                self._probe_in_flight = False
                _logger.debug(
                    "circuit_breaker.failure_ignored",
                    name=self._name,
                    code=error.code.value,
                    category=error.category.value,
                )
                return False

            self._stats.total_failures += 1
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False
                _logger.info(
                    "circuit_breaker.state_changed",
                    name=self._name,
                    from_state=CircuitState.HALF_OPEN.value,
                    to_state=CircuitState.OPEN.value,
                    reason="recovery_test_failed",
                    code=error.code.value,
                )
                self._set_state(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                if self._failure_count >= self._failure_threshold:
                    _logger.warning(
                        "circuit_breaker.state_changed",
                        name=self._name,
                        from_state=CircuitState.CLOSED.value,
                        to_state=CircuitState.OPEN.value,
                        reason="failure_threshold_reached",
                        failure_count=self._failure_count,
                        failure_threshold=self._failure_threshold,
                        code=error.code.value,
                    )
                    self._set_state(CircuitState.OPEN)
                else:
                    _logger.debug(
                        "circuit_breaker.failure_recorded",
                        name=self._name,
                        failure_count=self._failure_count,
                        failure_threshold=self._failure_threshold,
                        code=error.code.value,
                    )
            return True

    def release_probe(self) -> None:
        """Free the HALF_OPEN probe slot without recording an outcome.

        Used when the admitted caller was cancelled, or raised, before the
        CLI could prove anything either way.
        """
        with self._lock:
            if self._probe_in_flight:
                self._probe_in_flight = False
                _logger.debug("circuit_breaker.probe_released", name=self._name)

    def _set_state(self, new_state: CircuitState) -> None:
        """Set the circuit state and update statistics.

        Should be called while holding the lock.
        """
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        self._stats.last_state_change_at = self._clock()

        if new_state == CircuitState.OPEN:
            self._stats.times_opened += 1
        elif new_state == CircuitState.HALF_OPEN:
            self._stats.times_half_opened += 1
        elif new_state == CircuitState.CLOSED:
            self._stats.times_closed += 1

    # =========================================================================
    # Introspection and manual control
    # =========================================================================

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(
                state=self._state,
                consecutive_failures=self._failure_count,
                last_failure_at=self._last_failure_time,
                failure_threshold=self._failure_threshold,
                cooldown_seconds=self._cooldown_seconds,
                probe_in_flight=self._probe_in_flight,
            )

    def stats(self) -> CircuitBreakerStats:
        """Return a copy of the current statistics."""
        with self._lock:
            return CircuitBreakerStats(**self._stats.to_dict())

    def reset(self) -> None:
        """Reset to CLOSED with a zero count. Statistics are kept."""
        with self._lock:
            old_state = self._state
            self._failure_count = 0
            self._last_failure_time = None
            self._probe_in_flight = False
            self._set_state(CircuitState.CLOSED)
            if old_state != CircuitState.CLOSED:
                _logger.info("circuit_breaker.reset", name=self._name, from_state=old_state.value)

    def force_open(self) -> None:
        """Force the circuit to OPEN; the cooldown starts now."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                old_state = self._state
                self._set_state(CircuitState.OPEN)
                self._last_failure_time = self._clock()
                self._probe_in_flight = False
                _logger.info(
                    "circuit_breaker.force_opened",
                    name=self._name,
                    from_state=old_state.value,
                )

    def force_close(self) -> None:
        """Force the circuit to CLOSED and clear the failure count."""
        with self._lock:
            old_state = self._state
            self._failure_count = 0
            self._probe_in_flight = False
            self._set_state(CircuitState.CLOSED)
            if old_state != CircuitState.CLOSED:
                _logger.info(
                    "circuit_breaker.force_closed",
                    name=self._name,
                    from_state=old_state.value,
                )

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self._name!r}, state={self._state.value}, "
            f"failures={self._failure_count}/{self._failure_threshold})"
        )


__all__ = [
    "BreakerDecision",
    "CircuitBreaker",
    "CircuitBreakerState",
    "CircuitBreakerStats",
    "CircuitState",
    "QUALIFYING_CATEGORIES",
    "is_qualifying_failure",
]
