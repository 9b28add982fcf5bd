"""Backoff policy and per-operation retry bookkeeping.

The delay before the retry that follows failed attempt ``n`` (1-indexed) is:

    base(category) × 2^(n-1) × (1 + U[0, jitter_fraction))

capped at ``max_delay_seconds``. ``base`` depends on the error category:
network errors back off from 2s, quota from 5s, timeouts from 3s, and
everything else from 1s.

A RetrySession tracks one logical operation: how many attempts have been
made and how much delay has been accumulated against the session budget.

Example usage:
    from conduit.execution.retry_strategy import BackoffPolicy, RetrySession

    policy = BackoffPolicy()
    session = RetrySession(max_attempts=3, budget_seconds=300.0)

    session.start_attempt()
    ...  # attempt failed with `error`
    delay = policy.compute_delay(error.category, session.attempt)
    if session.can_afford(delay):
        session.add_delay(delay)
        await asyncio.sleep(delay)
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from conduit.core.config import RetryConfig
from conduit.core.errors import ErrorCategory
from conduit.core.logging import get_logger

# Module-level logger
_logger = get_logger("retry_strategy")


class BackoffPolicy:
    """Category-aware exponential backoff with multiplicative jitter."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the policy.

        Args:
            config: Delay tiers, cap, and jitter. Defaults to RetryConfig().
            rng: Random source for jitter; pass a seeded Random in tests.
        """
        self.config = config or RetryConfig()
        self._rng = rng or random.Random()

    def base_delay(self, category: ErrorCategory) -> float:
        """Base delay for the given error category."""
        if category == ErrorCategory.NETWORK:
            return self.config.network_delay_seconds
        if category == ErrorCategory.QUOTA:
            return self.config.quota_delay_seconds
        if category == ErrorCategory.TIMEOUT:
            return self.config.timeout_delay_seconds
        return self.config.base_delay_seconds

    def compute_delay(self, category: ErrorCategory, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt``.

        Args:
            category: Category of the error that ended the attempt.
            attempt: 1-indexed number of the attempt that just failed.

        Returns:
            Delay in seconds, never more than ``max_delay_seconds``.
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        # Clamp the exponent so very large attempt numbers cannot overflow
        exponent = min(attempt - 1, 32)
        delay = self.base_delay(category) * (2**exponent)
        if self.config.jitter_fraction > 0:
            delay *= 1 + self._rng.uniform(0, self.config.jitter_fraction)
        return min(delay, self.config.max_delay_seconds)


@dataclass
class RetrySession:
    """Retry state for one logical operation.

    Created fresh by the orchestrator for every execute_with_retry() call
    and discarded afterwards.
    """

    max_attempts: int
    """Attempts allowed for this operation (at least 1)."""

    budget_seconds: float
    """Maximum summed backoff delay for this operation."""

    attempt: int = 0
    """Number of attempts started so far."""

    accumulated_delay: float = 0.0
    """Backoff slept (or scheduled) so far."""

    delays: list[float] = field(default_factory=list)
    """Every delay scheduled, in order."""

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.budget_seconds <= 0:
            raise ValueError(f"budget_seconds must be positive, got {self.budget_seconds}")

    def start_attempt(self) -> int:
        """Begin the next attempt and return its 1-indexed number."""
        self.attempt += 1
        return self.attempt

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempt)

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt >= self.max_attempts

    def can_afford(self, delay: float) -> bool:
        """Whether scheduling ``delay`` keeps the session within budget."""
        return self.accumulated_delay + delay <= self.budget_seconds

    def add_delay(self, delay: float) -> None:
        self.accumulated_delay += delay
        self.delays.append(delay)
        _logger.debug(
            "retry_session.delay_scheduled",
            attempt=self.attempt,
            delay_seconds=round(delay, 3),
            accumulated_seconds=round(self.accumulated_delay, 3),
            budget_seconds=self.budget_seconds,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "accumulated_delay": self.accumulated_delay,
            "budget_seconds": self.budget_seconds,
            "delays": list(self.delays),
        }


__all__ = ["BackoffPolicy", "RetrySession"]
