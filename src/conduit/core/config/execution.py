"""Retry and circuit breaker configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from conduit.core.constants import (
    CIRCUIT_COOLDOWN_SECONDS,
    CIRCUIT_FAILURE_THRESHOLD,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_JITTER_FRACTION,
    RETRY_MAX_DELAY_SECONDS,
    RETRY_NETWORK_DELAY_SECONDS,
    RETRY_QUOTA_DELAY_SECONDS,
    RETRY_SESSION_BUDGET_SECONDS,
    RETRY_TIMEOUT_DELAY_SECONDS,
)


class RetryConfig(BaseModel):
    """Configuration for backoff between attempts.

    The delay before retry ``n`` (1-based attempt that just failed) is
    ``base × 2^(n-1) × (1 + U[0, jitter_fraction))`` capped at
    ``max_delay_seconds``, where ``base`` depends on the error category.
    """

    base_delay_seconds: float = Field(
        default=RETRY_BASE_DELAY_SECONDS,
        gt=0,
        le=30,
        description="Base delay for categories without a specific tier",
    )
    network_delay_seconds: float = Field(default=RETRY_NETWORK_DELAY_SECONDS, gt=0, le=60)
    timeout_delay_seconds: float = Field(default=RETRY_TIMEOUT_DELAY_SECONDS, gt=0, le=60)
    quota_delay_seconds: float = Field(default=RETRY_QUOTA_DELAY_SECONDS, gt=0, le=60)
    max_delay_seconds: float = Field(
        default=RETRY_MAX_DELAY_SECONDS,
        gt=0,
        description="Cap applied to any single delay",
    )
    session_budget_seconds: float = Field(
        default=RETRY_SESSION_BUDGET_SECONDS,
        gt=0,
        description="Maximum summed delay across one logical operation",
    )
    jitter_fraction: float = Field(
        default=RETRY_JITTER_FRACTION,
        ge=0,
        le=1,
        description="Upper bound of the multiplicative jitter",
    )

    @model_validator(mode="after")
    def _validate_delay_range(self) -> RetryConfig:
        if self.base_delay_seconds > self.max_delay_seconds:
            raise ValueError(
                f"base_delay_seconds ({self.base_delay_seconds}) must not exceed "
                f"max_delay_seconds ({self.max_delay_seconds})"
            )
        return self


class CircuitBreakerConfig(BaseModel):
    """Configuration for the circuit breaker.

    Only systemic failures (installation, authentication, network, or
    critical execution errors) count toward the threshold.

    Example:
        circuit_breaker:
          failure_threshold: 5
          cooldown_seconds: 60
    """

    enabled: bool = Field(default=True, description="Gate invocations on the breaker")
    failure_threshold: int = Field(
        default=CIRCUIT_FAILURE_THRESHOLD,
        ge=1,
        le=100,
        description="Consecutive qualifying failures before opening the circuit",
    )
    cooldown_seconds: float = Field(
        default=CIRCUIT_COOLDOWN_SECONDS,
        gt=0,
        le=3600,
        description="Seconds in OPEN state before a probe is admitted (max 1 hour)",
    )
