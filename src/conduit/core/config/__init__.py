"""Configuration models for the Conduit engine.

Pydantic models for loading and validating YAML engine configuration. All
models are re-exported from this ``__init__``.
"""

from conduit.core.config.backend import (
    CliBackendConfig,
    OperationModels,
    ReadinessConfig,
    VersionPolicyConfig,
)
from conduit.core.config.engine import EngineConfig, LoggingConfig
from conduit.core.config.execution import CircuitBreakerConfig, RetryConfig

__all__ = [
    "CircuitBreakerConfig",
    "CliBackendConfig",
    "EngineConfig",
    "LoggingConfig",
    "OperationModels",
    "ReadinessConfig",
    "RetryConfig",
    "VersionPolicyConfig",
]
