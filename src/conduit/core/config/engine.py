"""Top-level engine configuration.

Aggregates backend, readiness, retry, circuit breaker, and logging settings
into a single model that can be loaded from YAML.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from .backend import CliBackendConfig, ReadinessConfig
from .execution import CircuitBreakerConfig, RetryConfig


class LoggingConfig(BaseModel):
    """Structured logging settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="WARNING")
    format: Literal["json", "console", "both"] = Field(default="console")
    file_path: Path | None = Field(default=None, description="Optional log file")


class EngineConfig(BaseModel):
    """Complete configuration for the execution engine.

    Every section is optional; an empty YAML document yields the defaults.
    """

    backend: CliBackendConfig = Field(default_factory=CliBackendConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> EngineConfig:
        """Load engine configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> EngineConfig:
        """Load engine configuration from a YAML string."""
        data = yaml.safe_load(yaml_str)
        return cls.model_validate(data or {})
