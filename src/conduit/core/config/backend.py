"""CLI backend and readiness configuration models.

Defines how the external CLI is invoked (command, timeouts, models) and how
its readiness is probed (version policy, credential lookup, model lists).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

from conduit.core.constants import (
    DEFAULT_MAX_RETRIES,
    GRACEFUL_TERMINATION_SECONDS,
    MAX_RETRIES_LIMIT,
    PROCESS_DEFAULT_TIMEOUT_SECONDS,
    PROCESS_TIMEOUT_MAX_SECONDS,
    PROCESS_TIMEOUT_MIN_SECONDS,
    VERSION_PROBE_TIMEOUT_SECONDS,
)

_VERSION_RE = re.compile(r"^\d+\.\d+(\.\d+)?$")


class OperationModels(BaseModel):
    """Model used for each operation type."""

    extraction: str = Field(default="gemini-2.0-flash", min_length=1)
    solution: str = Field(default="gemini-2.0-flash", min_length=1)
    debugging: str = Field(default="gemini-2.0-flash", min_length=1)


class CliBackendConfig(BaseModel):
    """Configuration for invoking the external CLI.

    Example YAML:
        backend:
          command: gemini
          timeout_seconds: 45
          max_retries: 4
          models:
            solution: gemini-1.5-pro
    """

    command: str = Field(
        default="gemini",
        min_length=1,
        description="Executable name or path of the CLI",
    )
    timeout_seconds: float = Field(
        default=PROCESS_DEFAULT_TIMEOUT_SECONDS,
        ge=PROCESS_TIMEOUT_MIN_SECONDS,
        le=PROCESS_TIMEOUT_MAX_SECONDS,
        description="Hard timeout for a single invocation",
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        le=MAX_RETRIES_LIMIT,
        description="Maximum attempts per logical operation (0 is treated as 1)",
    )
    grace_period_seconds: float = Field(
        default=GRACEFUL_TERMINATION_SECONDS,
        gt=0,
        le=60,
        description="Seconds between SIGTERM and SIGKILL when stopping the CLI",
    )
    temperature: float = Field(default=0.2, ge=0, le=2)
    models: OperationModels = Field(default_factory=OperationModels)

    @property
    def max_attempts(self) -> int:
        """Attempts per operation; at least one attempt is always made."""
        return max(1, self.max_retries)


class VersionPolicyConfig(BaseModel):
    """Which CLI versions are considered compatible.

    The default accepts every parseable ``major.minor[.patch]`` version. An
    incompatible version is recorded on the readiness snapshot and only
    blocks execution when ``require_compatible`` is set.
    """

    minimum_version: str = Field(
        default="0.0",
        description="Lowest accepted version (major.minor[.patch])",
    )
    require_compatible: bool = Field(
        default=False,
        description="Treat an incompatible or unparseable version as not ready",
    )

    @field_validator("minimum_version")
    @classmethod
    def _validate_minimum_version(cls, value: str) -> str:
        if not _VERSION_RE.match(value):
            raise ValueError(f"minimum_version must look like 1.2 or 1.2.3, got {value!r}")
        return value


class ReadinessConfig(BaseModel):
    """Configuration for the readiness probes."""

    probe_timeout_seconds: float = Field(
        default=VERSION_PROBE_TIMEOUT_SECONDS,
        gt=0,
        le=60,
        description="Timeout for the --version and model-list probes",
    )
    version_policy: VersionPolicyConfig = Field(default_factory=VersionPolicyConfig)
    known_models: list[str] = Field(
        default=["gemini-2.0-flash", "gemini-1.5-pro", "gemini-1.5-flash"],
        description="Models assumed available when no model-list probe is configured",
    )
    supported_models: list[str] = Field(
        default=["gemini-1.5-pro", "gemini-2.0-flash"],
        description="Models this engine is known to work with",
    )
    fallback_models: list[str] = Field(
        default=["gemini-2.0-flash", "gemini-1.5-pro"],
        min_length=1,
        description="Models reported when the model probe fails or finds nothing",
    )
    models_probe_args: list[str] | None = Field(
        default=None,
        description="Arguments for a model-list probe, e.g. ['models', 'list']",
    )
    api_key_env_vars: list[str] = Field(
        default=["GEMINI_API_KEY", "GOOGLE_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"],
        description="Environment variables that count as authentication when non-blank",
    )
    credentials_file_env_var: str = Field(
        default="GOOGLE_APPLICATION_CREDENTIALS",
        description="Environment variable naming a credentials file",
    )

    @model_validator(mode="after")
    def _validate_fallback_supported(self) -> ReadinessConfig:
        if self.supported_models:
            unsupported = [m for m in self.fallback_models if m not in self.supported_models]
            if unsupported:
                raise ValueError(
                    f"fallback_models must be a subset of supported_models: {unsupported}"
                )
        return self
