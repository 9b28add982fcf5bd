"""Tests for engine configuration models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from conduit.core.config import (
    CircuitBreakerConfig,
    CliBackendConfig,
    EngineConfig,
    ReadinessConfig,
    RetryConfig,
)


class TestDefaults:
    """An empty document yields the documented defaults."""

    def test_empty_yaml(self) -> None:
        config = EngineConfig.from_yaml_string("")
        assert config.backend.command == "gemini"
        assert config.backend.timeout_seconds == 30
        assert config.backend.max_attempts == 3
        assert config.retry.session_budget_seconds == 300
        assert config.retry.max_delay_seconds == 30
        assert config.circuit_breaker.failure_threshold == 5
        assert config.circuit_breaker.cooldown_seconds == 60
        assert config.readiness.probe_timeout_seconds == 5
        assert config.logging.level == "WARNING"

    def test_retry_tiers(self) -> None:
        retry = RetryConfig()
        assert retry.base_delay_seconds == 1
        assert retry.network_delay_seconds == 2
        assert retry.timeout_delay_seconds == 3
        assert retry.quota_delay_seconds == 5


class TestBackendConfig:
    """CliBackendConfig validation."""

    def test_zero_retries_means_one_attempt(self) -> None:
        assert CliBackendConfig(max_retries=0).max_attempts == 1

    @pytest.mark.parametrize("timeout", [1, 601])
    def test_timeout_bounds(self, timeout: float) -> None:
        with pytest.raises(ValidationError):
            CliBackendConfig(timeout_seconds=timeout)

    def test_retry_limit(self) -> None:
        with pytest.raises(ValidationError):
            CliBackendConfig(max_retries=11)

    def test_empty_command_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CliBackendConfig(command="")


class TestRetryConfig:
    """RetryConfig validation."""

    def test_base_above_cap_rejected(self) -> None:
        with pytest.raises(ValidationError, match="base_delay_seconds"):
            RetryConfig(base_delay_seconds=10, max_delay_seconds=5)

    def test_jitter_bounds(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(jitter_fraction=1.5)


class TestCircuitBreakerConfig:
    """CircuitBreakerConfig validation."""

    def test_threshold_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            CircuitBreakerConfig(failure_threshold=0)

    def test_cooldown_capped(self) -> None:
        with pytest.raises(ValidationError):
            CircuitBreakerConfig(cooldown_seconds=3601)


class TestYamlLoading:
    """Loading from files and strings."""

    def test_from_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "conduit.yaml"
        path.write_text(
            "backend:\n"
            "  command: /usr/local/bin/gemini\n"
            "  models:\n"
            "    solution: gemini-1.5-pro\n"
            "retry:\n"
            "  session_budget_seconds: 120\n"
            "readiness:\n"
            "  models_probe_args: [models, list]\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  format: json\n"
        )
        config = EngineConfig.from_yaml(path)

        assert config.backend.command == "/usr/local/bin/gemini"
        assert config.backend.models.solution == "gemini-1.5-pro"
        assert config.backend.models.extraction == "gemini-2.0-flash"
        assert config.retry.session_budget_seconds == 120
        assert config.readiness.models_probe_args == ["models", "list"]
        assert config.logging.format == "json"

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig.from_yaml_string("logging:\n  level: TRACE\n")

    def test_readiness_env_vars_configurable(self) -> None:
        config = ReadinessConfig(api_key_env_vars=["MY_KEY"])
        assert config.api_key_env_vars == ["MY_KEY"]
