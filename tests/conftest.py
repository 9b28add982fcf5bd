"""Pytest fixtures for Conduit tests."""

import json
import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from conduit.core.config import ReadinessConfig


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test.

    This ensures test isolation for logging configuration.
    """
    from conduit.cli import helpers

    helpers.reset_logging_state()
    original_output_level = helpers.get_output_level()

    # Reset structlog to default state
    structlog.reset_defaults()

    # Clear all handlers from root logger
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    helpers.reset_logging_state()
    helpers.set_output_level(original_output_level)
    structlog.reset_defaults()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def fake_home(tmp_path: Path) -> Path:
    """An empty home directory for credential lookups."""
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def oauth_home(fake_home: Path) -> Path:
    """A home directory with a valid ~/.gemini/oauth_creds.json."""
    creds_dir = fake_home / ".gemini"
    creds_dir.mkdir()
    (creds_dir / "oauth_creds.json").write_text(json.dumps({"access_token": "ya29.test"}))
    return fake_home


@pytest.fixture
def readiness_config() -> ReadinessConfig:
    return ReadinessConfig()
