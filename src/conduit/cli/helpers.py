"""State and helpers shared by the CLI commands.

Global options are parsed before any command runs and stored here; commands
read them back through the getters. Also loads engine config and parses
``--prompt-var`` pairs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from conduit.core.config import EngineConfig
from conduit.core.logging import configure_logging, get_logger

_logger = get_logger("cli")


class ErrorMessages:
    """Prefixes for error lines printed by the commands."""

    CONFIG_LOAD_ERROR = "Error loading config"
    CONFIG_NOT_FOUND = "Config file not found"
    INPUT_READ_ERROR = "Cannot read input"


# Output level


class OutputLevel(str, Enum):
    """Output verbosity level."""

    QUIET = "quiet"  # results and errors only
    NORMAL = "normal"
    VERBOSE = "verbose"  # adds execution details


_output_level: OutputLevel = OutputLevel.NORMAL


def get_output_level() -> OutputLevel:
    return _output_level


def set_output_level(level: OutputLevel) -> None:
    global _output_level
    _output_level = level


def is_verbose() -> bool:
    return _output_level == OutputLevel.VERBOSE


def is_quiet() -> bool:
    return _output_level == OutputLevel.QUIET


# Logging options


@dataclass
class CliLoggingConfig:
    """CLI logging state collected from the global options."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()


def get_log_level() -> str:
    return _log_config.level


def set_log_level(level: str) -> None:
    """Set the log level (DEBUG, INFO, WARNING, ERROR)."""
    _log_config.level = level.upper()  # type: ignore[assignment]


def get_log_file() -> Path | None:
    return _log_config.file


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def get_log_format() -> str:
    return _log_config.format


def set_log_format(fmt: str) -> None:
    """Set the log format (json, console, both)."""
    _log_config.format = fmt  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per session.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _log_config.configured:
        return

    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except ValueError as e:
        # e.g. format="both" without a log file
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Reset logging state so tests can reconfigure it."""
    _log_config.level = "WARNING"
    _log_config.file = None
    _log_config.format = "console"
    _log_config.configured = False


# =============================================================================
# Config loading
# =============================================================================


def load_engine_config(config_file: Path | None, console: Console) -> EngineConfig:
    """Load engine configuration, or defaults when no file is given.

    Raises:
        typer.Exit: With code 2 when the file cannot be read or validated.
    """
    if config_file is None:
        return EngineConfig()

    if not config_file.exists():
        console.print(f"[red]{ErrorMessages.CONFIG_NOT_FOUND}:[/red] {config_file}")
        raise typer.Exit(2)

    try:
        config = EngineConfig.from_yaml(config_file)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {e}")
        raise typer.Exit(2) from None

    _logger.debug("cli.config_loaded", path=str(config_file))
    return config


def parse_prompt_vars(pairs: list[str] | None) -> dict[str, str]:
    """Parse ``key=value`` pairs from repeated --prompt-var options.

    Raises:
        typer.BadParameter: If a pair has no ``=`` or an empty key.
    """
    variables: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--prompt-var")
        variables[key.strip()] = value
    return variables
