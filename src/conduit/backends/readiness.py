"""Provider readiness state for the external CLI.

Caches whether the CLI is installed, authenticated, and which models it can
serve, so the Retry Orchestrator can fail fast without spawning a process.

refresh() runs three probes in order, each short-circuiting the next on
failure:

1. Installation: ``<program> --version`` with its own short timeout, plus
   the version policy check.
2. Authentication: credential files and environment variables. No network
   round-trip is made.
3. Models: an optional model-list command, falling back to a fixed list.
   This stage never fails readiness.

The snapshot is cached until refresh() or invalidate() is called, typically
after a configuration change or an explicit user retry.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from conduit.backends.base import Invocation
from conduit.backends.process_manager import ProcessRunner
from conduit.core.config import ReadinessConfig, VersionPolicyConfig
from conduit.core.errors import ClassifiedError, ErrorClassifier, ErrorCode
from conduit.core.logging import get_logger
from conduit.utils.time import utc_now

_logger = get_logger("readiness")

UNKNOWN_VERSION = "unknown"

CREDENTIAL_FILENAME = "oauth_creds.json"

CREDENTIAL_KEYS = ("access_token", "refresh_token", "client_id", "api_key")
"""A credential file is valid when any of these holds a non-empty string."""

MODEL_NAME_PATTERN = re.compile(r"^gemini-[\d.]+-(?:pro|flash|vision)(?:-\d+)?$", re.IGNORECASE)


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Cached installation/authentication/model status.

    ``checked_at`` is excluded from equality so two refreshes with no
    underlying change compare equal.
    """

    installed: bool = False
    authenticated: bool = False
    models: tuple[str, ...] = ()
    checked_at: datetime | None = field(default=None, compare=False)
    error: ClassifiedError | None = None
    version: str | None = None
    compatible: bool = False
    auth_method: str | None = None

    @property
    def ready(self) -> bool:
        """True when an invocation may be attempted."""
        return self.installed and self.authenticated and self.error is None

    def blocking_error(self) -> ClassifiedError | None:
        """Error the fast-fail gate returns, or None when ready."""
        if self.ready:
            return None
        if self.error is not None:
            return self.error
        if not self.installed:
            return ClassifiedError.from_code(ErrorCode.CLI_NOT_FOUND)
        return ClassifiedError.from_code(ErrorCode.AUTH_NOT_AUTHENTICATED)

    def to_dict(self) -> dict[str, object]:
        return {
            "installed": self.installed,
            "authenticated": self.authenticated,
            "models": list(self.models),
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
            "error": self.error.to_dict() if self.error else None,
            "version": self.version,
            "compatible": self.compatible,
            "auth_method": self.auth_method,
        }


class VersionPolicy:
    """Parses ``--version`` output and decides compatibility.

    The default policy (minimum 0.0) accepts every parseable
    ``major.minor[.patch]`` version. Unparseable output ("unknown") is never
    compatible.
    """

    def __init__(self, config: VersionPolicyConfig | None = None) -> None:
        self.config = config or VersionPolicyConfig()
        self._minimum = _version_tuple(self.config.minimum_version)

    @staticmethod
    def parse(output: str, program: str = "gemini") -> str:
        """Extract a version string from ``--version`` output."""
        labelled = re.search(
            rf"(?:{re.escape(program)}|version)\s+v?(\d+\.\d+\.\d+)", output, re.IGNORECASE
        )
        if labelled:
            return labelled.group(1)
        bare = re.search(r"\b(\d+\.\d+\.\d+)\b", output) or re.search(r"\b(\d+\.\d+)\b", output)
        if bare:
            return bare.group(1)
        return UNKNOWN_VERSION

    def is_compatible(self, version: str | None) -> bool:
        if not version or version == UNKNOWN_VERSION:
            return False
        parsed = _version_tuple(version)
        if parsed is None:
            return False
        return _pad(parsed) >= _pad(self._minimum or (0, 0))


def _version_tuple(version: str) -> tuple[int, ...] | None:
    parts = version.strip().split(".")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        return None
    return tuple(int(p) for p in parts)


def _pad(parts: tuple[int, ...]) -> tuple[int, ...]:
    return parts + (0,) * (3 - len(parts))


class CredentialLocator:
    """Finds CLI credentials on disk or in the environment."""

    def __init__(
        self,
        config: ReadinessConfig,
        home: Path | None = None,
        env: Mapping[str, str] | None = None,
        platform: str | None = None,
    ) -> None:
        self.config = config
        self.home = home if home is not None else Path.home()
        self.env = env if env is not None else os.environ
        self.platform = platform or sys.platform

    def candidate_paths(self) -> list[Path]:
        """Credential file locations, most specific last."""
        home = self.home
        dirs = [home, home / ".config" / "gemini", home / ".gemini"]
        if self.platform == "win32":
            dirs += [
                home / "AppData" / "Roaming" / "gemini",
                home / "AppData" / "Local" / "gemini",
            ]
        elif self.platform == "darwin":
            dirs.append(home / "Library" / "Application Support" / "gemini")
        else:
            dirs.append(home / ".local" / "share" / "gemini")
        return [d / CREDENTIAL_FILENAME for d in dirs]

    def find(self) -> str | None:
        """Return a description of the credential source found, or None."""
        for path in self.candidate_paths():
            if _valid_credential_file(path):
                return f"file:{path}"

        for name in self.config.api_key_env_vars:
            value = self.env.get(name)
            if value and value.strip():
                return f"env:{name}"

        creds_file = self.env.get(self.config.credentials_file_env_var)
        if creds_file and Path(creds_file).is_file():
            return f"env:{self.config.credentials_file_env_var}"

        return None


def _valid_credential_file(path: Path) -> bool:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return False
    if not isinstance(data, dict):
        return False
    return any(isinstance(data.get(key), str) and data[key] for key in CREDENTIAL_KEYS)


class ProviderReadiness:
    """Caches the external CLI's readiness for the fast-fail gate.

    Reads are guarded by a threading lock; refreshes are serialized with an
    asyncio lock so concurrent callers never run the probes twice at once.
    """

    def __init__(
        self,
        config: ReadinessConfig | None = None,
        program: str = "gemini",
        runner: ProcessRunner | None = None,
        credentials: CredentialLocator | None = None,
    ) -> None:
        self.config = config or ReadinessConfig()
        self.program = program
        self._runner = runner or ProcessRunner(classifier=ErrorClassifier(program))
        self._credentials = credentials or CredentialLocator(self.config)
        self._policy = VersionPolicy(self.config.version_policy)
        self._snapshot: ReadinessSnapshot | None = None
        self._lock = threading.Lock()
        self._refresh_lock = asyncio.Lock()

    @property
    def snapshot(self) -> ReadinessSnapshot | None:
        """The cached snapshot, or None before the first refresh."""
        with self._lock:
            return self._snapshot

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next ensure_ready() re-probes."""
        with self._lock:
            self._snapshot = None
        _logger.debug("readiness.invalidated", program=self.program)

    async def ensure_ready(self) -> ReadinessSnapshot:
        """Return the cached snapshot, refreshing first if there is none."""
        current = self.snapshot
        if current is not None:
            return current
        return await self.refresh()

    async def refresh(self) -> ReadinessSnapshot:
        """Run all probes and replace the cached snapshot."""
        async with self._refresh_lock:
            snapshot = await self._probe()
            with self._lock:
                self._snapshot = snapshot

        _logger.info(
            "readiness.refreshed",
            program=self.program,
            installed=snapshot.installed,
            authenticated=snapshot.authenticated,
            version=snapshot.version,
            compatible=snapshot.compatible,
            models=list(snapshot.models),
            error_code=snapshot.error.code.value if snapshot.error else None,
        )
        return snapshot

    async def _probe(self) -> ReadinessSnapshot:
        installed, version, install_error = await self._probe_installation()
        if not installed:
            return ReadinessSnapshot(checked_at=utc_now(), error=install_error, version=version)

        compatible = self._policy.is_compatible(version)
        if not compatible:
            _logger.warning(
                "readiness.version_incompatible",
                version=version,
                minimum_version=self._policy.config.minimum_version,
                enforced=self._policy.config.require_compatible,
            )
            if self._policy.config.require_compatible:
                return ReadinessSnapshot(
                    installed=True,
                    checked_at=utc_now(),
                    version=version,
                    compatible=False,
                    error=ClassifiedError.from_code(
                        ErrorCode.CLI_VERSION_INCOMPATIBLE,
                        message=f"CLI version {version} is not compatible",
                    ),
                )

        auth_method = self._credentials.find()
        if auth_method is None:
            return ReadinessSnapshot(
                installed=True,
                checked_at=utc_now(),
                version=version,
                compatible=compatible,
                error=ClassifiedError.from_code(
                    ErrorCode.AUTH_NOT_AUTHENTICATED,
                    message="No CLI credentials found",
                ),
            )

        models = await self._probe_models()
        return ReadinessSnapshot(
            installed=True,
            authenticated=True,
            models=models,
            checked_at=utc_now(),
            version=version,
            compatible=compatible,
            auth_method=auth_method,
        )

    async def _probe_installation(self) -> tuple[bool, str | None, ClassifiedError | None]:
        result = await self._runner.run(
            Invocation(
                self.program,
                ("--version",),
                timeout_seconds=self.config.probe_timeout_seconds,
            )
        )
        if result.success:
            return True, self._policy.parse(result.stdout, self.program), None

        error = result.error
        if result.outcome == "launch_error" or (
            error is not None and error.code == ErrorCode.CLI_NOT_FOUND
        ):
            return False, None, error or ClassifiedError.from_code(ErrorCode.CLI_NOT_FOUND)

        if result.outcome == "timeout":
            reason = "did not respond to --version"
        else:
            reason = f"--version exited with code {result.exit_code}"
        return False, None, ClassifiedError.from_code(
            ErrorCode.CLI_INSTALLATION_CORRUPT,
            message=f"{self.program} {reason}",
            exit_code=result.exit_code,
            technical_details=result.output or None,
        )

    async def _probe_models(self) -> tuple[str, ...]:
        candidates: list[str] = list(self.config.known_models)
        probe_args = self.config.models_probe_args
        if probe_args:
            result = await self._runner.run(
                Invocation(
                    self.program,
                    tuple(probe_args),
                    timeout_seconds=self.config.probe_timeout_seconds,
                )
            )
            if result.success:
                candidates = _parse_model_names(result.stdout)
            else:
                _logger.warning(
                    "readiness.models_probe_failed",
                    error_code=result.error.code.value if result.error else None,
                )
                candidates = []

        supported = set(self.config.supported_models)
        models = [m for m in candidates if not supported or m in supported]
        if not models:
            return tuple(self.config.fallback_models)
        return tuple(dict.fromkeys(models))


def _parse_model_names(output: str) -> list[str]:
    names: list[str] = []
    for token in re.split(r"[\s,]+", output):
        token = token.strip("\"'")
        if MODEL_NAME_PATTERN.match(token):
            names.append(token)
    return names
