"""Process-level access to the external CLI: invocation, sanitization, readiness."""

from conduit.backends.base import ExecutionOutcome, ExecutionResult, Invocation
from conduit.backends.process_manager import ProcessRunner
from conduit.backends.readiness import (
    CredentialLocator,
    ProviderReadiness,
    ReadinessSnapshot,
    VersionPolicy,
)
from conduit.backends.sanitizer import sanitize_argument, sanitize_arguments

__all__ = [
    "CredentialLocator",
    "ExecutionOutcome",
    "ExecutionResult",
    "Invocation",
    "ProcessRunner",
    "ProviderReadiness",
    "ReadinessSnapshot",
    "VersionPolicy",
    "sanitize_argument",
    "sanitize_arguments",
]
