"""Core domain models, configuration, errors, and logging."""

from conduit.core.config import EngineConfig
from conduit.core.errors import (
    ClassifiedError,
    ErrorCategory,
    ErrorClassifier,
    ErrorCode,
    Severity,
)

__all__ = [
    "ClassifiedError",
    "EngineConfig",
    "ErrorCategory",
    "ErrorClassifier",
    "ErrorCode",
    "Severity",
]
