"""Error classification and handling.

Re-exports the public error taxonomy so callers can import from
``conduit.core.errors`` directly.
"""

from conduit.core.errors.codes import (
    ERROR_DEFINITIONS,
    ErrorCategory,
    ErrorCode,
    ErrorDefinition,
    Severity,
)
from conduit.core.errors.models import ClassifiedError, UserFacingError
from conduit.core.errors.signals import get_signal_name
from conduit.core.errors.classifier import COMMAND_NOT_FOUND_EXIT_CODE, ErrorClassifier

__all__ = [
    "COMMAND_NOT_FOUND_EXIT_CODE",
    "ERROR_DEFINITIONS",
    "ClassifiedError",
    "ErrorCategory",
    "ErrorClassifier",
    "ErrorCode",
    "ErrorDefinition",
    "Severity",
    "UserFacingError",
    "get_signal_name",
]
