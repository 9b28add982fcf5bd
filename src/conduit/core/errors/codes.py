"""Error codes, categories, and severity levels.

Contains the structured error classification enums used throughout Conduit,
together with the definitions table that supplies user-facing text and
remediation steps for every code.

Error Code Taxonomy
===================

**E1xx - Installation Errors**
    The external CLI is missing or unusable. Not retryable.

    | Code | Name | Retryable | Severity |
    |------|------|-----------|----------|
    | E101 | CLI_NOT_FOUND | No | CRITICAL |
    | E102 | CLI_VERSION_INCOMPATIBLE | No | HIGH |
    | E103 | CLI_INSTALLATION_CORRUPT | No | HIGH |
    | E104 | CLI_DEPENDENCIES_MISSING | No | HIGH |

**E2xx - Authentication / Permission Errors**

    | Code | Name | Retryable | Severity |
    |------|------|-----------|----------|
    | E201 | AUTH_NOT_AUTHENTICATED | No | CRITICAL |
    | E202 | AUTH_TOKEN_EXPIRED | Yes | HIGH |
    | E203 | AUTH_INVALID_CREDENTIALS | Yes | HIGH |
    | E204 | AUTH_PERMISSION_DENIED | No | HIGH |
    | E205 | AUTH_ACCOUNT_SUSPENDED | No | CRITICAL |

**E3xx - Execution Errors**

    | Code | Name | Retryable | Severity |
    |------|------|-----------|----------|
    | E301 | EXEC_COMMAND_FAILED | Yes | MEDIUM |
    | E302 | EXEC_TIMEOUT | Yes | MEDIUM |
    | E303 | EXEC_PROCESS_CRASHED | Yes | HIGH |
    | E304 | EXEC_INVALID_ARGUMENTS | No | MEDIUM |
    | E305 | EXEC_RESOURCE_EXHAUSTED | No | CRITICAL |
    | E306 | EXEC_ABORTED | No | LOW |
    | E307 | EXEC_UNAVAILABLE | No | HIGH |
    | E308 | EXEC_RETRY_BUDGET_EXCEEDED | No | MEDIUM |

**E4xx - Response Errors**
    Output could not be turned into structured data. All retryable.

    | Code | Name |
    |------|------|
    | E401 | RESPONSE_MALFORMED |
    | E402 | RESPONSE_EMPTY |
    | E403 | RESPONSE_INVALID_JSON |
    | E404 | RESPONSE_MISSING_FIELDS |
    | E405 | RESPONSE_VALIDATION_FAILED |

**E5xx - Network Errors**

    | E501 | NETWORK_CONNECTION_FAILED | Yes | MEDIUM |

**E6xx - Quota Errors**

    | E601 | QUOTA_EXCEEDED | No | HIGH |
    | E602 | RATE_LIMIT_EXCEEDED | Yes | MEDIUM |

**E999 - UNKNOWN_ERROR** (retryable, MEDIUM)

Example::

    error = ClassifiedError.from_code(ErrorCode.EXEC_TIMEOUT)
    if error.retryable:
        ...
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import NamedTuple

# =============================================================================
# Categories
# =============================================================================


class ErrorCategory(str, Enum):
    """High-level error categories.

    Categories drive two decisions: which backoff tier the retry strategy
    uses, and whether a failure counts toward the circuit breaker.
    """

    INSTALLATION = "installation"
    AUTHENTICATION = "authentication"
    EXECUTION = "execution"
    RESPONSE = "response"
    TIMEOUT = "timeout"
    NETWORK = "network"
    PERMISSION = "permission"
    QUOTA = "quota"
    UNKNOWN = "unknown"

    @property
    def title(self) -> str:
        """Title used in user-facing error headings, e.g. "Network Error"."""
        return f"{self.value.capitalize()} Error"


# =============================================================================
# Severity Levels
# =============================================================================


class Severity(IntEnum):
    """Severity levels for error classification.

    Lower numeric value = higher severity, so ``severity <= Severity.HIGH``
    selects serious issues.
    """

    CRITICAL = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4

    @property
    def label(self) -> str:
        return self.name.lower()


# =============================================================================
# Error Codes
# =============================================================================


class ErrorCode(str, Enum):
    """Stable error codes for CLI execution failures.

    Values are short identifiers suitable for logs and metrics; member names
    describe the failure.
    """

    # E1xx: Installation
    CLI_NOT_FOUND = "E101"
    """The CLI binary could not be found on PATH."""

    CLI_VERSION_INCOMPATIBLE = "E102"
    """The installed CLI version is rejected by the version policy."""

    CLI_INSTALLATION_CORRUPT = "E103"
    """The CLI is present but cannot run correctly."""

    CLI_DEPENDENCIES_MISSING = "E104"
    """A runtime dependency of the CLI is missing."""

    # E2xx: Authentication / permission
    AUTH_NOT_AUTHENTICATED = "E201"
    """No usable credentials were found or the CLI reports no login."""

    AUTH_TOKEN_EXPIRED = "E202"
    """Credentials exist but have expired."""

    AUTH_INVALID_CREDENTIALS = "E203"
    """Credentials were rejected."""

    AUTH_PERMISSION_DENIED = "E204"
    """The OS or the service denied access."""

    AUTH_ACCOUNT_SUSPENDED = "E205"
    """The account used by the CLI is suspended."""

    # E3xx: Execution
    EXEC_COMMAND_FAILED = "E301"
    """The command exited with a non-zero status."""

    EXEC_TIMEOUT = "E302"
    """The command exceeded its timeout and was terminated."""

    EXEC_PROCESS_CRASHED = "E303"
    """The process was killed by a signal it did not expect."""

    EXEC_INVALID_ARGUMENTS = "E304"
    """The invocation was rejected before launch (e.g. invalid prompt)."""

    EXEC_RESOURCE_EXHAUSTED = "E305"
    """The host ran out of memory, disk, or process slots."""

    EXEC_ABORTED = "E306"
    """The caller cancelled the operation."""

    EXEC_UNAVAILABLE = "E307"
    """The circuit breaker is open; no process was spawned."""

    EXEC_RETRY_BUDGET_EXCEEDED = "E308"
    """Accumulated backoff would exceed the session retry budget."""

    # E4xx: Response
    RESPONSE_MALFORMED = "E401"
    """Output could not be interpreted."""

    RESPONSE_EMPTY = "E402"
    """The command produced no output."""

    RESPONSE_INVALID_JSON = "E403"
    """No decodable structured data was found in the output."""

    RESPONSE_MISSING_FIELDS = "E404"
    """Decoded data lacks required fields."""

    RESPONSE_VALIDATION_FAILED = "E405"
    """Decoded data has the wrong type for a known field, or reports an error."""

    # E5xx: Network
    NETWORK_CONNECTION_FAILED = "E501"
    """The CLI could not reach its service."""

    # E6xx: Quota
    QUOTA_EXCEEDED = "E601"
    """Usage quota exhausted."""

    RATE_LIMIT_EXCEEDED = "E602"
    """Too many requests in a short period."""

    UNKNOWN_ERROR = "E999"
    """Failure that matched no known pattern."""

    @property
    def definition(self) -> ErrorDefinition:
        """Static definition (category, severity, text) for this code."""
        return ERROR_DEFINITIONS[self]

    @property
    def category(self) -> ErrorCategory:
        return ERROR_DEFINITIONS[self].category

    @property
    def severity(self) -> Severity:
        return ERROR_DEFINITIONS[self].severity

    @property
    def retryable(self) -> bool:
        return ERROR_DEFINITIONS[self].retryable


# =============================================================================
# Definitions
# =============================================================================


class ErrorDefinition(NamedTuple):
    """Static metadata for one error code.

    Attributes:
        category: High-level category.
        severity: Severity level.
        retryable: Whether the orchestrator may retry after this error.
        message: Short technical message.
        user_message: Message shown to end users.
        remediation: Ordered, concrete steps the user can take.
        help_url: Optional documentation link.
    """

    category: ErrorCategory
    severity: Severity
    retryable: bool
    message: str
    user_message: str
    remediation: tuple[str, ...]
    help_url: str | None = None


_INSTALL_URL = "https://github.com/google-gemini/gemini-cli#installation"
_AUTH_URL = "https://github.com/google-gemini/gemini-cli#authentication"
_TROUBLESHOOTING_URL = "https://github.com/google-gemini/gemini-cli#troubleshooting"
_QUOTA_URL = "https://ai.google.dev/gemini-api/docs/rate-limits"

ERROR_DEFINITIONS: dict[ErrorCode, ErrorDefinition] = {
    ErrorCode.CLI_NOT_FOUND: ErrorDefinition(
        ErrorCategory.INSTALLATION,
        Severity.CRITICAL,
        False,
        "CLI executable not found",
        "The Gemini CLI is not installed or not in your system PATH.",
        (
            "Install the Gemini CLI following the official installation guide",
            "Make sure the CLI executable is on your system PATH",
            "Restart the application after installation",
            "Verify the installation with: gemini --version",
        ),
        _INSTALL_URL,
    ),
    ErrorCode.CLI_VERSION_INCOMPATIBLE: ErrorDefinition(
        ErrorCategory.INSTALLATION,
        Severity.HIGH,
        False,
        "CLI version is not compatible",
        "The installed Gemini CLI version is not supported.",
        (
            "Update the Gemini CLI to the latest version",
            "Check the supported versions in the documentation",
            "Verify the installed version with: gemini --version",
        ),
        _INSTALL_URL,
    ),
    ErrorCode.CLI_INSTALLATION_CORRUPT: ErrorDefinition(
        ErrorCategory.INSTALLATION,
        Severity.HIGH,
        False,
        "CLI installation appears to be corrupted",
        "The Gemini CLI installation appears to be damaged.",
        (
            "Uninstall the Gemini CLI completely",
            "Reinstall the Gemini CLI from the official source",
            "Restart the application after reinstalling",
        ),
        _INSTALL_URL,
    ),
    ErrorCode.CLI_DEPENDENCIES_MISSING: ErrorDefinition(
        ErrorCategory.INSTALLATION,
        Severity.HIGH,
        False,
        "CLI runtime dependencies are missing",
        "The Gemini CLI is missing a component it needs to run.",
        (
            "Reinstall the Gemini CLI to restore its dependencies",
            "Check that the required runtime (e.g. Node.js) is installed",
        ),
        _INSTALL_URL,
    ),
    ErrorCode.AUTH_NOT_AUTHENTICATED: ErrorDefinition(
        ErrorCategory.AUTHENTICATION,
        Severity.CRITICAL,
        False,
        "CLI is not authenticated",
        "You need to sign in to the Gemini CLI before it can be used.",
        (
            "Run 'gemini auth login' in your terminal",
            "Complete the sign-in flow in your browser",
            "Or set the GEMINI_API_KEY environment variable",
            "Retry the operation",
        ),
        _AUTH_URL,
    ),
    ErrorCode.AUTH_TOKEN_EXPIRED: ErrorDefinition(
        ErrorCategory.AUTHENTICATION,
        Severity.HIGH,
        True,
        "Authentication token has expired",
        "Your Gemini CLI sign-in has expired.",
        (
            "Run 'gemini auth login' to refresh your credentials",
            "Retry the operation",
        ),
        _AUTH_URL,
    ),
    ErrorCode.AUTH_INVALID_CREDENTIALS: ErrorDefinition(
        ErrorCategory.AUTHENTICATION,
        Severity.HIGH,
        True,
        "Invalid authentication credentials",
        "The Gemini CLI credentials were rejected.",
        (
            "Run 'gemini auth logout' followed by 'gemini auth login'",
            "Check that your API key is correct and active",
        ),
        _AUTH_URL,
    ),
    ErrorCode.AUTH_PERMISSION_DENIED: ErrorDefinition(
        ErrorCategory.PERMISSION,
        Severity.HIGH,
        False,
        "Permission denied",
        "The Gemini CLI does not have permission to perform this operation.",
        (
            "Check that your account has access to the requested model",
            "Check file permissions of the CLI executable",
            "Contact your administrator if the problem persists",
        ),
        _TROUBLESHOOTING_URL,
    ),
    ErrorCode.AUTH_ACCOUNT_SUSPENDED: ErrorDefinition(
        ErrorCategory.AUTHENTICATION,
        Severity.CRITICAL,
        False,
        "Account is suspended",
        "The account used by the Gemini CLI has been suspended.",
        (
            "Check your account status in the provider console",
            "Sign in with a different account",
        ),
        _AUTH_URL,
    ),
    ErrorCode.EXEC_COMMAND_FAILED: ErrorDefinition(
        ErrorCategory.EXECUTION,
        Severity.MEDIUM,
        True,
        "CLI command execution failed",
        "The Gemini CLI command failed to complete.",
        (
            "Check your internet connection",
            "Retry the operation",
            "Check the CLI logs for more details",
        ),
        _TROUBLESHOOTING_URL,
    ),
    ErrorCode.EXEC_TIMEOUT: ErrorDefinition(
        ErrorCategory.TIMEOUT,
        Severity.MEDIUM,
        True,
        "CLI command timed out",
        "The Gemini CLI took too long to respond.",
        (
            "Check your internet connection",
            "Try again with a shorter prompt",
            "Increase the timeout in settings",
        ),
        _TROUBLESHOOTING_URL,
    ),
    ErrorCode.EXEC_PROCESS_CRASHED: ErrorDefinition(
        ErrorCategory.EXECUTION,
        Severity.HIGH,
        True,
        "CLI process crashed unexpectedly",
        "The Gemini CLI stopped unexpectedly.",
        (
            "Retry the operation",
            "Update the Gemini CLI to the latest version",
            "Reinstall the CLI if the problem persists",
        ),
        _TROUBLESHOOTING_URL,
    ),
    ErrorCode.EXEC_INVALID_ARGUMENTS: ErrorDefinition(
        ErrorCategory.EXECUTION,
        Severity.MEDIUM,
        False,
        "Invalid command arguments",
        "The request could not be sent to the Gemini CLI.",
        (
            "Check the request content for unsupported characters",
            "Shorten the request if it is very long",
        ),
    ),
    ErrorCode.EXEC_RESOURCE_EXHAUSTED: ErrorDefinition(
        ErrorCategory.EXECUTION,
        Severity.CRITICAL,
        False,
        "System resources exhausted",
        "Your computer ran out of resources while running the Gemini CLI.",
        (
            "Close other applications to free memory",
            "Check available disk space",
            "Restart the application",
        ),
    ),
    ErrorCode.EXEC_ABORTED: ErrorDefinition(
        ErrorCategory.EXECUTION,
        Severity.LOW,
        False,
        "Command was aborted by user",
        "The operation was cancelled.",
        ("Start the operation again when ready",),
    ),
    ErrorCode.EXEC_UNAVAILABLE: ErrorDefinition(
        ErrorCategory.EXECUTION,
        Severity.HIGH,
        False,
        "CLI temporarily unavailable due to repeated failures",
        "The Gemini CLI is temporarily unavailable after repeated failures.",
        (
            "Wait for the cooldown period to pass",
            "Check your CLI installation and authentication",
            "Switch to a different API provider in Settings",
        ),
        _TROUBLESHOOTING_URL,
    ),
    ErrorCode.EXEC_RETRY_BUDGET_EXCEEDED: ErrorDefinition(
        ErrorCategory.TIMEOUT,
        Severity.MEDIUM,
        False,
        "Retry timeout exceeded",
        "The Gemini CLI kept failing and the retry time limit was reached.",
        (
            "Check your internet connection",
            "Try the operation again later",
        ),
        _TROUBLESHOOTING_URL,
    ),
    ErrorCode.RESPONSE_MALFORMED: ErrorDefinition(
        ErrorCategory.RESPONSE,
        Severity.MEDIUM,
        True,
        "Response format is malformed",
        "The Gemini CLI returned a response that could not be read.",
        (
            "Retry the operation",
            "Update the Gemini CLI to the latest version",
        ),
    ),
    ErrorCode.RESPONSE_EMPTY: ErrorDefinition(
        ErrorCategory.RESPONSE,
        Severity.MEDIUM,
        True,
        "Empty response received",
        "The Gemini CLI returned an empty response.",
        (
            "Retry the operation",
            "Check that the request contains enough information",
        ),
    ),
    ErrorCode.RESPONSE_INVALID_JSON: ErrorDefinition(
        ErrorCategory.RESPONSE,
        Severity.MEDIUM,
        True,
        "No valid structured data found in response",
        "The Gemini CLI response did not contain valid structured data.",
        (
            "Retry the operation",
            "Update the Gemini CLI to the latest version",
        ),
    ),
    ErrorCode.RESPONSE_MISSING_FIELDS: ErrorDefinition(
        ErrorCategory.RESPONSE,
        Severity.MEDIUM,
        True,
        "Response is missing required fields",
        "The Gemini CLI response was incomplete.",
        ("Retry the operation",),
    ),
    ErrorCode.RESPONSE_VALIDATION_FAILED: ErrorDefinition(
        ErrorCategory.RESPONSE,
        Severity.MEDIUM,
        True,
        "Response failed validation",
        "The Gemini CLI response did not have the expected structure.",
        ("Retry the operation",),
    ),
    ErrorCode.NETWORK_CONNECTION_FAILED: ErrorDefinition(
        ErrorCategory.NETWORK,
        Severity.MEDIUM,
        True,
        "Network connection failed",
        "The Gemini CLI could not connect to its service.",
        (
            "Check your internet connection",
            "Check firewall and proxy settings",
            "Retry the operation",
        ),
        _TROUBLESHOOTING_URL,
    ),
    ErrorCode.QUOTA_EXCEEDED: ErrorDefinition(
        ErrorCategory.QUOTA,
        Severity.HIGH,
        False,
        "API quota exceeded",
        "You have reached your usage quota for the Gemini API.",
        (
            "Wait for your quota to reset",
            "Check your usage in the provider console",
            "Upgrade your plan for a higher quota",
        ),
        _QUOTA_URL,
    ),
    ErrorCode.RATE_LIMIT_EXCEEDED: ErrorDefinition(
        ErrorCategory.QUOTA,
        Severity.MEDIUM,
        True,
        "Rate limit exceeded",
        "Too many requests were sent to the Gemini API in a short time.",
        (
            "Wait a moment before retrying",
            "Reduce how often requests are made",
        ),
        _QUOTA_URL,
    ),
    ErrorCode.UNKNOWN_ERROR: ErrorDefinition(
        ErrorCategory.UNKNOWN,
        Severity.MEDIUM,
        True,
        "An unknown error occurred",
        "Something went wrong while running the Gemini CLI.",
        (
            "Retry the operation",
            "Restart the application",
            "Check the logs for more details",
        ),
        _TROUBLESHOOTING_URL,
    ),
}


__all__ = [
    "ERROR_DEFINITIONS",
    "ErrorCategory",
    "ErrorCode",
    "ErrorDefinition",
    "Severity",
]
