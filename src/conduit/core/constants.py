"""Global constants for Conduit.

Centralizes magic numbers used throughout the engine so defaults in the
config models, the runner, and the extractor stay consistent.
"""

# =============================================================================
# Process Execution Defaults
# =============================================================================

PROCESS_DEFAULT_TIMEOUT_SECONDS = 30.0
"""Default timeout for a single CLI invocation."""

PROCESS_TIMEOUT_MIN_SECONDS = 5.0
"""Smallest accepted per-invocation timeout."""

PROCESS_TIMEOUT_MAX_SECONDS = 600.0
"""Largest accepted per-invocation timeout (10 minutes)."""

GRACEFUL_TERMINATION_SECONDS = 5.0
"""Grace window between SIGTERM and SIGKILL when stopping a process."""

PROCESS_EXIT_TIMEOUT_SECONDS = 5.0
"""Seconds to wait for output pipes to drain after the process is stopped."""

VERSION_PROBE_TIMEOUT_SECONDS = 5.0
"""Timeout for the ``--version`` installation probe."""

# =============================================================================
# Retry / Backoff Defaults
# =============================================================================

DEFAULT_MAX_RETRIES = 3
"""Default number of attempts per logical operation."""

MAX_RETRIES_LIMIT = 10
"""Upper bound accepted for max_retries in configuration."""

RETRY_BASE_DELAY_SECONDS = 1.0
"""Base backoff delay for categories without a specific tier."""

RETRY_NETWORK_DELAY_SECONDS = 2.0
"""Base backoff delay for network failures."""

RETRY_TIMEOUT_DELAY_SECONDS = 3.0
"""Base backoff delay after an execution timeout."""

RETRY_QUOTA_DELAY_SECONDS = 5.0
"""Base backoff delay for quota and rate-limit failures."""

RETRY_MAX_DELAY_SECONDS = 30.0
"""Cap applied to any single backoff delay."""

RETRY_SESSION_BUDGET_SECONDS = 300.0
"""Maximum summed backoff delay for one logical operation (5 minutes)."""

RETRY_JITTER_FRACTION = 0.1
"""Upper bound of the multiplicative jitter added to each delay."""

# =============================================================================
# Circuit Breaker Defaults
# =============================================================================

CIRCUIT_FAILURE_THRESHOLD = 5
"""Consecutive qualifying failures that open the circuit."""

CIRCUIT_COOLDOWN_SECONDS = 60.0
"""Seconds the circuit stays open before admitting a probe."""

# =============================================================================
# Text Truncation Limits (characters)
# =============================================================================

TRUNCATE_PREVIEW_CHARS = 200
"""Maximum characters of raw output quoted in malformed-response errors."""

TRUNCATE_DETAILS_CHARS = 2000
"""Maximum characters of raw output kept as technical details."""

RECOVERY_MIN_CONTENT_CHARS = 10
"""Recovered free text must be longer than this to be returned."""

# =============================================================================
# Prompt Validation Limits
# =============================================================================

PROMPT_MIN_CHARS = 10
"""Shortest prompt accepted for a CLI operation."""

PROMPT_MAX_CHARS = 50_000
"""Longest prompt accepted for a CLI operation."""
