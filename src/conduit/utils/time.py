"""Time utilities for Conduit.

Provides timezone-aware datetime helpers for timestamps attached to
progress messages and readiness snapshots.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current UTC time with tzinfo=UTC
    """
    return datetime.now(UTC)
