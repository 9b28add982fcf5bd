"""Shared utilities for Conduit.

Contains cross-cutting utilities used by multiple modules.
"""

from conduit.utils.time import utc_now

__all__ = ["utc_now"]
