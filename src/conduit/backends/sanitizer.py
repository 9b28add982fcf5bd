"""Argument sanitization for CLI invocations.

Every argument passed to the external CLI goes through sanitize_arguments()
before launch. Shell metacharacters are removed outright rather than
escaped, which can change an argument's meaning; prompt text travels over
stdin, so only short flags and values are affected.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

SHELL_METACHARACTERS = frozenset(";&|`$(){}[]<>")
"""Characters stripped from every argument."""

_METACHAR_RE = re.compile(r"[;&|`$(){}\[\]<>]")
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_argument(arg: str) -> str:
    """Strip metacharacters, collapse whitespace, and trim one argument."""
    without_meta = _METACHAR_RE.sub("", arg)
    return _WHITESPACE_RE.sub(" ", without_meta).strip()


def sanitize_arguments(args: Iterable[str]) -> list[str]:
    """Return a sanitized copy of ``args``.

    Elements that are empty after sanitization are dropped. Never raises;
    non-string elements are converted with ``str()``.

    Example:
        >>> sanitize_arguments(["--model", "flash; rm -rf /", "  ", "$(id)"])
        ['--model', 'flash rm -rf /', 'id']
    """
    cleaned: list[str] = []
    for arg in args:
        value = sanitize_argument(arg if isinstance(arg, str) else str(arg))
        if value:
            cleaned.append(value)
    return cleaned
