"""Conduit - resilient execution engine for text-based AI command-line tools."""

__version__ = "0.3.0"

__all__ = ["__version__"]
