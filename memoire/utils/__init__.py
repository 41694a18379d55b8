"""Small shared helpers (debug tracing)."""

from .debug import dbg, warn

__all__ = ["dbg", "warn"]
