"""Error taxonomy for template parsing, building and export."""

from __future__ import annotations

from typing import List, Sequence


class MemoireError(RuntimeError):
    """Base class for every error raised by the memoire package."""


class StructureError(MemoireError):
    """The package cannot be decompressed or has no readable document body.

    Fatal: there is no fallback for a package we cannot open.
    """


class SemanticUnavailable(MemoireError):
    """The generative service failed, timed out or returned unusable output.

    Raised and recovered inside the semantic adapter; callers only see the
    pattern-only fallback it produces.
    """


class StaleTemplate(MemoireError):
    """A stored internal template no longer matches its original document."""

    def __init__(self, message: str, errors: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.errors: List[str] = list(errors)


class PlaceholderCollision(MemoireError):
    """Two questions of one build derived the same placeholder token."""


class PlaceholderDrift(MemoireError):
    """Export found answers without placeholders, or placeholders without answers."""

    def __init__(self, message: str, warnings: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.warnings: List[str] = list(warnings)


class CompletionError(MemoireError):
    """Transport-level failure talking to the completion service."""


class TemplateNotFound(MemoireError):
    """No internal template has been stored for the requested document."""


class JobConflict(MemoireError):
    """A job of the same priority class is already active for the project."""
