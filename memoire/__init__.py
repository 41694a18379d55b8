"""Questionnaire template parsing, placeholder injection and job arbitration."""

from . import config
from .errors import (
    CompletionError,
    JobConflict,
    MemoireError,
    PlaceholderCollision,
    PlaceholderDrift,
    SemanticUnavailable,
    StaleTemplate,
    StructureError,
    TemplateNotFound,
)

__all__ = [
    "config",
    "CompletionError",
    "JobConflict",
    "MemoireError",
    "PlaceholderCollision",
    "PlaceholderDrift",
    "SemanticUnavailable",
    "StaleTemplate",
    "StructureError",
    "TemplateNotFound",
]
