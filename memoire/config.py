"""
Runtime settings, read once from the environment (and a local ``.env``).

    MEMOIRE_LLM_FRAMEWORK        studio | openai
    MEMOIRE_LLM_MODEL            model id sent to the completion service
    MEMOIRE_SEMANTIC_TIMEOUT     seconds before the semantic pass is abandoned
    MEMOIRE_SEMANTIC_MAX_CHARS   plain-text budget sent to the model
    MEMOIRE_USE_SEMANTIC         set to 0 for pattern-only parsing
    MEMOIRE_MISSING_ANSWER_TEXT  text written where no answer was supplied
    MEMOIRE_STORAGE_DIR          root of the local blob store
    MEMOIRE_DEBUG                1 enables [DEBUG] tracing
"""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=False)

DEBUG = os.getenv("MEMOIRE_DEBUG", "0") == "1"

FRAMEWORK = os.getenv("MEMOIRE_LLM_FRAMEWORK", "studio")
MODEL = os.getenv("MEMOIRE_LLM_MODEL", "gpt-4o-mini")

USE_SEMANTIC = os.getenv("MEMOIRE_USE_SEMANTIC", "1") == "1"
SEMANTIC_TIMEOUT = float(os.getenv("MEMOIRE_SEMANTIC_TIMEOUT", "90"))
SEMANTIC_MAX_CHARS = int(os.getenv("MEMOIRE_SEMANTIC_MAX_CHARS", "20000"))

REQUIREMENT_MAX_CHARS = int(os.getenv("MEMOIRE_REQUIREMENT_MAX_CHARS", "30000"))

MISSING_ANSWER_TEXT = os.getenv("MEMOIRE_MISSING_ANSWER_TEXT", "[À compléter]")

STORAGE_DIR = Path(os.getenv("MEMOIRE_STORAGE_DIR", ".memoire_store"))


def semantic_enabled() -> bool:
    """The semantic pass also needs credentials for the selected framework."""
    if not USE_SEMANTIC:
        return False
    if FRAMEWORK == "openai":
        return bool(os.getenv("OPENAI_API_KEY"))
    return bool(os.getenv("MEMOIRE_LLM_API_KEY") and os.getenv("MEMOIRE_LLM_BASE_URL"))
