"""Placeholder tokens: ``{{Q_<12 uppercase hex>}}`` derived from a question id."""

from __future__ import annotations

import hashlib
import re
from typing import Iterable, List

TOKEN_HEX_LENGTH = 12
TOKEN_RE = re.compile(r"\{\{Q_[0-9A-F]{%d}\}\}" % TOKEN_HEX_LENGTH)

# Run properties of the placeholder paragraph: 1pt, white.
PLACEHOLDER_FONT_HALF_POINTS = "2"
PLACEHOLDER_COLOR = "FFFFFF"


def placeholder_token(question_id: str) -> str:
    digest = hashlib.sha256(question_id.encode("utf-8")).hexdigest()
    return "{{Q_" + digest[:TOKEN_HEX_LENGTH].upper() + "}}"


def find_tokens(text: str) -> List[str]:
    return TOKEN_RE.findall(text or "")


def contains_token(text: str) -> bool:
    return TOKEN_RE.search(text or "") is not None


def is_token_only(text: str) -> bool:
    return TOKEN_RE.fullmatch((text or "").strip()) is not None


def any_token_in(texts: Iterable[str]) -> bool:
    return any(contains_token(t) for t in texts)
