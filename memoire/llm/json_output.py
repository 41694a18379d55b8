"""Parsing of JSON-only model answers."""

from __future__ import annotations

import json
import re
from typing import Any, Dict

_JSON_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)


def parse_json_object(content: str) -> Dict[str, Any]:
    """Parse a model answer into a dict, tolerating a markdown fence or chatter.

    Raises ValueError when no JSON object can be recovered.
    """
    raw = _JSON_FENCE_RE.sub("", (content or "").strip())
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        start, end = raw.find("{"), raw.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("model output is not JSON") from None
        try:
            payload = json.loads(raw[start:end + 1])
        except json.JSONDecodeError as exc:
            raise ValueError(f"model output is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload
