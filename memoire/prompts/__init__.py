from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable


def _resolve_prompts_dir() -> Path:
    """Locate the directory containing prompt template files."""
    env = os.getenv("MEMOIRE_PROMPTS_DIR")
    if env:
        p = Path(env).expanduser()
        if p.is_dir():
            return p
    return Path(__file__).resolve().parent


PROMPTS_DIR = _resolve_prompts_dir()


def read_prompt(name: str, default: str = "") -> str:
    """Read a prompt template from PROMPTS_DIR or return default."""
    filename = f"{name}.txt"

    direct_path = PROMPTS_DIR / filename
    if direct_path.exists():
        return direct_path.read_text(encoding="utf-8")

    # Nested prompt folders
    try:
        match = next(p for p in _iter_prompt_files() if p.name == filename)
        return match.read_text(encoding="utf-8")
    except StopIteration:
        return default


def _iter_prompt_files() -> Iterable[Path]:
    for path in PROMPTS_DIR.rglob("*.txt"):
        if path.is_file():
            yield path


__all__ = ["PROMPTS_DIR", "read_prompt"]
