"""Print-based debug tracing shared by the pipeline modules."""

from __future__ import annotations

from memoire import config


def dbg(msg: str, tag: str = "DEBUG") -> None:
    if config.DEBUG:
        print(f"[{tag}] {msg}")


def warn(msg: str) -> None:
    """Always printed: recoverable problems the operator should see."""
    print(f"[WARN] {msg}")
