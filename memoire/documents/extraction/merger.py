"""
Fuse pattern and semantic question lists into one ordered list.

Pattern questions own the position (anchor, id); semantic questions enrich the
classification (type, required, parent order). The output order is the
canonical order used by the builder and the exporter.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from memoire.documents.models import (
    MERGED,
    SEMANTIC,
    MergeResult,
    MergeStats,
    Question,
)
from memoire.documents.text import normalize_for_matching, strip_enum_prefix
from memoire.utils.debug import dbg

EXACT_MATCH_SCORE = 1.0
CONTAINMENT_SCORE = 0.9
MATCH_THRESHOLD = 0.6
MIN_WORD_LENGTH = 2

MERGED_MIN_CONFIDENCE = 0.9
SEMANTIC_ONLY_CONFIDENCE = 0.7


def normalize_question(text: str) -> str:
    return normalize_for_matching(strip_enum_prefix((text or "").strip()))


def match_score(a: str, b: str) -> float:
    """Similarity of two normalised question texts in [0, 1]."""
    if not a or not b:
        return 0.0
    if a == b:
        return EXACT_MATCH_SCORE
    if a in b or b in a:
        return CONTAINMENT_SCORE
    words_a = {w for w in a.split() if len(w) > MIN_WORD_LENGTH}
    words_b = {w for w in b.split() if len(w) > MIN_WORD_LENGTH}
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


def _sort_key(q: Question, seq: int) -> Tuple[int, int, int, int]:
    section = q.section_order if q.section_order is not None else 0
    return (section, q.order_in_section, 0 if q.is_anchored else 1, seq)


def merge_questions(
    pattern_questions: Sequence[Question],
    semantic_questions: Sequence[Question],
) -> MergeResult:
    """Pair each pattern question with its best unconsumed semantic candidate."""
    semantic_norms = [normalize_question(s.text) for s in semantic_questions]
    consumed: set = set()
    # semantic (section_order, order) -> id of the question it ended up in
    semantic_slots: Dict[Tuple[Optional[int], int], str] = {}
    # question id -> semantic slot of its parent, as the semantic pass numbered it
    parent_slots: Dict[str, Tuple[Optional[int], int]] = {}
    merged: List[Question] = []
    merged_count = 0

    for p in pattern_questions:
        p_norm = normalize_question(p.text)
        best_idx: Optional[int] = None
        best_score = 0.0
        for j, s_norm in enumerate(semantic_norms):
            if j in consumed:
                continue
            score = match_score(p_norm, s_norm)
            if score > best_score:
                best_idx, best_score = j, score
        if best_idx is None or best_score <= MATCH_THRESHOLD:
            merged.append(replace(p))
            continue

        s = semantic_questions[best_idx]
        consumed.add(best_idx)
        merged_count += 1
        semantic_slots[(s.section_order, s.order_in_section)] = p.id
        if s.parent_question_order is not None:
            parent_slots[p.id] = (s.section_order, s.parent_question_order)
        merged.append(replace(
            p,
            type=s.type,
            required=s.required,
            parent_question_order=s.parent_question_order,
            section_order=p.section_order if p.section_order is not None else s.section_order,
            confidence=max(p.confidence, MERGED_MIN_CONFIDENCE),
            provenance=MERGED,
        ))
        dbg(f"merged {p.id} <- {s.id} (score {best_score:.2f})", tag="Merger")

    semantic_only: List[Question] = []
    for j, s in enumerate(semantic_questions):
        if j in consumed:
            continue
        semantic_slots.setdefault((s.section_order, s.order_in_section), s.id)
        if s.parent_question_order is not None:
            parent_slots[s.id] = (s.section_order, s.parent_question_order)
        semantic_only.append(replace(
            s,
            anchor_position=None,
            confidence=SEMANTIC_ONLY_CONFIDENCE,
            provenance=SEMANTIC,
        ))

    combined = merged + semantic_only
    for q in combined:
        if q.parent_question_id is not None or q.id not in parent_slots:
            continue
        parent_id = semantic_slots.get(parent_slots[q.id])
        if parent_id is not None and parent_id != q.id:
            q.parent_question_id = parent_id
            q.level = 2
        elif q.provenance == MERGED:
            # unresolved semantic numbering is dropped
            q.parent_question_order = None

    ordered = [q for _, q in sorted(enumerate(combined), key=lambda item: _sort_key(item[1], item[0]))]

    counters: Dict[Optional[int], int] = {}
    for q in ordered:
        counters[q.section_order] = counters.get(q.section_order, 0) + 1
        q.order_in_section = counters[q.section_order]
    by_id = {q.id: q for q in ordered}
    for q in ordered:
        parent = by_id.get(q.parent_question_id) if q.parent_question_id else None
        if parent is not None:
            q.parent_question_order = parent.order_in_section

    stats = MergeStats(
        pattern_only=len(pattern_questions) - merged_count,
        semantic_only=len(semantic_only),
        merged=merged_count,
        semantic_match_rate=(merged_count / len(semantic_questions)) if semantic_questions else 0.0,
    )
    dbg(f"merge stats: {stats}", tag="Merger")
    return MergeResult(merged_questions=ordered, stats=stats)
