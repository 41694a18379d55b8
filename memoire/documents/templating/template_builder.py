"""
Build the internal template: the original package plus one hidden placeholder
paragraph per anchored question.

The placeholder paragraph sits right after the question's anchor paragraph (or
in the blank answer cell next to it) and carries only the token, at 1pt in
white. The mapping table records which token stands for which question.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from memoire.documents.docx.package import (
    iter_body_paragraphs,
    open_package,
    package_hash,
    save_package,
)
from memoire.documents.docx.paragraphs import (
    insert_paragraph_after,
    next_blank_cell_paragraph,
    write_suppressed,
)
from memoire.documents.models import AnchorPosition, Question
from memoire.documents.templating.placeholders import (
    PLACEHOLDER_COLOR,
    PLACEHOLDER_FONT_HALF_POINTS,
    placeholder_token,
)
from memoire.documents.text import normalize_for_matching
from memoire.errors import PlaceholderCollision, StaleTemplate
from memoire.utils.debug import dbg, warn


@dataclass
class QuestionPositionMapping:
    question_id: str
    placeholder_token: str
    question_title: str
    question_order: int
    section_id: Optional[str] = None
    anchor_position: Optional[AnchorPosition] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "placeholder_token": self.placeholder_token,
            "question_title": self.question_title,
            "question_order": self.question_order,
            "section_id": self.section_id,
            "anchor_position": self.anchor_position.to_dict() if self.anchor_position else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionPositionMapping":
        return cls(
            question_id=str(data["question_id"]),
            placeholder_token=str(data["placeholder_token"]),
            question_title=str(data.get("question_title") or ""),
            question_order=int(data.get("question_order") or 0),
            section_id=data.get("section_id"),
            anchor_position=AnchorPosition.from_dict(data.get("anchor_position")),
        )


@dataclass
class InternalTemplate:
    package_bytes: bytes
    mappings: List[QuestionPositionMapping]
    original_hash: str
    created_at: str = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat()
    )

    def by_token(self) -> Dict[str, QuestionPositionMapping]:
        return {m.placeholder_token: m for m in self.mappings}

    def by_question_id(self) -> Dict[str, QuestionPositionMapping]:
        return {m.question_id: m for m in self.mappings}


@dataclass
class BuildResult:
    template: InternalTemplate
    unanchored: List[Question] = field(default_factory=list)


def section_id_for(question: Question) -> Optional[str]:
    return f"section-{question.section_order}" if question.section_order is not None else None


def build_internal_template(original_bytes: bytes, questions: Sequence[Question]) -> BuildResult:
    """Insert one placeholder per anchored question into a copy of ``original_bytes``.

    Raises StaleTemplate when an anchor paragraph is gone or no longer carries
    the question text, and PlaceholderCollision when two questions derive the
    same token.
    """
    document = open_package(original_bytes)
    body = iter_body_paragraphs(document)

    anchored = [q for q in questions if q.is_anchored]
    unanchored = [q for q in questions if not q.is_anchored]
    for q in unanchored:
        warn(f"question {q.id} is unanchored, not embedded: {q.text[:80]!r}")

    # resolve every anchor before touching the tree so indices stay valid
    seen: Dict[str, str] = {}
    plan = []
    for q in anchored:
        token = placeholder_token(q.id)
        if token in seen:
            raise PlaceholderCollision(
                f"Questions {seen[token]} and {q.id} both map to {token}"
            )
        seen[token] = q.id

        pos = q.anchor_position
        if not 0 <= pos.paragraph_index < len(body):
            raise StaleTemplate(
                f"Anchor paragraph {pos.paragraph_index} of question {q.id} does not exist "
                f"({len(body)} paragraphs)"
            )
        bp = body[pos.paragraph_index]
        if pos.table_coordinates is not None and bp.table_coordinates != pos.table_coordinates:
            raise StaleTemplate(f"Anchor of question {q.id} moved out of table cell {pos.table_coordinates}")
        if normalize_for_matching(bp.text) != normalize_for_matching(q.text):
            raise StaleTemplate(
                f"Anchor paragraph {pos.paragraph_index} no longer matches question {q.id}: {bp.text[:80]!r}"
            )
        plan.append((q, token, bp))

    mappings: List[QuestionPositionMapping] = []
    # anchor element -> last paragraph inserted after it, keeps insertion order
    tails: Dict[int, Any] = {}
    for q, token, bp in plan:
        key = id(bp.paragraph._p)
        target = tails.get(key)
        if target is None:
            target = next_blank_cell_paragraph(bp.paragraph) if bp.table_coordinates else None
            target = target or bp.paragraph
        placeholder = insert_paragraph_after(target)
        write_suppressed(placeholder, token, PLACEHOLDER_FONT_HALF_POINTS, PLACEHOLDER_COLOR)
        tails[key] = placeholder
        mappings.append(QuestionPositionMapping(
            question_id=q.id,
            placeholder_token=token,
            question_title=q.text,
            question_order=q.order_in_section,
            section_id=section_id_for(q),
            anchor_position=q.anchor_position,
        ))
        dbg(f"{token} after paragraph {q.anchor_position.paragraph_index} ({q.id})", tag="Builder")

    template = InternalTemplate(
        package_bytes=save_package(document),
        mappings=mappings,
        original_hash=package_hash(original_bytes),
    )
    dbg(f"built template: {len(mappings)} placeholders, {len(unanchored)} unanchored", tag="Builder")
    return BuildResult(template=template, unanchored=unanchored)
