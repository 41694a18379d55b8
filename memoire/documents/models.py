"""Records exchanged between the detector, the semantic adapter and the merger."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

QuestionType = Literal["FREE_TEXT", "YES_NO"]
Provenance = Literal["PATTERN", "SEMANTIC", "MERGED"]

FREE_TEXT: QuestionType = "FREE_TEXT"
YES_NO: QuestionType = "YES_NO"

PATTERN: Provenance = "PATTERN"
SEMANTIC: Provenance = "SEMANTIC"
MERGED: Provenance = "MERGED"


@dataclass(frozen=True)
class TableCoordinates:
    table_index: int
    row_index: int
    cell_index: int


@dataclass(frozen=True)
class AnchorPosition:
    """Paragraph a question is attached to, counted over the whole body walk."""

    paragraph_index: int
    table_coordinates: Optional[TableCoordinates] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["AnchorPosition"]:
        if not data:
            return None
        coords = data.get("table_coordinates")
        return cls(
            paragraph_index=int(data["paragraph_index"]),
            table_coordinates=TableCoordinates(**coords) if coords else None,
        )


@dataclass(frozen=True)
class Section:
    order: int
    title: str
    anchor_position: Optional[AnchorPosition] = None
    level: int = 1


@dataclass
class Question:
    id: str
    text: str
    level: int = 1
    parent_question_id: Optional[str] = None
    section_order: Optional[int] = None
    order_in_section: int = 0
    type: QuestionType = FREE_TEXT
    required: bool = True
    anchor_position: Optional[AnchorPosition] = None
    confidence: float = 0.5
    provenance: Provenance = PATTERN
    detection_method: str = "heuristic_question"
    parent_question_order: Optional[int] = None

    @property
    def is_anchored(self) -> bool:
        return self.anchor_position is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompanyFormField:
    label: str
    type: Literal["text", "date", "select"] = "text"
    required: bool = False
    placeholder: Optional[str] = None
    options: List[str] = field(default_factory=list)


@dataclass
class DetectionStats:
    total_questions: int = 0
    main_questions: int = 0
    sub_questions: int = 0
    average_confidence: float = 0.0
    by_method: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_questions(cls, questions: List[Question]) -> "DetectionStats":
        by_method: Dict[str, int] = {}
        for q in questions:
            by_method[q.detection_method] = by_method.get(q.detection_method, 0) + 1
        total = len(questions)
        return cls(
            total_questions=total,
            main_questions=sum(1 for q in questions if q.level == 1),
            sub_questions=sum(1 for q in questions if q.level == 2),
            average_confidence=(sum(q.confidence for q in questions) / total) if total else 0.0,
            by_method=by_method,
        )


@dataclass
class DetectionResult:
    sections: List[Section]
    questions: List[Question]
    stats: DetectionStats


@dataclass
class SemanticResult:
    sections: List[Section]
    questions: List[Question]
    company_form: List[CompanyFormField] = field(default_factory=list)
    fallback_used: bool = False
    error: Optional[str] = None


@dataclass
class MergeStats:
    pattern_only: int = 0
    semantic_only: int = 0
    merged: int = 0
    semantic_match_rate: float = 0.0


@dataclass
class MergeResult:
    merged_questions: List[Question]
    stats: MergeStats

    @property
    def anchored(self) -> List[Question]:
        return [q for q in self.merged_questions if q.is_anchored]

    @property
    def unanchored(self) -> List[Question]:
        return [q for q in self.merged_questions if not q.is_anchored]
