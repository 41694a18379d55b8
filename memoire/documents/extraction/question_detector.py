"""
Pattern-based question detection over a DOCX package.

Only formatting and numbering signals are used: heading styles and section
markers become sections; custom question styles, Word numbering, textual
numbering and a handful of text cues become questions. Every question keeps
the paragraph it was found on as its anchor.
"""
from __future__ import annotations

import hashlib
import re
from typing import Dict, List, Optional, Tuple

from docx.text.paragraph import Paragraph

from memoire.documents.docx.package import BodyParagraph, iter_body_paragraphs, open_package
from memoire.documents.models import (
    AnchorPosition,
    DetectionResult,
    DetectionStats,
    Question,
    Section,
)
from memoire.documents.text import (
    CONDITIONAL_RE,
    MEMOIRE_CUE_PATTERNS,
    QUESTION_KEYWORDS,
    detect_question_type,
    first_word,
    has_question_keyword,
    looks_like_question,
    normalize_text,
)
from memoire.utils.debug import dbg

MIN_TEXT_LENGTH = 5
MAX_SECTION_HEADING_LEVEL = 3

CONFIDENCE_STYLE = 0.95
CONFIDENCE_NATIVE_NUMBERING = 0.9
CONFIDENCE_TEXT_NUMBERING = 0.85
CONFIDENCE_QUESTION_MARK = 0.8
CONFIDENCE_KEYWORD_COLON = 0.75
CONFIDENCE_OPENING_VERB = 0.7
CONFIDENCE_CUE = 0.65

_HEADING_STYLE_RE = re.compile(r"^(?:heading|titre)\s*(\d+)", re.I)
_QUESTION_STYLE_RE = re.compile(r"question|rubrique|crit[eè]re", re.I)
_EXCLUDED_STYLE_RE = re.compile(r"\b(?:title|header|footer|toc|caption)\b|^toc", re.I)
SECTION_RE = re.compile(r"^\s*(?:item|chapitre|section|partie|article)\s+(\d+|[ivxlc]+)\b", re.I)
_TABLE_HEADER_RE = re.compile(r"^\s*(?:questions?|intitul[ée]s?|crit[èe]res?)\s*:?\s*$", re.I)

# (method, pattern); the first group of the multi-level decimal form gives the depth
_TEXT_NUMBERING: Tuple[Tuple[str, re.Pattern], ...] = (
    ("numbering_decimal", re.compile(r"^\s*(\d+(?:\.\d+)+)\.?\s+")),
    ("numbering_decimal", re.compile(r"^\s*\(?(\d+)[.)]\s+")),
    ("numbering_letter", re.compile(r"^\s*\(?([a-z]|[ivx]{1,4})[.)]\s+", re.I)),
    ("numbering_bullet", re.compile(r"^\s*[-•●○◦▪]\s+")),
)


def stable_question_id(paragraph_index: int, text: str) -> str:
    """Id derived from position and normalised text, identical across re-runs."""
    digest = hashlib.sha256(f"{paragraph_index}:{normalize_text(text)}".encode("utf-8")).hexdigest()
    return f"q_{digest[:16]}"


def _para_style_name(p: Paragraph) -> str:
    try:
        return p.style.name or ""
    except Exception:
        return ""


def heading_level(p: Paragraph) -> Optional[int]:
    """Heading level from the style name or an explicit outline level (1-based)."""
    m = _HEADING_STYLE_RE.match(_para_style_name(p))
    if m:
        return int(m.group(1))
    values = p._p.xpath("./w:pPr/w:outlineLvl/@w:val")
    if values:
        level = int(values[0])
        # 9 means "body text"
        if level < 9:
            return level + 1
    return None


def native_numbering_level(p: Paragraph) -> Optional[int]:
    """0-based ilvl of Word automatic numbering on the paragraph itself, if any."""
    if not p._p.xpath("./w:pPr/w:numPr"):
        return None
    values = p._p.xpath("./w:pPr/w:numPr/w:ilvl/@w:val")
    return int(values[0]) if values else 0


def text_numbering(text: str) -> Optional[Tuple[str, int, str]]:
    """Return (method, level, remainder) for a visible enumeration prefix."""
    for method, pattern in _TEXT_NUMBERING:
        m = pattern.match(text)
        if not m:
            continue
        remainder = text[m.end():].strip()
        if method == "numbering_decimal":
            level = 2 if "." in m.group(1) else 1
        else:
            level = 2
        return method, level, remainder
    return None


def classify_heuristic(text: str) -> Optional[Tuple[str, float, int]]:
    """Plain-text cues; returns (method, confidence, level) or None."""
    if any(p.search(text) for p in MEMOIRE_CUE_PATTERNS):
        level = 2 if CONDITIONAL_RE.match(text) else 1
        return "heuristic_keyword", CONFIDENCE_CUE, level
    if text.endswith("?") and len(text.split()) >= 3:
        return "heuristic_question", CONFIDENCE_QUESTION_MARK, 1
    if text.endswith(":") and has_question_keyword(text):
        return "heuristic_keyword", CONFIDENCE_KEYWORD_COLON, 1
    if first_word(text) in QUESTION_KEYWORDS:
        return "heuristic_keyword", CONFIDENCE_OPENING_VERB, 1
    return None


class PatternQuestionDetector:
    """Walks body paragraphs in document order and classifies each one."""

    def __init__(self, min_text_length: int = MIN_TEXT_LENGTH):
        self.min_text_length = min_text_length

    def detect(self, data: bytes) -> DetectionResult:
        document = open_package(data)
        paragraphs = iter_body_paragraphs(document)
        sections: List[Section] = []
        questions: List[Question] = []

        current_section: Optional[int] = None
        last_main: Optional[Question] = None
        order_in_section: Dict[Optional[int], int] = {}

        for bp in paragraphs:
            text = bp.text.strip()
            if len(text) < self.min_text_length:
                continue
            style = _para_style_name(bp.paragraph)
            if style and _EXCLUDED_STYLE_RE.search(style):
                continue
            if self._is_table_header(bp, text):
                continue

            section_level = self._section_level(bp, text)
            if section_level is not None:
                current_section = len(sections) + 1
                sections.append(Section(
                    order=current_section,
                    title=text,
                    anchor_position=self._anchor(bp),
                    level=section_level,
                ))
                last_main = None
                dbg(f"section {current_section}: {text[:60]!r}", tag="Detector")
                continue

            hit = self._classify_question(bp, text, style)
            if hit is None:
                continue
            method, confidence, level = hit

            parent_id = None
            if level == 2:
                if last_main is None:
                    level = 1
                else:
                    parent_id = last_main.id

            order_in_section[current_section] = order_in_section.get(current_section, 0) + 1
            question = Question(
                id=stable_question_id(bp.index, text),
                text=text,
                level=level,
                parent_question_id=parent_id,
                section_order=current_section,
                order_in_section=order_in_section[current_section],
                type=detect_question_type(text),
                anchor_position=self._anchor(bp),
                confidence=confidence,
                detection_method=method,
            )
            questions.append(question)
            if level == 1:
                last_main = question

        stats = DetectionStats.from_questions(questions)
        dbg(
            f"{len(sections)} sections, {stats.total_questions} questions "
            f"(main={stats.main_questions}, sub={stats.sub_questions}) by {stats.by_method}",
            tag="Detector",
        )
        return DetectionResult(sections=sections, questions=questions, stats=stats)

    @staticmethod
    def _anchor(bp: BodyParagraph) -> AnchorPosition:
        return AnchorPosition(paragraph_index=bp.index, table_coordinates=bp.table_coordinates)

    @staticmethod
    def _is_table_header(bp: BodyParagraph, text: str) -> bool:
        coords = bp.table_coordinates
        return coords is not None and coords.row_index == 0 and bool(_TABLE_HEADER_RE.match(text))

    @staticmethod
    def _section_level(bp: BodyParagraph, text: str) -> Optional[int]:
        level = heading_level(bp.paragraph)
        if level is not None and level <= MAX_SECTION_HEADING_LEVEL:
            return level
        if SECTION_RE.match(text):
            return 1
        return None

    @staticmethod
    def _classify_question(bp: BodyParagraph, text: str, style: str) -> Optional[Tuple[str, float, int]]:
        if style and _QUESTION_STYLE_RE.search(style):
            return "style_custom", CONFIDENCE_STYLE, 1

        ilvl = native_numbering_level(bp.paragraph)
        if ilvl is not None and looks_like_question(text):
            return "numbering_native", CONFIDENCE_NATIVE_NUMBERING, 2 if ilvl > 0 else 1

        numbered = text_numbering(text)
        if numbered is not None:
            method, level, remainder = numbered
            if looks_like_question(remainder):
                return method, CONFIDENCE_TEXT_NUMBERING, level
            return None

        return classify_heuristic(text)


def detect_questions(data: bytes) -> DetectionResult:
    return PatternQuestionDetector().detect(data)
