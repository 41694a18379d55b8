"""
Semantic extraction of sections and questions through the completion service.

One request per document, JSON only. Whatever comes back is coerced into
Section/Question/CompanyFormField records before anything else sees it. When
the service fails or answers with something unusable the adapter falls back to
line-based heuristics over the same plain text, so callers always get a result.
"""
from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Optional

from memoire import config
from memoire.documents.extraction.question_detector import (
    SECTION_RE,
    classify_heuristic,
    text_numbering,
)
from memoire.documents.models import (
    FREE_TEXT,
    SEMANTIC,
    YES_NO,
    CompanyFormField,
    Question,
    Section,
    SemanticResult,
)
from memoire.documents.text import detect_question_type, looks_like_question, normalize_text
from memoire.errors import SemanticUnavailable
from memoire.llm.json_output import parse_json_object
from memoire.prompts import read_prompt
from memoire.utils.debug import dbg, warn

SEMANTIC_CONFIDENCE = 0.7
FALLBACK_CONFIDENCE = 0.5

_FORM_FIELD_TYPES = {"text", "date", "select"}

_DEFAULT_PROMPT = (
    "Extrais les sections et les questions de ce modèle de mémoire technique. "
    'Réponds uniquement en JSON : {{"companyForm": {{"fields": []}}, "sections": [], "questions": []}}\n\n'
    "{text}"
)


def semantic_question_id(index: int, text: str) -> str:
    digest = hashlib.sha256(f"semantic:{index}:{normalize_text(text)}".encode("utf-8")).hexdigest()
    return f"ai_{digest[:16]}"


def _coerce_int(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return default


def _coerce_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_template_payload(content: str) -> Dict[str, Any]:
    try:
        payload = parse_json_object(content)
    except ValueError as exc:
        raise SemanticUnavailable(str(exc)) from exc
    if not isinstance(payload.get("questions"), list):
        raise SemanticUnavailable("model output has no 'questions' list")
    return payload


def coerce_sections(raw_sections: Any) -> List[Section]:
    sections: List[Section] = []
    if not isinstance(raw_sections, list):
        return sections
    for idx, raw in enumerate(raw_sections):
        if not isinstance(raw, dict):
            continue
        title = _coerce_str(raw.get("title"))
        if not title:
            continue
        sections.append(Section(order=_coerce_int(raw.get("order"), idx + 1), title=title))
    return sections


def coerce_questions(raw_questions: List[Any]) -> List[Question]:
    questions: List[Question] = []
    for idx, raw in enumerate(raw_questions):
        if not isinstance(raw, dict):
            continue
        title = _coerce_str(raw.get("title") or raw.get("text") or raw.get("question"))
        if not title:
            continue
        parent_order = _coerce_int(raw.get("parentQuestionOrder"), None)
        kind = _coerce_str(raw.get("questionType")).upper()
        questions.append(Question(
            id=semantic_question_id(idx, title),
            text=title,
            level=2 if parent_order is not None else 1,
            section_order=_coerce_int(raw.get("sectionOrder"), None),
            order_in_section=_coerce_int(raw.get("order"), idx + 1),
            type=YES_NO if kind == "YES_NO" else FREE_TEXT,
            required=raw.get("required") is not False,
            anchor_position=None,
            confidence=SEMANTIC_CONFIDENCE,
            provenance=SEMANTIC,
            detection_method="semantic",
            parent_question_order=parent_order,
        ))
    return questions


def coerce_company_form(raw_form: Any) -> List[CompanyFormField]:
    fields: List[CompanyFormField] = []
    raw_fields = raw_form.get("fields") if isinstance(raw_form, dict) else raw_form
    if not isinstance(raw_fields, list):
        return fields
    for raw in raw_fields:
        if not isinstance(raw, dict):
            continue
        label = _coerce_str(raw.get("label"))
        if not label:
            continue
        kind = _coerce_str(raw.get("type")).lower()
        options = raw.get("options") if isinstance(raw.get("options"), list) else []
        fields.append(CompanyFormField(
            label=label,
            type=kind if kind in _FORM_FIELD_TYPES else "text",
            required=raw.get("required") is True,
            placeholder=_coerce_str(raw.get("placeholder")) or None,
            options=[str(o) for o in options if str(o).strip()],
        ))
    return fields


def _is_section_line(line: str) -> bool:
    if SECTION_RE.match(line):
        return True
    letters = [ch for ch in line if ch.isalpha()]
    return 10 <= len(line) <= 150 and bool(letters) and all(ch.isupper() for ch in letters)


def fallback_parse(text: str, error: Optional[str] = None) -> SemanticResult:
    """Line-by-line section/question detection used when the service is unusable."""
    sections: List[Section] = []
    questions: List[Question] = []
    current_section: Optional[int] = None
    order = 0
    last_main_order: Optional[int] = None

    for line in (text or "").splitlines():
        line = line.strip()
        if len(line) < 5:
            continue
        if _is_section_line(line):
            current_section = len(sections) + 1
            sections.append(Section(order=current_section, title=line))
            order = 0
            last_main_order = None
            continue

        numbered = text_numbering(line)
        if numbered is not None:
            _, level, remainder = numbered
            if not looks_like_question(remainder):
                continue
        else:
            hit = classify_heuristic(line)
            if hit is None:
                continue
            level = hit[2]

        order += 1
        parent_order = last_main_order if level == 2 else None
        questions.append(Question(
            id=semantic_question_id(len(questions), line),
            text=line,
            level=2 if parent_order is not None else 1,
            section_order=current_section,
            order_in_section=order,
            type=detect_question_type(line),
            required=parent_order is None,
            confidence=FALLBACK_CONFIDENCE,
            provenance=SEMANTIC,
            detection_method="fallback",
            parent_question_order=parent_order,
        ))
        if parent_order is None:
            last_main_order = order

    dbg(f"fallback parse: {len(sections)} sections, {len(questions)} questions", tag="Semantic")
    return SemanticResult(sections=sections, questions=questions, fallback_used=True, error=error)


class SemanticExtractor:
    """Asks the completion service for the template structure, with a text fallback."""

    def __init__(self, llm_client=None, max_chars: int = config.SEMANTIC_MAX_CHARS):
        self._llm = llm_client
        self.max_chars = max_chars

    def extract(self, plain_text: str) -> SemanticResult:
        text = (plain_text or "")[: self.max_chars]
        if self._llm is None:
            return fallback_parse(text, error="no completion client configured")
        try:
            payload = self._request(text)
            result = SemanticResult(
                sections=coerce_sections(payload.get("sections")),
                questions=coerce_questions(payload["questions"]),
                company_form=coerce_company_form(payload.get("companyForm")),
            )
        except SemanticUnavailable as exc:
            warn(f"semantic pass unavailable, using text heuristics: {exc}")
            return fallback_parse(text, error=str(exc))
        dbg(
            f"semantic pass: {len(result.sections)} sections, {len(result.questions)} questions, "
            f"{len(result.company_form)} form fields",
            tag="Semantic",
        )
        return result

    def _request(self, text: str) -> Dict[str, Any]:
        prompt = read_prompt("parse_template", _DEFAULT_PROMPT).format(text=text)
        try:
            result = self._llm.get_completion(prompt, json_output=True)
        except Exception as exc:
            raise SemanticUnavailable(f"completion request failed: {exc}") from exc
        content = result[0] if isinstance(result, tuple) else result
        return parse_template_payload(str(content or ""))
