"""
Fill an internal template with answers and report what happened.

One pass over every body paragraph (table cells included) replaces each
placeholder token by its answer, by the missing-answer text, or leaves it in
place when empty placeholders are preserved. A final sweep removes any
paragraph still carrying a token so nothing leaks into the delivered file.
"""
from __future__ import annotations

import datetime
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Set, Tuple

from docx.text.paragraph import Paragraph

from memoire import config
from memoire.documents.docx.package import iter_body_paragraphs, open_package, save_package
from memoire.documents.docx.paragraphs import (
    append_with_bold,
    clear_runs,
    clear_suppressed_style,
    insert_paragraph_after,
    remove_paragraph,
    sanitize_text,
)
from memoire.documents.templating.placeholders import contains_token, find_tokens, is_token_only
from memoire.documents.templating.template_builder import InternalTemplate, QuestionPositionMapping
from memoire.errors import PlaceholderDrift
from memoire.utils.debug import dbg, warn

InjectionStatus = Literal["injected", "missing", "not_found"]

PREVIEW_LENGTH = 100


@dataclass
class ExportOptions:
    missing_answer_text: str = config.MISSING_ANSWER_TEXT
    preserve_empty_placeholders: bool = False


@dataclass
class InjectionDetail:
    question_id: str
    placeholder_token: Optional[str]
    question_title: str
    status: InjectionStatus
    answer_preview: Optional[str] = None
    error: Optional[str] = None


@dataclass
class InjectionReport:
    total_questions: int
    injected_count: int
    missing_count: int
    not_found_count: int
    details: List[InjectionDetail] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    success: bool = False
    exported_at: str = ""
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def raise_for_drift(self) -> None:
        """Raise PlaceholderDrift when any answer or placeholder went unmatched."""
        if self.missing_count or self.not_found_count or self.warnings:
            raise PlaceholderDrift(
                f"{self.missing_count} missing, {self.not_found_count} not found, "
                f"{len(self.warnings)} warnings",
                warnings=self.warnings,
            )


def answer_text(value: Any) -> str:
    """Answers may be plain strings or dicts carrying a ``text`` field."""
    if value is None:
        return ""
    if isinstance(value, dict):
        value = value.get("text") or ""
    return sanitize_text(str(value)).strip()


def _write_lines(paragraph: Paragraph, text: str, parse_bold: bool) -> None:
    """Replace the paragraph content; extra lines become following paragraphs."""
    clear_runs(paragraph)
    clear_suppressed_style(paragraph)
    lines = text.split("\n")
    bold = False
    current = paragraph
    for i, line in enumerate(lines):
        if i > 0:
            current = insert_paragraph_after(current)
        if parse_bold:
            bold = append_with_bold(current, line, bold)
        elif line:
            current.add_run(line)


def _replace_inline(paragraph: Paragraph, token: str, replacement: str) -> None:
    """Replace a token that shares its paragraph with other text."""
    for run in paragraph.runs:
        if token in run.text:
            run.text = run.text.replace(token, replacement)
            return
    # token split across runs: flatten the paragraph
    flattened = paragraph.text.replace(token, replacement)
    clear_runs(paragraph)
    paragraph.add_run(flattened)


class AnswerInjector:
    def __init__(self, template: InternalTemplate, options: Optional[ExportOptions] = None):
        self.template = template
        self.options = options or ExportOptions()
        self._by_token = template.by_token()

    def export(self, answers: Mapping[str, Any]) -> Tuple[bytes, InjectionReport]:
        started = time.perf_counter()
        document = open_package(self.template.package_bytes)
        details: List[InjectionDetail] = []
        warnings: List[str] = []
        found: Set[str] = set()

        for bp in iter_body_paragraphs(document):
            text = bp.text
            tokens = find_tokens(text)
            if not tokens:
                continue
            token_only = len(tokens) == 1 and is_token_only(text)
            for token in tokens:
                mapping = self._by_token.get(token)
                if mapping is None:
                    warnings.append(f"Unknown placeholder {token} found in document")
                    continue
                first_seen = mapping.question_id not in found
                found.add(mapping.question_id)
                detail = self._substitute(bp.paragraph, token, mapping, answers, token_only)
                if first_seen:
                    details.append(detail)

        if not self.options.preserve_empty_placeholders:
            leaked = [bp.paragraph for bp in iter_body_paragraphs(document) if contains_token(bp.text)]
            for paragraph in leaked:
                remove_paragraph(paragraph)
            if leaked:
                dbg(f"removed {len(leaked)} paragraphs still carrying a placeholder", tag="Export")

        for mapping in self.template.mappings:
            if mapping.question_id not in found:
                warnings.append(f"Placeholder {mapping.placeholder_token} for question {mapping.question_id} is missing from the document")

        known = self.template.by_question_id()
        for question_id, value in answers.items():
            if question_id in found:
                continue
            mapping = known.get(question_id)
            preview = answer_text(value)[:PREVIEW_LENGTH] or None
            details.append(InjectionDetail(
                question_id=question_id,
                placeholder_token=mapping.placeholder_token if mapping else None,
                question_title=mapping.question_title if mapping else "",
                status="not_found",
                answer_preview=preview,
                error="no placeholder in template",
            ))
            warnings.append(f"Answer for question {question_id} has no placeholder in the template")

        injected = sum(1 for d in details if d.status == "injected")
        missing = sum(1 for d in details if d.status == "missing")
        not_found = sum(1 for d in details if d.status == "not_found")
        report = InjectionReport(
            total_questions=len(self.template.mappings),
            injected_count=injected,
            missing_count=missing,
            not_found_count=not_found,
            details=details,
            warnings=warnings,
            success=injected > 0,
            exported_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        for message in warnings:
            warn(message)
        dbg(f"export: {injected} injected, {missing} missing, {not_found} not found", tag="Export")
        return save_package(document), report

    def _substitute(
        self,
        paragraph: Paragraph,
        token: str,
        mapping: QuestionPositionMapping,
        answers: Mapping[str, Any],
        token_only: bool,
    ) -> InjectionDetail:
        answer = answer_text(answers.get(mapping.question_id))
        detail = InjectionDetail(
            question_id=mapping.question_id,
            placeholder_token=token,
            question_title=mapping.question_title,
            status="injected" if answer else "missing",
            answer_preview=answer[:PREVIEW_LENGTH] if answer else None,
        )
        if answer:
            if token_only:
                _write_lines(paragraph, answer, parse_bold=True)
            else:
                _replace_inline(paragraph, token, answer)
            return detail

        if self.options.preserve_empty_placeholders:
            return detail
        replacement = sanitize_text(self.options.missing_answer_text)
        if token_only:
            if replacement:
                _write_lines(paragraph, replacement, parse_bold=False)
            else:
                remove_paragraph(paragraph)
        else:
            _replace_inline(paragraph, token, replacement)
        return detail


def export_with_answers(
    template: InternalTemplate,
    answers: Mapping[str, Any],
    options: Optional[ExportOptions] = None,
) -> Tuple[bytes, InjectionReport]:
    return AnswerInjector(template, options).export(answers)
