"""Check that a stored internal template still belongs to its original document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from memoire.documents.docx.package import iter_body_paragraphs, open_package, package_hash
from memoire.documents.templating.placeholders import find_tokens
from memoire.documents.templating.template_builder import InternalTemplate
from memoire.errors import StaleTemplate, StructureError
from memoire.utils.debug import dbg


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def validate_template(template: InternalTemplate, original_bytes: Optional[bytes] = None) -> ValidationResult:
    errors: List[str] = []

    if original_bytes is not None and package_hash(original_bytes) != template.original_hash:
        errors.append("Original document changed since the template was built")

    try:
        document = open_package(template.package_bytes)
    except StructureError as exc:
        errors.append(f"Internal template cannot be opened: {exc}")
        return ValidationResult(is_valid=False, errors=errors)

    present = set()
    for bp in iter_body_paragraphs(document):
        present.update(find_tokens(bp.text))
    if not present:
        errors.append("Internal template contains no placeholder")
    else:
        lost = [m.placeholder_token for m in template.mappings if m.placeholder_token not in present]
        if lost:
            errors.append(f"{len(lost)} mapped placeholders are missing: {', '.join(lost[:5])}")

    dbg(f"validation: {len(errors)} errors", tag="Validator")
    return ValidationResult(is_valid=not errors, errors=errors)


def ensure_valid(template: InternalTemplate, original_bytes: Optional[bytes] = None) -> None:
    result = validate_template(template, original_bytes)
    if not result.is_valid:
        raise StaleTemplate("Internal template is stale; rebuild it before export", errors=result.errors)
