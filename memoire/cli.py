#!/usr/bin/env python3
"""
memoire CLI

    detect   <template.docx>                          list detected sections/questions
    build    <template.docx> --document-id ID         parse, build and store the internal template
    export   --document-id ID --answers a.json -o out.docx
    validate --document-id ID --original template.docx

The answers file is a JSON object {question_id: answer}; answers may also be
objects with a "text" field.
"""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from memoire import config
from memoire.documents.extraction.question_detector import detect_questions
from memoire.documents.extraction.semantic_extractor import SemanticExtractor
from memoire.documents.templating.answer_injector import ExportOptions
from memoire.documents.templating.validator import validate_template
from memoire.errors import CompletionError, MemoireError, PlaceholderDrift
from memoire.jobs.scheduler import JobScheduler
from memoire.jobs.template_parsing import TemplateParsingPipeline
from memoire.llm.completions_client import build_client
from memoire.storage.templates import LocalBlobStorage, TemplateStore


def _read_docx(path: str) -> bytes:
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"File '{path}' does not exist.")
    if p.suffix.lower() != ".docx":
        raise ValueError(f"File '{path}' does not have a .docx extension.")
    return p.read_bytes()


def _emit(payload: Dict[str, Any], out: Optional[str]) -> None:
    js = json.dumps(payload, indent=2, ensure_ascii=False)
    if out:
        Path(out).write_text(js, encoding="utf-8")
        print(f"Wrote {out}")
    else:
        print(js)


def _semantic_extractor(enabled: bool) -> Optional[SemanticExtractor]:
    if not enabled or not config.semantic_enabled():
        return None
    try:
        return SemanticExtractor(build_client())
    except CompletionError as exc:
        print(f"[WARN] semantic pass disabled: {exc}", file=sys.stderr)
        return None


def _pipeline(store_dir: str, semantic: bool) -> TemplateParsingPipeline:
    store = TemplateStore(LocalBlobStorage(Path(store_dir)))
    return TemplateParsingPipeline(JobScheduler(), store, semantic=_semantic_extractor(semantic))


def cmd_detect(args: argparse.Namespace) -> int:
    result = detect_questions(_read_docx(args.docx_path))
    if args.json or args.out:
        _emit({
            "sections": [asdict(s) for s in result.sections],
            "questions": [q.to_dict() for q in result.questions],
            "stats": asdict(result.stats),
        }, args.out)
        return 0
    for s in result.sections:
        print(f"§{s.order} {s.title}")
    for q in result.questions:
        indent = "    " if q.level == 2 else "  "
        print(f"{indent}[{q.section_order or '-'}.{q.order_in_section}] ({q.type}, {q.confidence:.2f}) {q.text}")
    print(f"{result.stats.total_questions} questions ({result.stats.sub_questions} sub-questions)")
    return 0


def cmd_build(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args.store, semantic=not args.no_semantic)
    outcome = pipeline.run(args.project_id, args.document_id, _read_docx(args.docx_path))
    payload = {
        "document_id": args.document_id,
        "placeholders": len(outcome.build.template.mappings),
        "unanchored": [q.text for q in outcome.build.unanchored],
        "merge": asdict(outcome.merge.stats),
        "semantic_fallback": outcome.semantic.fallback_used,
        "semantic_error": outcome.semantic.error,
        "company_form": [asdict(f) for f in outcome.semantic.company_form],
        "questions": [q.to_dict() for q in outcome.questions],
    }
    if args.json or args.out:
        _emit(payload, args.out)
    else:
        print(f"Stored template for {args.document_id}: {payload['placeholders']} placeholders")
        for text in payload["unanchored"]:
            print(f"  unanchored, not embedded: {text}")
    return 0


def _load_answers(path: str) -> Dict[str, Any]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, list):
        return {str(item["question_id"]): item.get("answer") for item in data if isinstance(item, dict) and "question_id" in item}
    if not isinstance(data, dict):
        raise ValueError("Unsupported answers JSON structure.")
    return {str(k): v for k, v in data.items()}


def cmd_export(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args.store, semantic=False)
    options = ExportOptions(preserve_empty_placeholders=args.preserve_empty)
    if args.missing_text is not None:
        options.missing_answer_text = args.missing_text
    original = _read_docx(args.original) if args.original else None
    data, report = pipeline.export(args.document_id, _load_answers(args.answers), options, original)
    Path(args.out).write_bytes(data)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(
            f"Wrote {args.out}: {report.injected_count}/{report.total_questions} injected, "
            f"{report.missing_count} missing, {report.not_found_count} not found"
        )
    if args.strict:
        report.raise_for_drift()
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    store = TemplateStore(LocalBlobStorage(Path(args.store)))
    result = validate_template(store.load(args.document_id), _read_docx(args.original))
    if args.json:
        print(json.dumps(asdict(result), indent=2, ensure_ascii=False))
    else:
        print("valid" if result.is_valid else "stale")
        for err in result.errors:
            print(f"  - {err}")
    return 0 if result.is_valid else 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="memoire", description="Parse questionnaire templates and inject answers.")
    ap.add_argument("--store", default=str(config.STORAGE_DIR), help="Local template store directory")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("detect", help="Run the pattern detector on a template")
    p.add_argument("docx_path")
    p.add_argument("--json", action="store_true", help="Print JSON instead of a listing")
    p.add_argument("-o", "--out", default=None, help="Write JSON to this path")
    p.set_defaults(func=cmd_detect)

    p = sub.add_parser("build", help="Parse a template and store its internal template")
    p.add_argument("docx_path")
    p.add_argument("--document-id", required=True)
    p.add_argument("--project-id", default="default")
    p.add_argument("--no-semantic", action="store_true", help="Pattern detection only")
    p.add_argument("--json", action="store_true")
    p.add_argument("-o", "--out", default=None, help="Write JSON to this path")
    p.set_defaults(func=cmd_build)

    p = sub.add_parser("export", help="Inject answers into a stored template")
    p.add_argument("--document-id", required=True)
    p.add_argument("--answers", required=True, help="JSON file {question_id: answer}")
    p.add_argument("-o", "--out", required=True, help="Output .docx path")
    p.add_argument("--original", default=None, help="Original template, validated before export")
    p.add_argument("--missing-text", default=None, help="Text written for unanswered questions")
    p.add_argument("--preserve-empty", action="store_true", help="Keep placeholders of unanswered questions")
    p.add_argument("--strict", action="store_true", help="Fail when answers and placeholders drift")
    p.add_argument("--json", action="store_true", help="Print the injection report as JSON")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("validate", help="Check a stored template against its original")
    p.add_argument("--document-id", required=True)
    p.add_argument("--original", required=True)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_validate)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except PlaceholderDrift as exc:
        print(f"Error: {exc}", file=sys.stderr)
        for w in exc.warnings:
            print(f"  - {w}", file=sys.stderr)
        return 3
    except (MemoireError, FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
