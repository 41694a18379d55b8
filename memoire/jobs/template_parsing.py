"""
High-priority "parse template" pipeline and the export entry point.

run():    detect + semantic pass (concurrently, the latter under a timeout)
          -> merge -> build -> store, inside a QUESTION_EXTRACTION job.
export(): load the stored template, optionally validate it against the
          original, inject answers.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from memoire import config
from memoire.documents.docx.package import check_package, render_plain_text
from memoire.documents.extraction.merger import merge_questions
from memoire.documents.extraction.question_detector import PatternQuestionDetector
from memoire.documents.extraction.semantic_extractor import SemanticExtractor
from memoire.documents.models import DetectionResult, MergeResult, Question, SemanticResult
from memoire.documents.templating.answer_injector import ExportOptions, InjectionReport, export_with_answers
from memoire.documents.templating.template_builder import BuildResult, build_internal_template
from memoire.documents.templating.validator import ensure_valid
from memoire.errors import JobConflict
from memoire.jobs.scheduler import QUESTION_EXTRACTION, JobScheduler
from memoire.storage.templates import TemplateStore
from memoire.utils.debug import dbg, warn


@dataclass
class ParseOutcome:
    job_id: str
    detection: DetectionResult
    semantic: SemanticResult
    merge: MergeResult
    build: BuildResult
    paused_job_id: Optional[str] = None
    resumed_job_id: Optional[str] = None

    @property
    def questions(self) -> List[Question]:
        return self.merge.merged_questions


class TemplateParsingPipeline:
    def __init__(
        self,
        scheduler: JobScheduler,
        store: TemplateStore,
        semantic: Optional[SemanticExtractor] = None,
        detector: Optional[PatternQuestionDetector] = None,
        semantic_timeout: float = config.SEMANTIC_TIMEOUT,
    ) -> None:
        self.scheduler = scheduler
        self.store = store
        self.semantic = semantic
        self.detector = detector or PatternQuestionDetector()
        self.semantic_timeout = semantic_timeout
        # document id -> (lock, number of callers holding or waiting on it)
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _document_lock(self, document_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock, users = self._locks.get(document_id, (threading.Lock(), 0))
            self._locks[document_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                lock, users = self._locks[document_id]
                if users == 1:
                    del self._locks[document_id]
                else:
                    self._locks[document_id] = (lock, users - 1)

    def run(
        self,
        project_id: str,
        document_id: str,
        package_bytes: bytes,
        plain_text: Optional[str] = None,
    ) -> ParseOutcome:
        job_id = self.scheduler.register_job(project_id, QUESTION_EXTRACTION, [document_id])
        started = self.scheduler.start_job(job_id)
        if not started.can_start:
            self.scheduler.abandon_job(job_id)
            raise JobConflict(f"Cannot parse template for project {project_id}: {started.reason}")

        try:
            with self._document_lock(document_id):
                detection, semantic = self._extract(package_bytes, plain_text)
                merge = merge_questions(detection.questions, semantic.questions)
                build = build_internal_template(package_bytes, merge.merged_questions)
                self.store.save(document_id, build.template)
        except Exception as exc:
            self.scheduler.complete_job(job_id, success=False, error=str(exc))
            raise

        resumed = self.scheduler.complete_job(job_id, success=True)
        dbg(
            f"parsed {document_id}: {len(merge.merged_questions)} questions, "
            f"{len(build.template.mappings)} placeholders",
            tag="Pipeline",
        )
        return ParseOutcome(
            job_id=job_id,
            detection=detection,
            semantic=semantic,
            merge=merge,
            build=build,
            paused_job_id=started.paused_job_id,
            resumed_job_id=resumed.id if resumed else None,
        )

    def _extract(self, package_bytes: bytes, plain_text: Optional[str]) -> Tuple[DetectionResult, SemanticResult]:
        check_package(package_bytes)
        if self.semantic is None:
            return self.detector.detect(package_bytes), SemanticResult(sections=[], questions=[], error="semantic pass disabled")

        text = plain_text if plain_text is not None else render_plain_text(package_bytes)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="semantic")
        try:
            future = executor.submit(self.semantic.extract, text)
            detection = self.detector.detect(package_bytes)
            try:
                semantic = future.result(timeout=self.semantic_timeout)
            except FutureTimeout:
                warn(f"semantic pass timed out after {self.semantic_timeout}s, using pattern results only")
                semantic = SemanticResult(sections=[], questions=[], error="timeout")
        finally:
            executor.shutdown(wait=False)
        return detection, semantic

    def export(
        self,
        document_id: str,
        answers: Mapping[str, Any],
        options: Optional[ExportOptions] = None,
        original_bytes: Optional[bytes] = None,
    ) -> Tuple[bytes, InjectionReport]:
        template = self.store.load(document_id)
        if original_bytes is not None:
            ensure_valid(template, original_bytes)
        return export_with_answers(template, answers, options)
