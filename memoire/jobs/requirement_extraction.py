"""
Low-priority requirement extraction over a project's source documents.

The job walks ``document_ids`` from its checkpoint, asks the completion
service for the requirements of each document and records the checkpoint
after every document. It stops as soon as the scheduler pauses it; a resume
continues from the checkpoint. Requirements are deduplicated by content hash,
so re-processing the document that was in flight when the pause landed does
not create duplicates. A document that fails is skipped and recorded on the
job, which then completes as unsuccessful.
"""
from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from memoire import config
from memoire.documents.text import normalize_for_matching
from memoire.jobs.scheduler import REQUIREMENT_EXTRACTION, BackgroundJob, JobScheduler, StartResult
from memoire.llm.json_output import parse_json_object
from memoire.prompts import read_prompt
from memoire.utils.debug import dbg, warn

RequirementPriority = Literal["LOW", "MED", "HIGH"]

_PRIORITY_ALIASES = {
    "HIGH": "HIGH", "HAUTE": "HIGH", "CRITICAL": "HIGH",
    "MED": "MED", "MEDIUM": "MED", "MOYENNE": "MED", "NORMAL": "MED",
}
_TITLE_MAX = 200


@dataclass
class Requirement:
    project_id: str
    document_id: str
    title: str
    description: str
    content_hash: str
    code: Optional[str] = None
    category: Optional[str] = None
    priority: RequirementPriority = "LOW"
    source_quote: Optional[str] = None
    source_page: Optional[int] = None


def requirement_hash(project_id: str, document_id: str, title: str) -> str:
    key = f"{project_id}|{document_id}|{normalize_for_matching(title)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def normalize_priority(value: Any) -> RequirementPriority:
    return _PRIORITY_ALIASES.get(str(value or "").strip().upper(), "LOW")  # type: ignore[return-value]


def truncate_middle(text: str, max_chars: int) -> str:
    """Keep the head and the tail of long documents."""
    if len(text) <= max_chars:
        return text
    half = max_chars // 2
    return text[:half] + "\n\n[...]\n\n" + text[-half:]


def _opt_str(value: Any) -> Optional[str]:
    return value.strip() or None if isinstance(value, str) else None


def _opt_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def coerce_requirements(payload: Dict[str, Any], project_id: str, document_id: str) -> List[Requirement]:
    raw_items = payload.get("requirements")
    if not isinstance(raw_items, list):
        raise ValueError("model output has no 'requirements' list")
    out: List[Requirement] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        title = (_opt_str(raw.get("title")) or "")[:_TITLE_MAX]
        if not title:
            continue
        out.append(Requirement(
            project_id=project_id,
            document_id=document_id,
            title=title,
            description=_opt_str(raw.get("description")) or title,
            content_hash=requirement_hash(project_id, document_id, title),
            code=_opt_str(raw.get("code")),
            category=_opt_str(raw.get("category")),
            priority=normalize_priority(raw.get("priority")),
            source_quote=_opt_str(raw.get("sourceQuote")),
            source_page=_opt_int(raw.get("sourcePage")),
        ))
    return out


class RequirementStore:
    """In-process requirement rows keyed by content hash."""

    def __init__(self) -> None:
        self._rows: Dict[str, Requirement] = {}
        self._lock = threading.Lock()

    def add(self, requirement: Requirement) -> bool:
        with self._lock:
            if requirement.content_hash in self._rows:
                return False
            self._rows[requirement.content_hash] = requirement
            return True

    def for_project(self, project_id: str) -> List[Requirement]:
        with self._lock:
            return [r for r in self._rows.values() if r.project_id == project_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


class RequirementExtractionJob:
    """Runs REQUIREMENT_EXTRACTION jobs and resumes them when the scheduler says so."""

    def __init__(
        self,
        scheduler: JobScheduler,
        llm_client,
        load_text: Callable[[str], str],
        store: Optional[RequirementStore] = None,
        max_chars: int = config.REQUIREMENT_MAX_CHARS,
    ) -> None:
        self.scheduler = scheduler
        self._llm = llm_client
        self._load_text = load_text
        self.store = store or RequirementStore()
        self.max_chars = max_chars
        self._threads: List[threading.Thread] = []
        scheduler.add_resume_listener(self._on_resume)

    def start(self, project_id: str, document_ids: List[str]) -> Tuple[str, StartResult]:
        """Register and start a job; the caller runs it when ``can_start`` is True."""
        job_id = self.scheduler.register_job(project_id, REQUIREMENT_EXTRACTION, document_ids)
        result: StartResult = self.scheduler.start_job(job_id)
        return job_id, result

    def _on_resume(self, job: BackgroundJob) -> None:
        if job.type != REQUIREMENT_EXTRACTION:
            return
        thread = threading.Thread(target=self.run, args=(job.id,), name=f"requirements-{job.id[:8]}", daemon=True)
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in list(self._threads):
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]

    def extract(self, project_id: str, document_id: str, text: str) -> List[Requirement]:
        prompt = read_prompt("extract_requirements").format(text=truncate_middle(text, self.max_chars))
        result = self._llm.get_completion(prompt, json_output=True)
        content = result[0] if isinstance(result, tuple) else result
        return coerce_requirements(parse_json_object(str(content or "")), project_id, document_id)

    def run(self, job_id: str) -> int:
        """Process documents from the checkpoint; returns the number of new requirements."""
        job = self.scheduler.get_job(job_id)
        if job is None:
            raise KeyError(f"Unknown job {job_id}")
        generation = job.generation
        added = 0
        for index in range(job.current_document_index, len(job.document_ids)):
            if not self.scheduler.should_continue(job_id, generation):
                dbg(f"{job_id} stopped before document {index}", tag="Requirements")
                return added
            document_id = job.document_ids[index]
            try:
                requirements = self.extract(job.project_id, document_id, self._load_text(document_id))
            except Exception as exc:
                warn(f"requirement extraction failed for document {document_id}: {exc}")
                self.scheduler.record_document_result(job_id, document_id, str(exc) or type(exc).__name__)
                requirements = []
            else:
                self.scheduler.record_document_result(job_id, document_id)
            added += sum(1 for r in requirements if self.store.add(r))
            if not self.scheduler.should_continue(job_id, generation):
                # paused mid-document: the resume re-reads it, rows dedupe by hash
                dbg(f"{job_id} paused during document {index}", tag="Requirements")
                return added
            self.scheduler.record_checkpoint(job_id, index + 1)
            dbg(f"{job_id} document {index + 1}/{len(job.document_ids)}: {len(requirements)} requirements", tag="Requirements")

        if self.scheduler.should_continue(job_id, generation):
            final = self.scheduler.get_job(job_id)
            failed = final.failed_documents if final else {}
            error = None
            if failed:
                error = f"{len(failed)} of {len(job.document_ids)} documents failed: " + ", ".join(failed)
            self.scheduler.complete_job(job_id, success=not failed, error=error)
        return added
