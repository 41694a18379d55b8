"""
Per-project arbitration of the two background job classes.

QUESTION_EXTRACTION is high priority and never waits: starting it pauses a
running REQUIREMENT_EXTRACTION job of the same project at its checkpoint.
Completing the high-priority job hands the paused (or deferred) requirement
job back to ``running`` and notifies the resume listeners, which continue it
from ``current_document_index``.

All state lives in one table owned by a JobScheduler instance and every
transition happens under its lock.
"""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Literal, Optional, Sequence

from memoire.utils.debug import dbg, warn

JobType = Literal["QUESTION_EXTRACTION", "REQUIREMENT_EXTRACTION"]
JobStatus = Literal["pending", "running", "paused", "completed"]

QUESTION_EXTRACTION: JobType = "QUESTION_EXTRACTION"
REQUIREMENT_EXTRACTION: JobType = "REQUIREMENT_EXTRACTION"

HIGH = "high"
LOW = "low"
JOB_PRIORITY: Dict[str, str] = {
    QUESTION_EXTRACTION: HIGH,
    REQUIREMENT_EXTRACTION: LOW,
}

JobListener = Callable[["BackgroundJob"], None]


@dataclass
class BackgroundJob:
    id: str
    project_id: str
    type: JobType
    status: JobStatus = "pending"
    current_document_index: int = 0
    document_ids: List[str] = field(default_factory=list)
    succeeded: Optional[bool] = None
    error: Optional[str] = None
    # bumped on every start/resume; workers holding an older value must stop
    generation: int = 0
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    paused_at: Optional[float] = None
    completed_at: Optional[float] = None
    # document id -> last error, cleared when the document later succeeds
    failed_documents: Dict[str, str] = field(default_factory=dict)

    @property
    def priority(self) -> str:
        return JOB_PRIORITY[self.type]


@dataclass
class StartResult:
    can_start: bool
    paused_job_id: Optional[str] = None
    reason: Optional[str] = None


def _snapshot(job: BackgroundJob) -> BackgroundJob:
    return replace(job, document_ids=list(job.document_ids), failed_documents=dict(job.failed_documents))


class JobScheduler:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[str, BackgroundJob] = {}
        self._deferred: List[str] = []
        self._resume_listeners: List[JobListener] = []
        self._complete_listeners: List[JobListener] = []

    # ───────────── listeners ─────────────

    def add_resume_listener(self, listener: JobListener) -> None:
        self._resume_listeners.append(listener)

    def add_complete_listener(self, listener: JobListener) -> None:
        self._complete_listeners.append(listener)

    # ───────────── lookups ─────────────

    def get_job(self, job_id: str) -> Optional[BackgroundJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return _snapshot(job) if job else None

    def jobs_for(self, project_id: str) -> List[BackgroundJob]:
        with self._lock:
            return [_snapshot(j) for j in self._jobs.values() if j.project_id == project_id]

    def get_paused_job(self, project_id: str) -> Optional[BackgroundJob]:
        with self._lock:
            job = self._find(project_id, LOW, ("paused",))
            return _snapshot(job) if job else None

    def _find(self, project_id: str, priority: str, statuses: Sequence[str], exclude: Optional[str] = None) -> Optional[BackgroundJob]:
        for job in self._jobs.values():
            if job.id == exclude or job.project_id != project_id:
                continue
            if job.priority == priority and job.status in statuses:
                return job
        return None

    def _require(self, job_id: str) -> BackgroundJob:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise KeyError(f"Unknown job {job_id}") from None

    # ───────────── transitions ─────────────

    def register_job(self, project_id: str, job_type: JobType, document_ids: Optional[Sequence[str]] = None) -> str:
        if job_type not in JOB_PRIORITY:
            raise ValueError(f"Unknown job type {job_type!r}")
        job = BackgroundJob(
            id=uuid.uuid4().hex,
            project_id=project_id,
            type=job_type,
            document_ids=list(document_ids or []),
        )
        with self._lock:
            self._jobs[job.id] = job
        dbg(f"registered {job_type} {job.id} for project {project_id}", tag="Scheduler")
        return job.id

    def start_job(self, job_id: str) -> StartResult:
        with self._lock:
            job = self._require(job_id)
            if job.status != "pending":
                return StartResult(False, reason=f"job is {job.status}")
            # a paused job still holds its class slot
            if self._find(job.project_id, job.priority, ("running", "paused"), exclude=job.id):
                return StartResult(False, reason=f"a {job.priority}-priority job is already active")

            paused_job_id = None
            if job.priority == HIGH:
                low = self._find(job.project_id, LOW, ("running",))
                if low is not None:
                    low.status = "paused"
                    low.paused_at = time.time()
                    paused_job_id = low.id
                    dbg(f"paused {low.id} at checkpoint {low.current_document_index}", tag="Scheduler")
            elif self._find(job.project_id, HIGH, ("running",)):
                if any(self._jobs[j].project_id == job.project_id for j in self._deferred if j != job.id):
                    return StartResult(False, reason="a low-priority job is already deferred")
                if job.id not in self._deferred:
                    self._deferred.append(job.id)
                return StartResult(False, reason="deferred until the high-priority job completes")

            self._run(job)
            return StartResult(True, paused_job_id=paused_job_id)

    def _run(self, job: BackgroundJob) -> None:
        job.status = "running"
        job.generation += 1
        job.started_at = job.started_at or time.time()
        job.paused_at = None
        if job.id in self._deferred:
            self._deferred.remove(job.id)

    def record_checkpoint(self, job_id: str, index: int) -> int:
        """Advance the checkpoint; it never moves backwards. Returns the stored value."""
        with self._lock:
            job = self._require(job_id)
            if index > job.current_document_index:
                job.current_document_index = index
            return job.current_document_index

    def record_document_result(self, job_id: str, document_id: str, error: Optional[str] = None) -> None:
        """Remember the last failure of a document; a later success clears it."""
        with self._lock:
            job = self._require(job_id)
            if error is not None:
                job.failed_documents[document_id] = error
            else:
                job.failed_documents.pop(document_id, None)

    def should_continue(self, job_id: str, generation: Optional[int] = None) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != "running":
                return False
            return generation is None or job.generation == generation

    def complete_job(self, job_id: str, success: bool = True, error: Optional[str] = None) -> Optional[BackgroundJob]:
        """Mark a running job completed; returns the job resumed because of it, if any."""
        with self._lock:
            job = self._require(job_id)
            if job.status != "running":
                warn(f"job {job_id} cannot complete from status {job.status}")
                return None
            job.status = "completed"
            job.succeeded = success
            job.error = error
            job.completed_at = time.time()
            finished = _snapshot(job)

            resumed = None
            if job.priority == HIGH:
                candidate = self._find(job.project_id, LOW, ("paused",))
                if candidate is None:
                    candidate = next(
                        (self._jobs[j] for j in self._deferred if self._jobs[j].project_id == job.project_id),
                        None,
                    )
                if candidate is not None:
                    self._run(candidate)
                    resumed = _snapshot(candidate)
                    dbg(
                        f"resuming {candidate.id} from checkpoint {candidate.current_document_index}",
                        tag="Scheduler",
                    )

        for listener in self._complete_listeners:
            listener(finished)
        if resumed is not None:
            for listener in self._resume_listeners:
                listener(resumed)
        return resumed

    def abandon_job(self, job_id: str) -> Optional[BackgroundJob]:
        """Drop a job; progress past its last checkpoint is lost."""
        with self._lock:
            job = self._jobs.pop(job_id, None)
            if job_id in self._deferred:
                self._deferred.remove(job_id)
        if job is not None:
            dbg(f"abandoned {job.id} ({job.status}, checkpoint {job.current_document_index})", tag="Scheduler")
        return job

    def cleanup(self, max_age: float = 3600.0) -> int:
        """Forget completed jobs older than ``max_age`` seconds."""
        cutoff = time.time() - max_age
        with self._lock:
            stale = [
                j.id for j in self._jobs.values()
                if j.status == "completed" and (j.completed_at or 0) < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        return len(stale)
