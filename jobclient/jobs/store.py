"""In-memory job queue store.

Holds job records as an immutable snapshot (a tuple of frozen models).
Every mutation builds a new snapshot and swaps it in, then notifies
subscribers, so a reader holding a snapshot never sees a half-applied
update. Mutations are synchronous and run on the event loop thread, which
is what keeps concurrent pipelines from interleaving inside one update.

Mutations aimed at unknown job or file ids are silent no-ops: a pipeline
may outlive the removal of its job.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from jobclient.jobs.errors import ValidationError
from jobclient.jobs.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    FileEntry,
    FileSource,
    FileStatus,
    JobForm,
    JobRecord,
    JobStatus,
    utcnow,
)
from jobclient.jobs.progress import compute_progress

logger = logging.getLogger(__name__)

Snapshot = Tuple[JobRecord, ...]
Listener = Callable[[Snapshot], None]

# Legal job status transitions. FAILED is reachable from every non-terminal
# status (forced cancellation, pipeline crash before upload starts).
_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.PENDING: frozenset({JobStatus.UPLOADING, JobStatus.FAILED}),
    JobStatus.UPLOADING: frozenset({JobStatus.SUBMITTING, JobStatus.FAILED}),
    JobStatus.SUBMITTING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _TRANSITIONS[current]


def _coerce_form(form: Union[JobForm, Mapping[str, Any]]) -> JobForm:
    if isinstance(form, JobForm):
        return form
    try:
        return JobForm.model_validate(dict(form))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid job form: {e}") from e


class JobQueueStore:
    """Owns the collection of job records, most recent first."""

    def __init__(self):
        self._jobs: Snapshot = ()
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def jobs(self) -> Snapshot:
        return self._jobs

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        return next((j for j in self._jobs if j.id == job_id), None)

    def get_jobs_by_status(self, status: JobStatus) -> List[JobRecord]:
        return [j for j in self._jobs if j.status == status]

    def get_stats(self) -> Dict[str, int]:
        stats = {"total": len(self._jobs)}
        for status in JobStatus:
            stats[status.value] = 0
        for job in self._jobs:
            stats[job.status.value] += 1
        return stats

    def active_count(self) -> int:
        return sum(1 for j in self._jobs if j.status in ACTIVE_STATUSES)

    def has_active_jobs(self) -> bool:
        """True while any job is pending, uploading or submitting.

        Host shutdown hooks use this to warn before abandoning transfers.
        """
        return self.active_count() > 0

    def is_active(self, job_id: str) -> bool:
        job = self.get_job(job_id)
        return job is not None and job.status in ACTIVE_STATUSES

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_job(
        self,
        form: Union[JobForm, Mapping[str, Any]],
        files: Sequence[FileSource],
    ) -> JobRecord:
        """Create a PENDING job with one pending entry per file and put it at the head."""
        if not files:
            raise ValidationError("At least one file is required")
        form = _coerce_form(form)
        if not form.job_name or not form.job_name.strip():
            raise ValidationError("Job name is required")

        entries = tuple(
            FileEntry(index=i, name=f.name, size=f.size, content_type=f.content_type)
            for i, f in enumerate(files)
        )
        job = JobRecord(form=form, files=entries, progress=compute_progress(entries))
        self._commit((job,) + self._jobs)
        logger.info("Job %s (%s) queued with %d file(s)", job.id, job.name, len(entries))
        return job

    def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        error_kind: Optional[str] = None,
        submission_id: Optional[str] = None,
    ) -> bool:
        """Move a job to ``status`` if the transition is legal.

        Entering COMPLETED or FAILED stamps ``completed_at``; once terminal, a
        job never changes again. Returns whether the update was applied.
        """
        status = JobStatus(status)
        job = self.get_job(job_id)
        if job is None:
            return False
        if not can_transition(job.status, status):
            logger.debug(
                "Ignoring transition %s -> %s for job %s",
                job.status.value, status.value, job_id,
            )
            return False

        update: Dict[str, Any] = {"status": status, "error": error, "error_kind": error_kind}
        if submission_id is not None:
            update["submission_id"] = submission_id
        if status in TERMINAL_STATUSES:
            update["completed_at"] = utcnow()
        self._replace(job.model_copy(update=update))
        return True

    def cancel_job(self, job_id: str, reason: str = "Cancelled by user") -> bool:
        """Force a non-terminal job to FAILED.

        In-flight transport calls are not aborted; the pipeline notices the
        job is terminal before its next call and stops.
        """
        return self.update_job_status(job_id, JobStatus.FAILED, error=reason)

    def update_file_status(self, job_id: str, file_id: str, **changes: Any) -> bool:
        """Merge ``changes`` into one file entry and recompute the job's progress."""
        job = self.get_job(job_id)
        if job is None or job.is_terminal:
            return False
        entry = job.file(file_id)
        if entry is None:
            return False
        if "status" in changes:
            changes["status"] = FileStatus(changes["status"])

        files = tuple(
            f.model_copy(update=changes) if f.id == file_id else f
            for f in job.files
        )
        self._replace(job.model_copy(update={"files": files, "progress": compute_progress(files)}))
        return True

    def remove_job(self, job_id: str) -> None:
        if self.get_job(job_id) is None:
            return
        self._commit(tuple(j for j in self._jobs if j.id != job_id))

    def clear_terminal_jobs(self) -> int:
        """Drop every COMPLETED or FAILED job, keeping the others in order."""
        kept = tuple(j for j in self._jobs if j.status not in TERMINAL_STATUSES)
        removed = len(self._jobs) - len(kept)
        if removed:
            self._commit(kept)
        return removed

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with every new snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _replace(self, job: JobRecord) -> None:
        self._commit(tuple(job if j.id == job.id else j for j in self._jobs))

    def _commit(self, jobs: Snapshot) -> None:
        self._jobs = jobs
        for listener in list(self._listeners):
            try:
                listener(jobs)
            except Exception:
                logger.exception("Job queue listener failed")
