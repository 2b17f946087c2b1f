"""Background upload pipeline.

Each job runs as its own asyncio task: files are uploaded one after another
in index order, then the job descriptor is submitted. Several jobs can be in
flight at once; the event loop interleaves them at I/O boundaries.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from jobclient.jobs.errors import ConflictError, TransportError, TransportErrorKind
from jobclient.jobs.models import FileEntry, FileSource, FileStatus, JobRecord, JobStatus, UploadedFile
from jobclient.jobs.store import JobQueueStore
from jobclient.notifications.center import NotificationCenter
from jobclient.transport.base import SubmissionTransport, UploadTransport

logger = logging.getLogger(__name__)

ALL_UPLOADS_FAILED = "All file uploads failed"


class UploadPipeline:
    """Drives jobs from PENDING to COMPLETED or FAILED.

    The pipeline never raises out of ``process_job``: transport failures and
    unexpected exceptions alike end up as a FAILED job carrying a message.
    """

    def __init__(
        self,
        store: JobQueueStore,
        uploader: UploadTransport,
        submitter: SubmissionTransport,
        notifications: Optional[NotificationCenter] = None,
        start_delay: float = 0.0,
    ):
        self._store = store
        self._uploader = uploader
        self._submitter = submitter
        self._notifications = notifications
        self._start_delay = start_delay
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def is_scheduled(self, job_id: str) -> bool:
        return job_id in self._tasks

    def queue_job(self, job: JobRecord, sources: Sequence[FileSource]) -> asyncio.Task:
        """Schedule ``process_job`` without waiting for it.

        A job that is already scheduled is not scheduled again, so there is
        never more than one submission in flight per job.
        """
        existing = self._tasks.get(job.id)
        if existing is not None:
            return existing

        task = asyncio.get_running_loop().create_task(self._run(job, list(sources)))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job.id, None))
        return task

    async def drain(self) -> None:
        """Wait for every scheduled job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Abandon every scheduled job (process shutdown)."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, job: JobRecord, sources: List[FileSource]) -> None:
        if self._start_delay > 0:
            await asyncio.sleep(self._start_delay)
        await self.process_job(job, sources)

    async def process_job(self, job: JobRecord, sources: Sequence[FileSource]) -> None:
        """Upload every file of ``job``, then submit it.

        ``sources`` are index-aligned with ``job.files``.
        """
        job_id = job.id
        try:
            if len(sources) != len(job.files):
                raise ValueError(
                    f"Job {job_id} has {len(job.files)} file(s) but {len(sources)} source(s) were given"
                )

            if not self._store.update_job_status(job_id, JobStatus.UPLOADING):
                logger.info("Job %s is no longer pending, skipping", job_id)
                return
            logger.info("Job %s: uploading %d file(s)", job_id, len(job.files))

            uploaded: List[UploadedFile] = []
            failed = 0
            conflicts = 0
            for entry, source in zip(job.files, sources):
                if not self._store.is_active(job_id):
                    logger.info("Job %s was cancelled or removed, stopping uploads", job_id)
                    return
                result = await self._upload_file(job, entry, source)
                if result is None:
                    failed += 1
                    if self._file_kind(job_id, entry.id) == TransportErrorKind.CONFLICT.value:
                        conflicts += 1
                else:
                    uploaded.append(result)

            if not uploaded:
                # every file clashing with an existing name keeps the rename marker
                kind = TransportErrorKind.CONFLICT.value if conflicts == failed else None
                self._fail(job, ALL_UPLOADS_FAILED, kind)
                return

            if not self._store.update_job_status(job_id, JobStatus.SUBMITTING):
                logger.info("Job %s was cancelled or removed before submission", job_id)
                return
            logger.info(
                "Job %s: submitting %d uploaded file(s) (%d failed)", job_id, len(uploaded), failed
            )

            try:
                result = await self._submitter.submit(job.form, uploaded)
            except ConflictError as e:
                self._fail(job, e.message, e.kind.value)
                if self._notifications is not None:
                    self._notifications.warning(
                        f'Job name "{job.name}" is already taken. Rename the job and submit it again.'
                    )
                return
            except TransportError as e:
                self._fail(job, e.message, e.kind.value)
                return

            if self._store.update_job_status(job_id, JobStatus.COMPLETED, submission_id=result.id):
                logger.info(
                    "Job %s completed (server id %s, %d uploaded, %d failed)",
                    job_id, result.id, len(uploaded), failed,
                )
                if self._notifications is not None:
                    self._notifications.success(f'Job "{job.name}" completed successfully')

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Job %s processing failed", job_id)
            self._fail(job, str(e) or type(e).__name__)

    async def _upload_file(
        self, job: JobRecord, entry: FileEntry, source: FileSource
    ) -> Optional[UploadedFile]:
        """Upload one file, recording progress and outcome on its entry."""
        job_id = job.id
        self._store.update_file_status(job_id, entry.id, status=FileStatus.UPLOADING, progress=0)

        def on_progress(percent: int) -> None:
            self._store.update_file_status(
                job_id, entry.id, status=FileStatus.UPLOADING, progress=percent
            )

        try:
            result = await self._uploader.upload(source, on_progress, job_name=job.name)
        except (TransportError, OSError) as e:
            if isinstance(e, TransportError):
                message, kind = e.message, e.kind.value
            else:
                message, kind = f"Cannot read {entry.name}: {e}", None
            logger.warning("Job %s: upload of %s failed: %s", job_id, entry.name, message)
            self._store.update_file_status(
                job_id, entry.id, status=FileStatus.FAILED, error=message, error_kind=kind
            )
            if isinstance(e, ConflictError) and self._notifications is not None:
                self._notifications.warning(
                    f'File "{entry.name}" already exists on the server. Rename it and submit the job again.'
                )
            return None
        except Exception as e:
            # close out the entry before the job goes terminal
            self._store.update_file_status(
                job_id, entry.id, status=FileStatus.FAILED, error=str(e) or type(e).__name__
            )
            raise

        self._store.update_file_status(
            job_id, entry.id, status=FileStatus.COMPLETED, progress=100, uploaded=result
        )
        return result

    def _file_kind(self, job_id: str, file_id: str) -> Optional[str]:
        job = self._store.get_job(job_id)
        entry = job.file(file_id) if job is not None else None
        return entry.error_kind if entry is not None else None

    def _fail(self, job: JobRecord, message: str, error_kind: Optional[str] = None) -> None:
        if self._store.update_job_status(job.id, JobStatus.FAILED, error=message, error_kind=error_kind):
            logger.warning("Job %s failed: %s", job.id, message)
            if self._notifications is not None:
                self._notifications.error(f'Job "{job.name}" failed: {message}')
