"""Non-blocking job submission.

``JobClient.submit`` creates the job synchronously, posts feedback, and hands
the job to the pipeline as a background task; it returns as soon as the job
record exists.
"""

import logging
from typing import Any, Mapping, Optional, Sequence, Union

from jobclient.jobs.models import FileSource, JobForm, JobRecord
from jobclient.jobs.pipeline import UploadPipeline
from jobclient.jobs.store import JobQueueStore
from jobclient.notifications.center import NotificationCenter

logger = logging.getLogger(__name__)


class JobClient:
    def __init__(
        self,
        store: JobQueueStore,
        pipeline: UploadPipeline,
        notifications: NotificationCenter,
    ):
        self.store = store
        self.pipeline = pipeline
        self.notifications = notifications

    def submit(
        self,
        form: Union[JobForm, Mapping[str, Any]],
        files: Sequence[FileSource],
    ) -> JobRecord:
        """Queue a job for background upload and submission.

        Raises ValidationError (before anything is queued) when there are no
        files or the job name is blank. Must be called from a running event loop.
        """
        job = self.store.add_job(form, files)

        self.notifications.success(
            f'Job "{job.name}" submitted successfully! Job ID: {job.id[:8]}...', 4000
        )
        self.pipeline.queue_job(job, files)
        self.notifications.info(
            "Files are being uploaded in the background. You can submit more jobs.", 3000
        )
        return job

    def cancel(self, job_id: str, reason: str = "Cancelled by user") -> bool:
        cancelled = self.store.cancel_job(job_id, reason)
        if cancelled:
            logger.info("Job %s cancelled: %s", job_id, reason)
        return cancelled

    def active_jobs_warning(self) -> Optional[str]:
        """Message for a host exit hook, or None when nothing is in flight."""
        if not self.store.has_active_jobs():
            return None
        return (
            f"You have {self.store.active_count()} active job(s) in progress. "
            "Exiting now will cancel all ongoing uploads and they cannot be resumed."
        )

    async def wait_idle(self) -> None:
        await self.pipeline.drain()

    async def shutdown(self) -> None:
        """Abandon in-flight work, logging a warning if any job is still active."""
        warning = self.active_jobs_warning()
        if warning:
            logger.warning(warning)
        await self.pipeline.cancel_all()
        self.notifications.clear()
