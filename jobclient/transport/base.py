"""Transport interfaces for file uploads and job submission."""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from jobclient.jobs.models import FileSource, JobForm, RemoteFile, SubmissionResult, UploadedFile

# Progress callback: fn(percent) with an integer in 0..100
ProgressCallback = Callable[[int], None]


class UploadTransport(ABC):
    """Performs one file transfer to the backend."""

    @abstractmethod
    async def upload(
        self,
        source: FileSource,
        on_progress: Optional[ProgressCallback] = None,
        job_name: Optional[str] = None,
    ) -> UploadedFile:
        """Upload one file. Raises TransportError (or ConflictError) on failure."""
        ...


class SubmissionTransport(ABC):
    """Sends a finalized job descriptor to the backend."""

    @abstractmethod
    async def submit(self, form: JobForm, files: Sequence[UploadedFile]) -> SubmissionResult:
        """Submit the job. Raises TransportError (or ConflictError) on failure."""
        ...


class FileListingTransport(ABC):
    """Lists files already stored on the backend."""

    @abstractmethod
    async def list_files(self) -> List[RemoteFile]:
        ...
