"""Job record data model for background upload and submission."""

import io
import mimetypes
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, BinaryIO, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class JobStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.UPLOADING, JobStatus.SUBMITTING})


class FileStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class JobForm(BaseModel):
    """Caller-supplied form fields.

    Only ``job_name`` is interpreted; any extra field is carried through to
    the submission request untouched.
    """
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    job_name: str = Field(alias="jobName")
    description: Optional[str] = None
    priority: Optional[Priority] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class FileSource:
    """A local file handed to the client for upload.

    Either ``path`` or ``data`` is set. Sources stay with the caller and the
    pipeline; job records only keep their metadata.
    """
    name: str
    size: int
    content_type: str = "application/octet-stream"
    path: Optional[str] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "FileSource":
        guessed, _ = mimetypes.guess_type(path)
        return cls(
            name=os.path.basename(path),
            size=os.path.getsize(path),
            content_type=content_type or guessed or "application/octet-stream",
            path=path,
        )

    @classmethod
    def from_bytes(
        cls, name: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> "FileSource":
        return cls(name=name, size=len(data), content_type=content_type, data=data)

    def open(self) -> BinaryIO:
        if self.path is not None:
            return open(self.path, "rb")
        if self.data is not None:
            return io.BytesIO(self.data)
        raise ValueError(f"File source '{self.name}' has neither a path nor data")


class UploadedFile(BaseModel):
    """Resource descriptor returned by the backend after an upload."""
    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    name: str
    size: int


class RemoteFile(BaseModel):
    """Entry of the backend file listing."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    size: int
    url: str
    uploaded_at: Optional[str] = Field(default=None, alias="uploadedAt")


class SubmissionResult(BaseModel):
    """Backend acknowledgement of a submitted job."""
    model_config = ConfigDict(frozen=True)

    id: str
    status: Optional[str] = None
    message: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class FileEntry(BaseModel):
    """Tracks one file of a job through its upload."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    index: int
    name: str
    size: int
    content_type: str = "application/octet-stream"
    status: FileStatus = FileStatus.PENDING
    progress: int = 0
    uploaded: Optional[UploadedFile] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class JobProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    files_uploaded: int = 0
    total_files: int = 0
    overall_progress: int = 0


class JobRecord(BaseModel):
    """Tracks the lifecycle of a submitted job."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    status: JobStatus = JobStatus.PENDING
    form: JobForm
    files: Tuple[FileEntry, ...]
    progress: JobProgress = Field(default_factory=JobProgress)
    error: Optional[str] = None
    error_kind: Optional[str] = None
    submission_id: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.form.job_name

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def file(self, file_id: str) -> Optional[FileEntry]:
        return next((f for f in self.files if f.id == file_id), None)

