"""HTTP transports talking to the job backend.

  POST /api/upload   - one multipart file per request, returns {id, url, name, size}
  POST /api/submit   - JSON job descriptor, returns {id, ...}
  GET  /api/files    - listing of stored files

Uploads stream the multipart body through a wrapper that reports how many
bytes have gone out, which drives per-file progress.
"""

import asyncio
import binascii
import logging
import os
from typing import Any, AsyncIterator, BinaryIO, List, Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from jobclient.config import settings
from jobclient.jobs.errors import ConflictError, TransportError, TransportErrorKind
from jobclient.jobs.models import FileSource, JobForm, RemoteFile, SubmissionResult, UploadedFile
from jobclient.transport.base import (
    FileListingTransport,
    ProgressCallback,
    SubmissionTransport,
    UploadTransport,
)

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/upload"
SUBMIT_PATH = "/api/submit"
FILES_PATH = "/api/files"

UPLOAD_CHUNK_SIZE = 64 * 1024


class _ProgressStream(httpx.AsyncByteStream):
    """Wraps a request body and reports integer percentages as chunks are sent."""

    def __init__(self, stream: httpx.AsyncByteStream, total: int, on_progress: ProgressCallback):
        self._stream = stream
        self._total = total
        self._on_progress = on_progress
        self._sent = 0
        self._last = -1

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._stream:
            self._sent += len(chunk)
            self._report()
            yield chunk
        if self._last < 100:
            self._sent = self._total
            self._report()

    def _report(self) -> None:
        if self._total > 0:
            percent = min(100, self._sent * 100 // self._total)
        else:
            percent = 100
        if percent != self._last:
            self._last = percent
            self._on_progress(percent)

    async def aclose(self) -> None:
        await self._stream.aclose()


class _MultipartFile:
    """Single-field ``multipart/form-data`` body read off the event loop.

    File chunks are read in a worker thread so a large upload does not stall
    the other jobs' pipelines between chunks.
    """

    field = "file"

    def __init__(self, source: FileSource, fh: BinaryIO):
        self._fh = fh
        self.boundary = binascii.hexlify(os.urandom(16)).decode("ascii")
        filename = source.name.replace("\\", "\\\\").replace('"', "%22")
        self._head = (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{self.field}"; filename="{filename}"\r\n'
            f"Content-Type: {source.content_type}\r\n\r\n"
        ).encode("utf-8")
        self._tail = f"\r\n--{self.boundary}--\r\n".encode("ascii")
        self.length = len(self._head) + source.size + len(self._tail)

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    async def chunks(self) -> AsyncIterator[bytes]:
        yield self._head
        while True:
            chunk = await asyncio.to_thread(self._fh.read, UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
        yield self._tail


def _error_message(response: httpx.Response, default: str, unreadable: Optional[str] = None) -> str:
    """Pull the ``error`` field out of a failure body, if there is one.

    ``unreadable`` replaces ``default`` when the body is not JSON at all.
    """
    try:
        body = response.json()
    except ValueError:
        return unreadable or default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


class HttpTransport(UploadTransport, SubmissionTransport, FileListingTransport):
    """httpx-backed implementation of every backend exchange.

    Usage:
        async with HttpTransport("http://localhost:8080") as transport:
            uploaded = await transport.upload(FileSource.from_path("data.bin"), print)
            result = await transport.submit(JobForm(job_name="run-1"), [uploaded])
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        upload_timeout: Optional[float] = None,
        submit_timeout: Optional[float] = None,
        job_name_header: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._upload_timeout = httpx.Timeout(upload_timeout or settings.upload_timeout_seconds)
        self._submit_timeout = httpx.Timeout(submit_timeout or settings.submit_timeout_seconds)
        self._job_name_header = job_name_header or settings.job_name_header
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or settings.api_base_url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # POST /api/upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        source: FileSource,
        on_progress: Optional[ProgressCallback] = None,
        job_name: Optional[str] = None,
    ) -> UploadedFile:
        headers = {}
        if job_name:
            headers[self._job_name_header] = job_name

        with source.open() as fh:
            body = _MultipartFile(source, fh)
            headers["Content-Type"] = body.content_type
            headers["Content-Length"] = str(body.length)
            request = self._client.build_request(
                "POST",
                UPLOAD_PATH,
                content=body.chunks(),
                headers=headers,
                timeout=self._upload_timeout,
            )
            if on_progress is not None:
                request.stream = _ProgressStream(request.stream, body.length, on_progress)

            try:
                response = await self._client.send(request)
            except httpx.TimeoutException as e:
                raise TransportError(
                    f"Upload timeout for {source.name}", kind=TransportErrorKind.TIMEOUT
                ) from e
            except httpx.RequestError as e:
                raise TransportError(
                    f"Network error uploading {source.name}", kind=TransportErrorKind.NETWORK
                ) from e

        if response.status_code == 200:
            try:
                return UploadedFile.model_validate(response.json())
            except (ValueError, PydanticValidationError) as e:
                raise TransportError(
                    f"Invalid response format for {source.name}",
                    kind=TransportErrorKind.MALFORMED,
                    status_code=response.status_code,
                ) from e

        message = _error_message(
            response,
            f"Upload failed for {source.name}",
            unreadable=f"Upload failed for {source.name}: HTTP {response.status_code}",
        )
        if response.status_code == 409:
            raise ConflictError(message)
        raise TransportError(message, kind=TransportErrorKind.SERVER, status_code=response.status_code)

    # ------------------------------------------------------------------
    # POST /api/submit
    # ------------------------------------------------------------------

    async def submit(self, form: JobForm, files: Sequence[UploadedFile]) -> SubmissionResult:
        payload = {
            **form.to_payload(),
            "files": [f.model_dump(mode="json") for f in files],
        }
        try:
            response = await self._client.post(SUBMIT_PATH, json=payload, timeout=self._submit_timeout)
        except httpx.TimeoutException as e:
            raise TransportError("Job submission timed out", kind=TransportErrorKind.TIMEOUT) from e
        except httpx.RequestError as e:
            raise TransportError(
                "Cannot connect to backend server. Please ensure the server is running.",
                kind=TransportErrorKind.NETWORK,
            ) from e

        if not response.is_success:
            message = _error_message(response, "Job submission failed")
            if response.status_code == 409:
                raise ConflictError(message)
            raise TransportError(message, kind=TransportErrorKind.SERVER, status_code=response.status_code)

        try:
            body = response.json()
            return SubmissionResult(
                id=str(body["id"]),
                status=body.get("status"),
                message=body.get("message"),
                raw=body,
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransportError(
                "Invalid response format for job submission",
                kind=TransportErrorKind.MALFORMED,
                status_code=response.status_code,
            ) from e

    # ------------------------------------------------------------------
    # GET /api/files
    # ------------------------------------------------------------------

    async def list_files(self) -> List[RemoteFile]:
        try:
            response = await self._client.get(FILES_PATH, timeout=self._submit_timeout)
        except httpx.TimeoutException as e:
            raise TransportError("File listing timed out", kind=TransportErrorKind.TIMEOUT) from e
        except httpx.RequestError as e:
            raise TransportError(
                "Cannot connect to backend server. Please ensure the server is running.",
                kind=TransportErrorKind.NETWORK,
            ) from e

        if not response.is_success:
            raise TransportError(
                _error_message(response, f"File listing failed: HTTP {response.status_code}"),
                kind=TransportErrorKind.SERVER,
                status_code=response.status_code,
            )

        try:
            body: Any = response.json()
            # the backend encodes an empty listing as null
            return [RemoteFile.model_validate(item) for item in body.get("files") or []]
        except (ValueError, AttributeError, PydanticValidationError) as e:
            raise TransportError(
                "Invalid response format for file listing",
                kind=TransportErrorKind.MALFORMED,
                status_code=response.status_code,
            ) from e
