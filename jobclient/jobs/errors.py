"""Error taxonomy for job creation, uploads and submission."""

from enum import Enum
from typing import Optional


class JobClientError(Exception):
    """Base class for all job client errors."""


class ValidationError(JobClientError):
    """Caller misuse: empty file set, blank job name, bad form fields."""


class TransportErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    SERVER = "server"
    CONFLICT = "conflict"


class TransportError(JobClientError):
    """A failed upload or submission exchange.

    Raised by transports and always caught by the pipeline, which records
    the message on the file entry or the job.
    """

    def __init__(
        self,
        message: str,
        kind: TransportErrorKind = TransportErrorKind.SERVER,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code


class ConflictError(TransportError):
    """The backend reported a naming collision (HTTP 409)."""

    def __init__(self, message: str, status_code: Optional[int] = 409):
        super().__init__(message, kind=TransportErrorKind.CONFLICT, status_code=status_code)
