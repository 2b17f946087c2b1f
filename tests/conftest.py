"""Pytest configuration and shared fakes.

Puts the project root on ``sys.path`` so ``import jobclient`` works when the
tests are run from anywhere, and provides in-memory transports that record
their calls.
"""

import asyncio
import os
import sys

import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from jobclient.jobs.errors import ConflictError, TransportError  # noqa: E402
from jobclient.jobs.models import FileSource, SubmissionResult, UploadedFile  # noqa: E402
from jobclient.jobs.pipeline import UploadPipeline  # noqa: E402
from jobclient.jobs.store import JobQueueStore  # noqa: E402
from jobclient.notifications.center import NotificationCenter  # noqa: E402
from jobclient.transport.base import SubmissionTransport, UploadTransport  # noqa: E402


class FakeUploader(UploadTransport):
    """Reports a few progress steps, then succeeds unless the file is marked to fail."""

    def __init__(self, fail=(), steps=(10, 50, 97), crash=(), conflict=()):
        self.fail = set(fail)
        self.crash = set(crash)
        self.conflict = set(conflict)
        self.steps = steps
        self.calls = []
        self.job_names = []

    async def upload(self, source, on_progress=None, job_name=None):
        self.calls.append(source.name)
        self.job_names.append(job_name)
        for percent in self.steps:
            await asyncio.sleep(0)
            if on_progress is not None:
                on_progress(percent)
        if source.name in self.crash:
            raise RuntimeError(f"disk exploded reading {source.name}")
        if source.name in self.conflict:
            raise ConflictError(f"File {source.name} already exists")
        if source.name in self.fail:
            raise TransportError(f"Upload failed for {source.name}: HTTP 500", status_code=500)
        return UploadedFile(
            id=f"id-{source.name}",
            url=f"http://backend/api/files/{source.name}",
            name=source.name,
            size=source.size,
        )


class FakeSubmitter(SubmissionTransport):
    def __init__(self, error=None, server_id="srv-1"):
        self.error = error
        self.server_id = server_id
        self.calls = []

    async def submit(self, form, files):
        self.calls.append((form, list(files)))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return SubmissionResult(id=self.server_id, status="submitted")


class _ManualTimer:
    def __init__(self, due, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for ``loop.call_later``; time moves only on ``advance``."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def __call__(self, delay, callback):
        timer = _ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds):
        self.now += seconds
        due = [t for t in self.timers if t.due <= self.now and not t.cancelled]
        self.timers = [t for t in self.timers if t not in due]
        for timer in due:
            timer.callback()


def make_sources(*specs):
    """specs: (name, size) pairs -> in-memory file sources."""
    return [FileSource.from_bytes(name, b"x" * size) for name, size in specs]


@pytest.fixture
def store():
    return JobQueueStore()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def notifications(scheduler):
    return NotificationCenter(default_duration_ms=5000, scheduler=scheduler)


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def submitter():
    return FakeSubmitter()


@pytest.fixture
def pipeline(store, uploader, submitter, notifications):
    return UploadPipeline(store, uploader, submitter, notifications=notifications)


@pytest.fixture
def conflict_error():
    return ConflictError("Job name already exists")
