"""Size-weighted progress aggregation for a job's files."""

import math
from typing import Sequence

from jobclient.jobs.models import FileEntry, FileStatus, JobProgress


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_progress(files: Sequence[FileEntry]) -> JobProgress:
    """Compute overall progress weighted by file size.

    A completed file always counts as 100 regardless of the last progress
    value it reported, so one large slow file dominates the percentage.
    Zero total size yields 0.
    """
    total_size = sum(f.size for f in files)
    weighted = 0.0
    if total_size > 0:
        for f in files:
            contribution = 100 if f.status == FileStatus.COMPLETED else (f.progress or 0)
            weighted += (f.size / total_size) * contribution

    return JobProgress(
        files_uploaded=sum(1 for f in files if f.status == FileStatus.COMPLETED),
        total_files=len(files),
        overall_progress=_round_half_up(weighted),
    )
