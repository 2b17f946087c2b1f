"""Job queue API: submit jobs from local paths, inspect and manage the queue."""

import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from jobclient.jobs.errors import ValidationError
from jobclient.jobs.models import FileSource, JobForm, JobRecord, Priority

router = APIRouter()

# Set by main.py during lifespan
_client = None


def set_client(client):
    global _client
    _client = client


def _require_client():
    if _client is None:
        raise HTTPException(status_code=503, detail="Job client not initialized")
    return _client


class JobSubmitRequest(BaseModel):
    job_name: str
    description: Optional[str] = None
    priority: Optional[Priority] = None
    paths: List[str]


class JobSubmitResponse(BaseModel):
    job_id: str
    status: str
    message: str


class CancelRequest(BaseModel):
    reason: str = "Cancelled by user"


@router.post("/jobs", response_model=JobSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(request: JobSubmitRequest):
    """Queue a job whose files are read from local paths."""
    client = _require_client()

    missing = [p for p in request.paths if not os.path.isfile(p)]
    if missing:
        raise HTTPException(status_code=400, detail=f"File(s) not found: {', '.join(missing)}")

    form = JobForm(
        job_name=request.job_name,
        description=request.description,
        priority=request.priority,
    )
    try:
        job = client.submit(form, [FileSource.from_path(p) for p in request.paths])
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return JobSubmitResponse(
        job_id=job.id,
        status=job.status.value,
        message="Job queued. Poll GET /api/v1/jobs/{id} for progress.",
    )


@router.get("/jobs")
async def list_jobs(status_filter: Optional[str] = Query(None, alias="status")):
    """List jobs, most recent first, optionally filtered by status."""
    client = _require_client()
    jobs = client.store.jobs
    if status_filter:
        jobs = [j for j in jobs if j.status.value == status_filter]
    return {"jobs": [_job_summary(j) for j in jobs], "total": len(jobs)}


@router.get("/jobs/stats")
async def job_stats():
    client = _require_client()
    stats = client.store.get_stats()
    stats["active"] = client.store.active_count()
    return stats


@router.post("/jobs/clear")
async def clear_terminal_jobs():
    """Remove every completed or failed job."""
    client = _require_client()
    return {"removed": client.store.clear_terminal_jobs()}


@router.get("/jobs/{job_id}")
async def get_job(job_id: str):
    """Full job record including per-file progress."""
    client = _require_client()
    job = client.store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.model_dump(mode="json")


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, request: Optional[CancelRequest] = None):
    client = _require_client()
    if client.store.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    reason = request.reason if request else CancelRequest().reason
    if not client.cancel(job_id, reason):
        raise HTTPException(status_code=409, detail="Job already finished")
    return _job_summary(client.store.get_job(job_id))


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_job(job_id: str):
    client = _require_client()
    client.store.remove_job(job_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _job_summary(job: JobRecord) -> Dict[str, Any]:
    return {
        "job_id": job.id,
        "name": job.name,
        "status": job.status.value,
        "progress": job.progress.model_dump(),
        "error": job.error,
        "error_kind": job.error_kind,
        "submission_id": job.submission_id,
        "created_at": job.created_at.isoformat(),
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
    }
