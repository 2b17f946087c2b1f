"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter

from jobclient.api.v1 import jobs as jobs_api
from jobclient.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health and queue activity."""
    client = jobs_api._client
    return {
        "status": "healthy" if client is not None else "starting",
        "backend_url": settings.api_base_url,
        "active_jobs": client.store.active_count() if client is not None else 0,
        "scheduled_pipelines": client.pipeline.pending_count if client is not None else 0,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
