"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from jobclient.api.v1.health import router as health_router
from jobclient.api.v1.jobs import router as jobs_router
from jobclient.api.v1.notifications import router as notifications_router
from jobclient.api.v1.files import router as files_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(notifications_router, tags=["notifications"])
v1_router.include_router(files_router, tags=["files"])
