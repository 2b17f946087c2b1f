"""Job client control service - FastAPI application.

Hosts the job queue engine in-process and exposes it over a small local API.
Jobs live only in memory: stopping the service abandons any upload still in
flight, so shutdown logs a warning when active jobs remain.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobclient.api.v1 import files as files_api
from jobclient.api.v1 import jobs as jobs_api
from jobclient.api.v1 import notifications as notifications_api
from jobclient.api.v1.health import router as health_root_router
from jobclient.api.v1.router import v1_router
from jobclient.client import JobClient
from jobclient.config import settings
from jobclient.jobs.pipeline import UploadPipeline
from jobclient.jobs.store import JobQueueStore
from jobclient.notifications.center import NotificationCenter
from jobclient.transport.http import HttpTransport

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting job client on port %s", settings.control_port)
    logger.info("Backend: %s", settings.api_base_url)

    transport = HttpTransport(
        base_url=settings.api_base_url,
        upload_timeout=settings.upload_timeout_seconds,
        submit_timeout=settings.submit_timeout_seconds,
        job_name_header=settings.job_name_header,
    )
    store = JobQueueStore()
    notifications = NotificationCenter(default_duration_ms=settings.notification_duration_ms)
    pipeline = UploadPipeline(
        store,
        uploader=transport,
        submitter=transport,
        notifications=notifications,
        start_delay=settings.pipeline_start_delay_seconds,
    )
    client = JobClient(store, pipeline, notifications)

    # Wire the engine into API endpoints
    jobs_api.set_client(client)
    notifications_api.set_notification_center(notifications)
    files_api.set_transport(transport)

    yield

    # Shutdown
    logger.info("Shutting down job client")
    await client.shutdown()
    await transport.aclose()
    jobs_api.set_client(None)
    notifications_api.set_notification_center(None)
    files_api.set_transport(None)


app = FastAPI(
    title="Job Client",
    description="Background upload and submission of file-based jobs",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - allow local front ends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
