"""FastAPI application for the prospect pipeline service."""

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from prospect_pipeline.container import ServiceContainer

from .config import get_settings
from .routes.health import router as health_router
from .routes.jobs import router as jobs_router
from .routes.runs import router as runs_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service container at startup, drain and close it at shutdown."""
    settings = get_settings()

    logger.info("lifespan.startup")
    container = await ServiceContainer.from_config()

    # Store on app.state for request handlers
    app.state.container = container

    logger.info("lifespan.ready")
    yield

    # Shutdown
    logger.info("lifespan.shutdown", pending_tasks=container.tracker.pending)
    await container.close(drain_timeout=settings.SHUTDOWN_DRAIN_SECONDS)


app = FastAPI(
    title="prospect-pipeline",
    description="Lead discovery runs, segment matching and the background job tick",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(runs_router)
app.include_router(jobs_router)


def main() -> None:
    """Serve the app with uvicorn (the `prospect-pipeline-api` command)."""
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level="info",
        access_log=False,
    )
