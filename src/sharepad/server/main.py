"""FastAPI HTTP service for Sharepad."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from sharepad import __version__
from sharepad.background.scheduler import MaintenanceScheduler
from sharepad.config.settings import get_settings
from sharepad.observability.logging import configure_logging
from sharepad.server.deps import get_hub, get_service, set_service
from sharepad.server.environments import router as environments_router
from sharepad.server.schemas import HealthResponse
from sharepad.server.uploads import router as uploads_router
from sharepad.service import Sharepad
from sharepad.storage.errors import (
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    SharepadError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        service_name=settings.service_name,
    )
    log.info(
        "starting_service",
        host=settings.host,
        port=settings.port,
        data_dir=str(settings.data_dir),
    )

    service = Sharepad.from_settings(settings, notifier=get_hub())
    service.startup()
    set_service(service)

    scheduler = MaintenanceScheduler(
        service,
        reaper_interval_seconds=settings.reaper_interval_seconds,
        sweep_interval_seconds=settings.environment_sweep_interval_seconds,
    )
    await scheduler.start()

    yield

    log.info("shutting_down_service")
    await scheduler.stop()
    set_service(None)


app = FastAPI(
    title="Sharepad",
    description="Real-time shared scratchpad with versioned files",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(environments_router)
app.include_router(uploads_router)


def _status_for(error: SharepadError) -> int:
    if isinstance(error, InvalidArgumentError | InvalidStateError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(SharepadError)
async def sharepad_error_handler(request: Request, exc: SharepadError) -> JSONResponse:
    """Translate storage failures into HTTP status codes."""
    code = _status_for(exc)
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        log.error("request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=code, content={"error": str(exc)})


@app.get("/health")
async def health() -> HealthResponse:
    """Check service health."""
    service = get_service()
    return HealthResponse(
        status="ok",
        environments=len(service.registry.list_environments()),
        active_uploads=len(service.assembler),
    )
