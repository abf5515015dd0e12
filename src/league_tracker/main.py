# src/league_tracker/main.py
"""Main entry point for the league tracker application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from league_tracker.api.v1 import (
    queue_admin_router,
    registrations_router,
    system_router,
    trackers_router,
)
from league_tracker.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TrackerError,
    TrackerValidationError,
)
from league_tracker.core.logging import configure_logging
from league_tracker.core.settings import settings
from league_tracker.workers.runtime import WorkerRuntime, build_worker_runtime

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[TrackerError], int] = {
    TrackerValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidStateError: status.HTTP_409_CONFLICT,
}

# Initialize FastAPI app
app = FastAPI(
    title="League Tracker API",
    description="Tracker registration and approval pipeline",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include API routers; registrations first so its fixed paths win over /trackers/{id}
app.include_router(registrations_router, prefix="/api/v1")
app.include_router(trackers_router, prefix="/api/v1")
app.include_router(queue_admin_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    """Translate domain errors into JSON responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    body: dict[str, object] = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, ConflictError) and exc.field:
        body["field"] = exc.field
    if isinstance(exc, TrackerValidationError):
        body["reason"] = exc.reason
    return JSONResponse(status_code=status_code, content=body)


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    runtime = build_worker_runtime()
    app.state.worker_runtime = runtime
    if settings.worker_enabled:
        await runtime.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    runtime: WorkerRuntime | None = getattr(app.state, "worker_runtime", None)
    if runtime and runtime.running:
        await runtime.stop()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("league_tracker.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
