"""System health endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from league_tracker.api.v1.dependencies import SessionDep
from league_tracker.core.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health")
async def get_health(request: Request, db: SessionDep) -> dict[str, object]:
    """Report database reachability and background worker status."""
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Health check database query failed: %s", exc)
        database = "unavailable"

    runtime = getattr(request.app.state, "worker_runtime", None)
    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": settings.app_version,
        "database": database,
        "workers": {
            "enabled": settings.worker_enabled,
            "running": bool(runtime and runtime.running),
        },
    }
