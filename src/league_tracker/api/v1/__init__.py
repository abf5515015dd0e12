# src/league_tracker/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    queue_admin_router,
    registrations_router,
    system_router,
    trackers_router,
)

__all__ = [
    "registrations_router",
    "trackers_router",
    "queue_admin_router",
    "system_router",
]
