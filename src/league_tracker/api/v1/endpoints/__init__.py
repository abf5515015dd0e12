# src/league_tracker/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .queue_admin import router as queue_admin_router
from .registrations import router as registrations_router
from .system import router as system_router
from .trackers import router as trackers_router

__all__ = [
    "registrations_router",
    "trackers_router",
    "queue_admin_router",
    "system_router",
]
