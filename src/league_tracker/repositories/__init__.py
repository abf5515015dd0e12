"""Data access helpers."""

from .registration_repo import RegistrationRepository
from .tracker_repo import TrackerRepository

__all__ = ["RegistrationRepository", "TrackerRepository"]
