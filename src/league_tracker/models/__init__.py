"""SQLAlchemy models for the league tracker service."""

from .outbox import OutboxEvent, OutboxStatus
from .processed_event import ProcessedEvent
from .registration import ALLOWED_TRANSITIONS, RegistrationStatus, TrackerRegistration
from .tracker import Game, GamePlatform, ScrapingStatus, Tracker, canonical_tracker_url
from .user import User

__all__ = [
    "OutboxEvent", "OutboxStatus",
    "ProcessedEvent",
    "ALLOWED_TRANSITIONS", "RegistrationStatus", "TrackerRegistration",
    "Game", "GamePlatform", "ScrapingStatus", "Tracker", "canonical_tracker_url",
    "User",
]
