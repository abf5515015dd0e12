# src/league_tracker/services/__init__.py
"""Business logic services for the league tracker application."""

from .idempotency import IdempotencyService
from .outbox import OutboxService
from .registration import TrackerRegistrationService
from .registration_processing import ProcessingResult, RegistrationProcessingService
from .trackers import TrackerService
from .url_validation import ParsedTrackerUrl, TrackerUrlValidator

__all__ = [
    "IdempotencyService",
    "OutboxService",
    "TrackerRegistrationService",
    "ProcessingResult",
    "RegistrationProcessingService",
    "TrackerService",
    "ParsedTrackerUrl",
    "TrackerUrlValidator",
]
