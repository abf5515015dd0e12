"""Domain exceptions raised by the tracker registration pipeline.

Services raise these; the API layer maps them onto HTTP responses and the
queue workers decide from their type whether a job should be retried.
"""

from __future__ import annotations


class TrackerError(RuntimeError):
    """Base exception for tracker and registration failures."""

    code = "TRACKER_ERROR"


class TrackerValidationError(TrackerError):
    """Raised when submitted input fails validation.

    ``reason`` identifies which rule rejected the input, e.g.
    ``invalid_format`` or ``unsupported_platform``.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, reason: str = "invalid") -> None:
        super().__init__(message)
        self.reason = reason


class ConflictError(TrackerError):
    """Raised when a write collides with an existing unique value."""

    code = "CONFLICT"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(TrackerError):
    """Raised when a requested entity does not exist."""

    code = "NOT_FOUND"


class InvalidStateError(TrackerError):
    """Raised when an entity is not in a state that allows the operation."""

    code = "INVALID_STATE"


class NotificationError(RuntimeError):
    """Raised when a user notification could not be delivered."""


class CircuitOpenError(NotificationError):
    """Raised when the notification circuit breaker rejects a request."""


class DuplicateMessageError(RuntimeError):
    """Raised when a message id is already present in the idempotency ledger."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message {message_id} has already been processed")
        self.message_id = message_id
