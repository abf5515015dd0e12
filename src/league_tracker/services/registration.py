"""Tracker registration workflow: submission, admin queue and decisions."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from league_tracker.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TrackerError,
)
from league_tracker.db.errors import unique_violation_field
from league_tracker.db.time import utcnow
from league_tracker.db.transaction import run_in_transaction
from league_tracker.models import RegistrationStatus, Tracker, TrackerRegistration
from league_tracker.models.registration import PROCESSABLE_STATUSES
from league_tracker.repositories import RegistrationRepository, TrackerRepository
from league_tracker.services.outbox import (
    TRACKER_REGISTRATION_AGGREGATE,
    TRACKER_REGISTRATION_CREATED,
    OutboxService,
)
from league_tracker.services.url_validation import TrackerUrlValidator

logger = logging.getLogger(__name__)

REGISTERED_MESSAGE = "You are registered. Your tracker is pending admin approval."


class TrackerRegistrationService:
    """Accepts tracker submissions and applies admin decisions to them."""

    def __init__(
        self,
        validator: TrackerUrlValidator | None = None,
        outbox: OutboxService | None = None,
    ) -> None:
        self.validator = validator or TrackerUrlValidator()
        self.outbox = outbox or OutboxService()

    def register_tracker(
        self, session: Session, user_id: str, guild_id: str, url: str
    ) -> dict[str, Any]:
        """Validate ``url`` and queue a PENDING registration for admin approval.

        The registration row and its ``TRACKER_REGISTRATION_CREATED`` outbox
        event are written in one transaction.

        Returns:
            ``registration_id``, ``status`` and a user-facing ``message``.

        Raises:
            TrackerValidationError: If the URL fails validation.
            ConflictError: If a unique constraint rejects the registration.
            TrackerError: For any other failure; nothing is persisted.
        """
        parsed = self.validator.validate_tracker_url(session, url)

        def _create(tx: Session) -> TrackerRegistration:
            registration = RegistrationRepository(tx).create(
                user_id=user_id,
                guild_id=guild_id,
                url=url,
                game=parsed.game,
                platform=parsed.platform,
                username=parsed.username,
                status=RegistrationStatus.PENDING,
            )
            self.outbox.create_event(
                tx,
                TRACKER_REGISTRATION_AGGREGATE,
                registration.id,
                TRACKER_REGISTRATION_CREATED,
                {
                    "registrationId": registration.id,
                    "userId": user_id,
                    "guildId": guild_id,
                    "url": url,
                    "submittedAt": utcnow().isoformat(),
                },
            )
            return registration

        try:
            registration = run_in_transaction(session, _create)
        except IntegrityError as exc:
            field = unique_violation_field(exc)
            if field == "url":
                raise ConflictError(
                    "That url has already been registered or is pending approval.",
                    field="url",
                ) from exc
            if field is not None:
                raise ConflictError(f"Duplicate entry detected: {field}", field=field) from exc
            logger.error(
                "Unexpected integrity error registering tracker for user %s in guild %s (%s)",
                user_id,
                guild_id,
                url,
                exc_info=True,
            )
            raise TrackerError("Failed to register tracker") from exc
        except Exception as exc:
            logger.error(
                "Unexpected error registering tracker for user %s in guild %s (%s)",
                user_id,
                guild_id,
                url,
                exc_info=True,
            )
            raise TrackerError("Failed to register tracker") from exc

        logger.info("Created tracker registration %s with outbox event", registration.id)
        return {
            "registration_id": registration.id,
            "status": RegistrationStatus.PENDING,
            "message": REGISTERED_MESSAGE,
        }

    def get_next_registration(self, session: Session, guild_id: str) -> TrackerRegistration | None:
        """Return the oldest pending registration for ``guild_id``."""
        return RegistrationRepository(session).find_next_pending_by_guild(guild_id)

    def get_registration_by_user(
        self, session: Session, guild_id: str, username: str
    ) -> TrackerRegistration | None:
        """Return the pending registration of the user with Discord ``username``."""
        return RegistrationRepository(session).find_pending_by_guild_and_username(
            guild_id, username
        )

    def get_registration_by_id(self, session: Session, registration_id: str) -> TrackerRegistration:
        registration = RegistrationRepository(session).get_by_id(registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        return registration

    def process_registration(
        self,
        session: Session,
        registration_id: str,
        display_name: str | None,
        processed_by: str,
    ) -> tuple[Tracker, TrackerRegistration]:
        """Approve a registration by creating its tracker.

        The tracker insert and the COMPLETED transition commit together or
        not at all.

        Raises:
            NotFoundError: Unknown registration.
            InvalidStateError: Registration is not PENDING/PROCESSING or lacks
                platform/username.
            ConflictError: The URL is already owned by a tracker.
        """
        registration = self.get_registration_by_id(session, registration_id)
        self._ensure_processable(registration, "process")

        if registration.platform is None or not registration.username:
            raise InvalidStateError("Registration is missing platform or username information.")

        def _approve(tx: Session) -> Tracker:
            tracker = TrackerRepository(tx).create(
                url=registration.url,
                game=registration.game,
                platform=registration.platform,
                username=registration.username,
                user_id=registration.user_id,
                display_name=display_name,
            )
            moved = RegistrationRepository(tx).transition_status(
                registration_id,
                PROCESSABLE_STATUSES,
                RegistrationStatus.COMPLETED,
                processed_by=processed_by,
                processed_at=utcnow(),
                tracker_id=tracker.id,
            )
            if not moved:
                # Another admin decided on it after the status check above.
                raise InvalidStateError(
                    f"Cannot process registration {registration_id}: status changed concurrently"
                )
            return tracker

        try:
            tracker = run_in_transaction(session, _approve)
        except TrackerError:
            raise
        except IntegrityError as exc:
            field = unique_violation_field(exc)
            if field == "url":
                raise ConflictError("That url has already been registered.", field="url") from exc
            if field is not None:
                raise ConflictError(f"Duplicate entry detected: {field}", field=field) from exc
            logger.error(
                "Unexpected integrity error processing registration %s",
                registration_id,
                exc_info=True,
            )
            raise TrackerError("Failed to process registration") from exc

        logger.info("Processed registration %s, created tracker %s", registration_id, tracker.id)
        return tracker, self.get_registration_by_id(session, registration_id)

    def reject_registration(
        self,
        session: Session,
        registration_id: str,
        reason: str | None,
        processed_by: str,
    ) -> TrackerRegistration:
        """Reject a PENDING or PROCESSING registration, releasing its URL."""
        registration = self.get_registration_by_id(session, registration_id)
        self._ensure_processable(registration, "reject")

        def _reject(tx: Session) -> None:
            moved = RegistrationRepository(tx).transition_status(
                registration_id,
                PROCESSABLE_STATUSES,
                RegistrationStatus.REJECTED,
                processed_by=processed_by,
                processed_at=utcnow(),
                rejection_reason=reason,
            )
            if not moved:
                raise InvalidStateError(
                    f"Cannot reject registration {registration_id}: status changed concurrently"
                )

        run_in_transaction(session, _reject)
        logger.info("Rejected registration %s: %s", registration_id, reason)
        return self.get_registration_by_id(session, registration_id)

    def get_queue_stats(self, session: Session, guild_id: str) -> dict[str, int]:
        """Return registration counts for every status, zero when absent."""
        counts = RegistrationRepository(session).count_by_status(guild_id)
        return {status.value.lower(): counts.get(status, 0) for status in RegistrationStatus}

    @staticmethod
    def _ensure_processable(registration: TrackerRegistration, action: str) -> None:
        if registration.status not in PROCESSABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot {action} registration with status {registration.status.value}"
            )
