"""Queue consumer for ``tracker.registration`` jobs.

For each delivered job the processor:

- runs the idempotent PENDING -> PROCESSING transition
- sends the registration DM once the transition has committed, provided the
  registration is still PROCESSING at that point
- records ``notification_sent_at`` after a successful send

The notification call happens outside any database transaction. When it
fails the registration stays PROCESSING and the error propagates, so the
queue retries the job and the retry resumes at the notification step.
Any other failure triggers a best-effort move to FAILED before the
original error is re-raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from league_tracker.core.errors import NotificationError
from league_tracker.db.session import SessionLocal
from league_tracker.db.transaction import run_in_transaction
from league_tracker.models import RegistrationStatus
from league_tracker.models.registration import PROCESSABLE_STATUSES
from league_tracker.repositories import RegistrationRepository
from league_tracker.services.notifications import TrackerNotificationService
from league_tracker.services.registration_processing import (
    ProcessingResult,
    RegistrationJobData,
    RegistrationProcessingService,
)
from league_tracker.workers.queue import Job

logger = logging.getLogger(__name__)

NOTIFICATION_SENT_MESSAGE = "Registration notification sent successfully"
NOTIFICATION_SKIPPED_MESSAGE = "Registration left PROCESSING before notification, not sent"


class TrackerRegistrationProcessor:
    """Handles registration jobs delivered by the job queue."""

    def __init__(
        self,
        notification_service: TrackerNotificationService,
        processing_service: RegistrationProcessingService | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self.notification_service = notification_service
        self.processing_service = processing_service or RegistrationProcessingService()
        self.session_factory = session_factory or SessionLocal

    async def process(self, job: Job) -> dict[str, Any]:
        """Process one delivery of ``job``; raising makes the queue retry it."""
        data = RegistrationJobData.from_payload(job.payload)
        message_id = f"job-{job.id}"
        logger.info(
            "Processing tracker registration job %s for registration %s",
            job.id,
            data.registration_id,
        )

        try:
            result = await asyncio.to_thread(self._run_transition, data, message_id)

            if result.already_processed:
                resume = result.redelivered and await asyncio.to_thread(
                    self._claim_notification_retry, data.registration_id
                )
                if not resume:
                    return self._result(data, result.message)
                logger.info(
                    "Resuming notification for registration %s", data.registration_id
                )

            if not await asyncio.to_thread(self._still_processing, data.registration_id):
                logger.info(
                    "Registration %s is no longer PROCESSING, skipping notification",
                    data.registration_id,
                )
                return self._result(data, NOTIFICATION_SKIPPED_MESSAGE)

            if await asyncio.to_thread(self._notification_sent, data.registration_id):
                logger.debug(
                    "Notification already sent for registration %s, skipping",
                    data.registration_id,
                )
            else:
                await self.notification_service.send_registration_notification(
                    data.registration_id, data.guild_id, data.user_id, data.url
                )
                await asyncio.to_thread(self._mark_notification_sent, data.registration_id)
        except NotificationError as exc:
            logger.error(
                "Notification for registration %s failed, job will be retried: %s",
                data.registration_id,
                exc,
            )
            raise
        except Exception as exc:
            logger.error(
                "Error processing registration %s: %s",
                data.registration_id,
                exc,
                exc_info=True,
            )
            await self._mark_failed(data.registration_id)
            raise

        logger.info("Successfully processed registration %s", data.registration_id)
        return self._result(data, NOTIFICATION_SENT_MESSAGE)

    async def _mark_failed(self, registration_id: str) -> None:
        try:
            moved = await asyncio.to_thread(self._transition_to_failed, registration_id)
        except Exception:
            logger.error(
                "Failed to update registration %s status to FAILED",
                registration_id,
                exc_info=True,
            )
            return
        if moved:
            logger.warning("Registration %s marked FAILED", registration_id)

    def on_completed(self, job: Job) -> None:
        logger.info("Job %s completed successfully", job.id)

    def on_failed(self, job: Job, error: BaseException) -> None:
        logger.error("Job %s failed: %s", job.id, error)

    async def handle(self, job: Job) -> dict[str, Any]:
        """Queue handler entry point wrapping :meth:`process` with lifecycle hooks."""
        try:
            result = await self.process(job)
        except Exception as exc:
            self.on_failed(job, exc)
            raise
        self.on_completed(job)
        return result

    def _run_transition(self, data: RegistrationJobData, message_id: str) -> ProcessingResult:
        with self.session_factory() as session:
            return self.processing_service.process_registration(session, data, message_id)

    def _claim_notification_retry(self, registration_id: str) -> bool:
        """Count another attempt if an earlier delivery left the DM unsent."""
        with self.session_factory() as session:
            registration = RegistrationRepository(session).get_by_id(registration_id)
            if (
                registration is None
                or registration.status != RegistrationStatus.PROCESSING
                or registration.notification_sent_at is not None
            ):
                return False
            run_in_transaction(
                session,
                lambda tx: RegistrationRepository(tx).increment_notification_attempts(
                    registration_id
                ),
            )
            return True

    def _still_processing(self, registration_id: str) -> bool:
        with self.session_factory() as session:
            registration = RegistrationRepository(session).get_by_id(registration_id)
            return registration is not None and registration.status == RegistrationStatus.PROCESSING

    def _notification_sent(self, registration_id: str) -> bool:
        with self.session_factory() as session:
            registration = RegistrationRepository(session).get_by_id(registration_id)
            return registration is not None and registration.notification_sent_at is not None

    def _mark_notification_sent(self, registration_id: str) -> None:
        with self.session_factory() as session:
            run_in_transaction(
                session,
                lambda tx: RegistrationRepository(tx).mark_notification_sent(registration_id),
            )

    def _transition_to_failed(self, registration_id: str) -> bool:
        with self.session_factory() as session:
            return run_in_transaction(
                session,
                lambda tx: RegistrationRepository(tx).transition_status(
                    registration_id, PROCESSABLE_STATUSES, RegistrationStatus.FAILED
                ),
            )

    @staticmethod
    def _result(data: RegistrationJobData, message: str) -> dict[str, Any]:
        return {
            "success": True,
            "registration_id": data.registration_id,
            "message": message,
        }
