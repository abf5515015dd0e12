"""Queue-side processing of newly submitted registrations.

Each delivered job moves its registration from PENDING to PROCESSING at
most once, no matter how often the job is delivered or how many workers
receive it. Two mechanisms, both inside one transaction, make that hold:

- the idempotency ledger's unique message id
- a conditional ``UPDATE ... WHERE status = 'PENDING'`` whose row count
  tells the caller whether it won the transition
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from league_tracker.core.errors import DuplicateMessageError, NotFoundError
from league_tracker.db.time import utcnow
from league_tracker.db.transaction import run_in_transaction
from league_tracker.models import RegistrationStatus
from league_tracker.repositories import RegistrationRepository
from league_tracker.services.idempotency import IdempotencyService
from league_tracker.services.outbox import TRACKER_REGISTRATION_AGGREGATE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationJobData:
    """Payload of a ``tracker.registration`` job."""

    registration_id: str
    user_id: str
    guild_id: str
    url: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RegistrationJobData:
        """Build job data from an outbox event payload."""
        return cls(
            registration_id=str(payload["registrationId"]),
            user_id=str(payload["userId"]),
            guild_id=str(payload["guildId"]),
            url=str(payload["url"]),
        )

    def to_payload(self) -> dict[str, str]:
        return {
            "registrationId": self.registration_id,
            "userId": self.user_id,
            "guildId": self.guild_id,
            "url": self.url,
        }


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of handling one registration job.

    ``redelivered`` is set only when the ledger already held this exact
    message id, i.e. an earlier delivery of the same job committed the
    transition.
    """

    success: bool
    registration_id: str
    message: str
    already_processed: bool
    status_changed: bool
    redelivered: bool = False


class RegistrationProcessingService:
    """Idempotent PENDING -> PROCESSING transition for registration jobs."""

    def __init__(self, idempotency: IdempotencyService | None = None) -> None:
        self.idempotency = idempotency or IdempotencyService()

    def process_registration(
        self, session: Session, job_data: RegistrationJobData, message_id: str
    ) -> ProcessingResult:
        """Advance the registration named by ``job_data`` to PROCESSING.

        Args:
            session: Session owned by the caller; committed or rolled back here.
            job_data: Registration the job refers to.
            message_id: Delivery-stable id of the job, used as idempotency key.

        Raises:
            NotFoundError: The registration no longer exists.
        """
        registration_id = job_data.registration_id

        if self.idempotency.is_processed(session, message_id):
            logger.warning(
                "Message %s already processed for registration %s, skipping",
                message_id,
                registration_id,
            )
            return ProcessingResult(
                success=True,
                registration_id=registration_id,
                message="Registration already processed (idempotent)",
                already_processed=True,
                status_changed=False,
                redelivered=True,
            )

        def _advance(tx: Session) -> ProcessingResult:
            repo = RegistrationRepository(tx)
            registration = repo.get_by_id(registration_id)
            if registration is None:
                raise NotFoundError(f"Registration {registration_id} not found")

            if registration.status != RegistrationStatus.PENDING:
                logger.warning(
                    "Registration %s already in %s state, skipping",
                    registration_id,
                    registration.status.value,
                )
                return self._skipped(
                    registration_id,
                    f"Registration already in {registration.status.value} state",
                )

            if not repo.transition_status(
                registration_id,
                [RegistrationStatus.PENDING],
                RegistrationStatus.PROCESSING,
                last_processed_at=utcnow(),
            ):
                logger.warning(
                    "Registration %s was claimed by another worker", registration_id
                )
                return self._skipped(
                    registration_id, "Registration already claimed by another worker"
                )

            self.idempotency.mark_processed(
                tx,
                message_id,
                TRACKER_REGISTRATION_AGGREGATE,
                registration_id,
                {"messageId": message_id, "guildId": job_data.guild_id},
            )

            if registration.notification_sent_at is None:
                repo.increment_notification_attempts(registration_id)

            return ProcessingResult(
                success=True,
                registration_id=registration_id,
                message="Registration status updated to PROCESSING",
                already_processed=False,
                status_changed=True,
            )

        try:
            result = run_in_transaction(session, _advance)
        except DuplicateMessageError:
            return self._skipped(registration_id, "Registration already processed (idempotent)")

        if result.status_changed:
            logger.info("Registration %s moved to PROCESSING", registration_id)
        return result

    @staticmethod
    def _skipped(registration_id: str, message: str) -> ProcessingResult:
        return ProcessingResult(
            success=True,
            registration_id=registration_id,
            message=message,
            already_processed=True,
            status_changed=False,
        )
