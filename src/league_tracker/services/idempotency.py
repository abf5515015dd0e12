"""Idempotency ledger for queue messages.

A message id is recorded in the same transaction as the state change it
guards. The unique key on ``processed_events.event_key`` is the only
coordination between workers: whichever transaction inserts the key first
wins and every other insert fails with a unique violation.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from league_tracker.core.errors import DuplicateMessageError
from league_tracker.db.errors import unique_violation_field
from league_tracker.models import ProcessedEvent

logger = logging.getLogger(__name__)


class IdempotencyService:
    """Records which messages have already produced their side effects."""

    def is_processed(self, session: Session, message_id: str) -> bool:
        """Return True if ``message_id`` has been recorded."""
        stmt = select(ProcessedEvent.id).where(ProcessedEvent.event_key == message_id).limit(1)
        return session.execute(stmt).first() is not None

    def mark_processed(
        self,
        session: Session,
        message_id: str,
        operation_type: str,
        target_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> ProcessedEvent:
        """Record ``message_id`` inside the caller's open transaction.

        The row is flushed immediately so a concurrent duplicate surfaces
        here rather than at commit time.

        Raises:
            DuplicateMessageError: If the key already exists. The session must
                be rolled back by the caller.
        """
        record = ProcessedEvent(
            event_key=message_id,
            entity_type=operation_type,
            entity_id=target_id,
            event_metadata=metadata,
        )
        session.add(record)
        try:
            session.flush()
        except IntegrityError as exc:
            if unique_violation_field(exc) != "event_key":
                raise
            logger.warning(
                "Message %s already recorded for %s %s", message_id, operation_type, target_id
            )
            raise DuplicateMessageError(message_id) from exc
        return record

    def prune_older_than(self, session: Session, cutoff: datetime) -> int:
        """Delete ledger rows processed before ``cutoff`` and return how many went."""
        result = session.execute(delete(ProcessedEvent).where(ProcessedEvent.processed_at < cutoff))
        session.commit()
        deleted = result.rowcount or 0
        logger.info("Pruned %d processed event records older than %s", deleted, cutoff)
        return deleted
