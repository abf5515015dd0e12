"""Transactional outbox writer.

Events are appended in the same transaction as the state change that
produced them, so a committed change always has its event and a rolled
back change never does. Delivery is handled by
:class:`league_tracker.workers.outbox_dispatcher.OutboxDispatcher`.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from league_tracker.core.errors import NotFoundError
from league_tracker.db.time import utcnow
from league_tracker.models import OutboxEvent, OutboxStatus

logger = logging.getLogger(__name__)

TRACKER_REGISTRATION_AGGREGATE = "tracker_registration"
TRACKER_REGISTRATION_CREATED = "TRACKER_REGISTRATION_CREATED"


class OutboxService:
    """Appends and tracks outbox events."""

    def create_event(
        self,
        session: Session,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> OutboxEvent:
        """Append one event to the outbox within the session's open transaction.

        Raises:
            RuntimeError: If the session has no transaction in progress.
        """
        if not session.in_transaction():
            raise RuntimeError("Outbox events must be written inside an active transaction")

        event = OutboxEvent(
            source_type=aggregate_type,
            source_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            status=OutboxStatus.PENDING,
        )
        session.add(event)
        session.flush()
        logger.debug("Outbox event %s queued for %s %s", event_type, aggregate_type, aggregate_id)
        return event

    def find_pending_events(
        self, session: Session, source_type: str | None = None, limit: int = 10
    ) -> list[OutboxEvent]:
        """Return the oldest PENDING events, optionally for one aggregate type."""
        stmt = select(OutboxEvent).where(OutboxEvent.status == OutboxStatus.PENDING)
        if source_type is not None:
            stmt = stmt.where(OutboxEvent.source_type == source_type)
        stmt = stmt.order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc()).limit(limit)
        return list(session.execute(stmt).scalars())

    def update_status(
        self,
        session: Session,
        event_id: str,
        status: OutboxStatus,
        error_message: str | None = None,
    ) -> OutboxEvent:
        """Set an event's delivery status; COMPLETED also stamps ``processed_at``."""
        event = session.get(OutboxEvent, event_id)
        if event is None:
            raise NotFoundError(f"Outbox event {event_id} not found")
        event.status = status
        event.error_message = error_message
        if status == OutboxStatus.COMPLETED:
            event.processed_at = utcnow()
        session.flush()
        return event
