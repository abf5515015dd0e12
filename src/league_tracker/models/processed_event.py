# src/league_tracker/models/processed_event.py
"""Idempotency ledger of messages that have already been handled."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from league_tracker.db.session import Base
from league_tracker.db.time import utcnow


class ProcessedEvent(Base):
    """Existence of a row means the message with ``event_key`` was handled."""

    __tablename__ = "processed_events"
    __table_args__ = (UniqueConstraint("event_key", name="uq_processed_events_event_key"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    event_key: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # "metadata" is reserved on declarative classes.
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
