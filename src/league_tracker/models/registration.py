# src/league_tracker/models/registration.py
"""SQLAlchemy model and state machine for tracker registrations."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from league_tracker.db.session import Base
from league_tracker.db.time import utcnow
from league_tracker.models.tracker import Game, GamePlatform, canonical_url_default
from league_tracker.models.user import User


class RegistrationStatus(str, Enum):
    """Lifecycle states of a tracker registration."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]

    def can_transition_to(self, target: RegistrationStatus) -> bool:
        """Return True if moving from this status to ``target`` is permitted."""
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[RegistrationStatus, frozenset[RegistrationStatus]] = {
    RegistrationStatus.PENDING: frozenset(
        {
            RegistrationStatus.PROCESSING,
            RegistrationStatus.COMPLETED,
            RegistrationStatus.REJECTED,
            RegistrationStatus.FAILED,
        }
    ),
    RegistrationStatus.PROCESSING: frozenset(
        {
            RegistrationStatus.COMPLETED,
            RegistrationStatus.REJECTED,
            RegistrationStatus.FAILED,
        }
    ),
    RegistrationStatus.COMPLETED: frozenset(),
    RegistrationStatus.REJECTED: frozenset(),
    RegistrationStatus.FAILED: frozenset(),
}

# Registrations in these states still await an admin decision.
PROCESSABLE_STATUSES = (RegistrationStatus.PENDING, RegistrationStatus.PROCESSING)


class TrackerRegistration(Base):
    """A user's request to have a tracker URL approved for a guild."""

    __tablename__ = "tracker_registrations"
    __table_args__ = (
        UniqueConstraint("tracker_id", name="uq_tracker_registrations_tracker_id"),
        # A URL may be resubmitted once its earlier registration was rejected.
        Index(
            "uq_tracker_registrations_active_url",
            "canonical_url",
            unique=True,
            sqlite_where=text("status != 'REJECTED'"),
            postgresql_where=text("status != 'REJECTED'"),
        ),
        Index("ix_tracker_registrations_guild_status", "guild_id", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    canonical_url: Mapped[str] = mapped_column(
        Text, nullable=False, default=canonical_url_default
    )
    game: Mapped[Game] = mapped_column(
        SAEnum(Game, native_enum=False, length=32), nullable=False, default=Game.ROCKET_LEAGUE
    )
    platform: Mapped[GamePlatform | None] = mapped_column(
        SAEnum(GamePlatform, native_enum=False, length=16), nullable=True
    )
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[RegistrationStatus] = mapped_column(
        SAEnum(RegistrationStatus, native_enum=False, length=16),
        nullable=False,
        default=RegistrationStatus.PENDING,
    )

    processed_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    tracker_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("trackers.id", ondelete="SET NULL"), nullable=True
    )

    notification_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notification_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    user: Mapped[User] = relationship("User", lazy="joined")
