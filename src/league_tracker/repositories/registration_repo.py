"""Data access helpers for working with tracker registrations."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from league_tracker.db.time import utcnow
from league_tracker.models import (
    RegistrationStatus,
    TrackerRegistration,
    User,
    canonical_tracker_url,
)

__all__ = ["RegistrationRepository"]


class RegistrationRepository:
    """Thin wrapper around database access for registration entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def create(self, **fields: Any) -> TrackerRegistration:
        """Insert a new registration and flush so constraint errors surface here."""
        registration = TrackerRegistration(**fields)
        self.session.add(registration)
        self.session.flush()
        return registration

    def get_by_id(self, registration_id: str) -> TrackerRegistration | None:
        """Return a registration by identifier."""
        return self.session.get(TrackerRegistration, registration_id)

    def find_next_pending_by_guild(self, guild_id: str) -> TrackerRegistration | None:
        """Return the oldest PENDING registration for a guild."""
        stmt = (
            select(TrackerRegistration)
            .where(
                TrackerRegistration.guild_id == guild_id,
                TrackerRegistration.status == RegistrationStatus.PENDING,
            )
            .order_by(TrackerRegistration.created_at.asc(), TrackerRegistration.id.asc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def find_active_by_urls(
        self, urls: Iterable[str], *, exclude_user_id: str | None = None
    ) -> list[TrackerRegistration]:
        """Return non-rejected registrations matching any of ``urls``.

        URLs are compared in canonical form. Registrations owned by
        ``exclude_user_id`` are left out.
        """
        canonical = {canonical_tracker_url(url) for url in urls}
        if not canonical:
            return []
        stmt = select(TrackerRegistration).where(
            TrackerRegistration.canonical_url.in_(canonical),
            TrackerRegistration.status != RegistrationStatus.REJECTED,
        )
        if exclude_user_id is not None:
            stmt = stmt.where(TrackerRegistration.user_id != exclude_user_id)
        return list(self.session.execute(stmt).scalars())

    def find_pending_by_guild_and_username(
        self, guild_id: str, username: str
    ) -> TrackerRegistration | None:
        """Return the oldest PENDING registration whose owner has ``username``.

        The Discord username comparison is case-insensitive.
        """
        stmt = (
            select(TrackerRegistration)
            .join(User, User.id == TrackerRegistration.user_id)
            .where(
                TrackerRegistration.guild_id == guild_id,
                TrackerRegistration.status == RegistrationStatus.PENDING,
                func.lower(User.username) == username.lower(),
            )
            .order_by(TrackerRegistration.created_at.asc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def transition_status(
        self,
        registration_id: str,
        from_statuses: Iterable[RegistrationStatus],
        to_status: RegistrationStatus,
        **values: Any,
    ) -> bool:
        """Conditionally move a registration to ``to_status``.

        Issues a single ``UPDATE ... WHERE id = :id AND status IN (...)`` so
        that concurrent callers race on the database row rather than on
        in-memory state. Returns True if exactly this call changed the row.
        """
        stmt = (
            update(TrackerRegistration)
            .where(
                TrackerRegistration.id == registration_id,
                TrackerRegistration.status.in_(list(from_statuses)),
            )
            .values(status=to_status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        changed = result.rowcount == 1
        if changed:
            self._expire_cached(registration_id)
        return changed

    def increment_notification_attempts(self, registration_id: str) -> None:
        """Atomically add one to the notification attempt counter."""
        self.session.execute(
            update(TrackerRegistration)
            .where(TrackerRegistration.id == registration_id)
            .values(notification_attempts=TrackerRegistration.notification_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        self._expire_cached(registration_id)

    def mark_notification_sent(self, registration_id: str, sent_at: datetime | None = None) -> bool:
        """Set ``notification_sent_at`` unless it is already set."""
        result = self.session.execute(
            update(TrackerRegistration)
            .where(
                TrackerRegistration.id == registration_id,
                TrackerRegistration.notification_sent_at.is_(None),
            )
            .values(notification_sent_at=sent_at or utcnow())
            .execution_options(synchronize_session=False)
        )
        self._expire_cached(registration_id)
        return result.rowcount == 1

    def count_by_status(self, guild_id: str) -> dict[RegistrationStatus, int]:
        """Return registration counts per status for a guild."""
        stmt = (
            select(TrackerRegistration.status, func.count(TrackerRegistration.id))
            .where(TrackerRegistration.guild_id == guild_id)
            .group_by(TrackerRegistration.status)
        )
        return {status: count for status, count in self.session.execute(stmt).all()}

    def _expire_cached(self, registration_id: str) -> None:
        key = self.session.identity_key(TrackerRegistration, registration_id)
        cached = self.session.identity_map.get(key)
        if cached is not None:
            self.session.expire(cached)
