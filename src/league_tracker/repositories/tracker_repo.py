"""Data access helpers for working with trackers."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from league_tracker.models import Tracker, canonical_tracker_url

__all__ = ["TrackerRepository"]


class TrackerRepository:
    """Thin wrapper around database access for tracker entities."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, **fields: Any) -> Tracker:
        """Insert a new tracker and flush so a duplicate URL fails here."""
        tracker = Tracker(**fields)
        self.session.add(tracker)
        self.session.flush()
        return tracker

    def get_by_id(self, tracker_id: str) -> Tracker | None:
        return self.session.get(Tracker, tracker_id)

    def get_by_url(self, url: str) -> Tracker | None:
        """Return the tracker for ``url``, ignoring case and trailing-slash variants."""
        stmt = select(Tracker).where(Tracker.canonical_url == canonical_tracker_url(url))
        return self.session.execute(stmt).scalars().first()

    def find_by_urls(self, urls: Iterable[str]) -> list[Tracker]:
        """Return every tracker matching one of ``urls`` using one query."""
        canonical = {canonical_tracker_url(url) for url in urls}
        if not canonical:
            return []
        stmt = select(Tracker).where(Tracker.canonical_url.in_(canonical))
        return list(self.session.execute(stmt).scalars())

    def list_by_user(self, user_id: str) -> list[Tracker]:
        """Return a user's non-deleted trackers, newest first."""
        stmt = (
            select(Tracker)
            .where(Tracker.user_id == user_id, Tracker.is_deleted.is_(False))
            .order_by(Tracker.created_at.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def count_by_user(self, user_id: str) -> int:
        """Count a user's trackers that have not been deleted."""
        stmt = select(func.count(Tracker.id)).where(
            Tracker.user_id == user_id,
            Tracker.is_deleted.is_(False),
        )
        return int(self.session.execute(stmt).scalar_one())

    def soft_delete(self, tracker: Tracker) -> Tracker:
        tracker.is_deleted = True
        tracker.is_active = False
        self.session.flush()
        return tracker
