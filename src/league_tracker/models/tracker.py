# src/league_tracker/models/tracker.py
"""SQLAlchemy model for approved external-profile trackers."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.engine.default import DefaultExecutionContext
from sqlalchemy.orm import Mapped, mapped_column

from league_tracker.db.session import Base
from league_tracker.db.time import utcnow


class GamePlatform(str, Enum):
    """Platforms a Rocket League tracker profile can belong to."""

    STEAM = "STEAM"
    EPIC = "EPIC"
    XBL = "XBL"
    PSN = "PSN"
    SWITCH = "SWITCH"


class Game(str, Enum):
    """Games with supported tracker sites."""

    ROCKET_LEAGUE = "ROCKET_LEAGUE"


class ScrapingStatus(str, Enum):
    """Progress of the external scraper for a tracker."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Index of the username in "/rocket-league/profile/{platform}/{username}/overview".
_USERNAME_SEGMENT = 4


def canonical_tracker_url(url: str) -> str:
    """Return the form of a profile URL used for uniqueness.

    Scheme, host and every path segment except the username are lowercased,
    trailing slashes are dropped, and any query or fragment is discarded.
    """
    parts = urlsplit(url.strip())
    segments = parts.path.rstrip("/").split("/")
    segments = [
        segment if index == _USERNAME_SEGMENT else segment.lower()
        for index, segment in enumerate(segments)
    ]
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), "/".join(segments), "", ""))


def canonical_url_default(context: DefaultExecutionContext) -> str:
    return canonical_tracker_url(context.get_current_parameters()["url"])


class Tracker(Base):
    """An approved tracker URL owned by a user."""

    __tablename__ = "trackers"
    __table_args__ = (UniqueConstraint("canonical_url", name="uq_trackers_canonical_url"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    canonical_url: Mapped[str] = mapped_column(
        Text, nullable=False, default=canonical_url_default
    )
    game: Mapped[Game] = mapped_column(
        SAEnum(Game, native_enum=False, length=32), nullable=False, default=Game.ROCKET_LEAGUE
    )
    platform: Mapped[GamePlatform] = mapped_column(
        SAEnum(GamePlatform, native_enum=False, length=16), nullable=False, index=True
    )
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Written by the scraper collaborator.
    scraping_status: Mapped[ScrapingStatus] = mapped_column(
        SAEnum(ScrapingStatus, native_enum=False, length=16),
        nullable=False,
        default=ScrapingStatus.PENDING,
    )
    scraping_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    scraping_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_scraped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
