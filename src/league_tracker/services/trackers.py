"""Self-service tracker management for users linking their own profiles."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from league_tracker.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TrackerValidationError,
)
from league_tracker.core.settings import settings
from league_tracker.db.errors import unique_violation_field
from league_tracker.db.time import utcnow
from league_tracker.db.transaction import run_in_transaction
from league_tracker.models import ScrapingStatus, Tracker, canonical_tracker_url
from league_tracker.repositories import RegistrationRepository, TrackerRepository
from league_tracker.services.url_validation import (
    NOT_UNIQUE_MESSAGE,
    ParsedTrackerUrl,
    TrackerUrlValidator,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


class TrackerService:
    """Creates, lists and maintains a user's trackers."""

    def __init__(
        self,
        validator: TrackerUrlValidator | None = None,
        max_trackers_per_user: int | None = None,
    ) -> None:
        self.validator = validator or TrackerUrlValidator()
        self.max_trackers_per_user = max_trackers_per_user or settings.tracker_max_per_user

    def register_trackers(self, session: Session, user_id: str, urls: list[str]) -> list[Tracker]:
        """Register a user's first batch of trackers.

        Raises:
            TrackerValidationError: Wrong number of URLs, duplicates within
                the batch, or an invalid URL.
            InvalidStateError: The user already has trackers.
            ConflictError: One or more URLs belong to existing trackers or to
                another user's registration that was not rejected.
        """
        existing = TrackerRepository(session).count_by_user(user_id)
        if existing > 0:
            raise InvalidStateError(
                f"You already have {existing} tracker(s) registered. "
                "Use /api/v1/trackers/add to add more."
            )

        validated = self._validate_batch(session, user_id, urls)

        def _create_all(tx: Session) -> list[Tracker]:
            repo = TrackerRepository(tx)
            return [self._create(repo, user_id, url, parsed) for url, parsed in validated]

        trackers = self._write(session, _create_all)
        logger.info("Registered %d tracker(s) for user %s", len(trackers), user_id)
        return trackers

    def add_tracker(self, session: Session, user_id: str, url: str) -> Tracker:
        """Add one more tracker for a user, up to the per-user maximum."""
        existing = TrackerRepository(session).count_by_user(user_id)
        if existing >= self.max_trackers_per_user:
            raise InvalidStateError(
                f"You have reached the maximum of {self.max_trackers_per_user} trackers. "
                "Please remove one before adding another."
            )

        parsed = self.validator.validate_tracker_url(session, url)
        if self._held_by_registration(session, user_id, [url]):
            raise TrackerValidationError(NOT_UNIQUE_MESSAGE, reason="not_unique")
        tracker = self._write(
            session, lambda tx: self._create(TrackerRepository(tx), user_id, url, parsed)
        )
        logger.info("Added tracker %s for user %s", tracker.id, user_id)
        return tracker

    def get_tracker(self, session: Session, tracker_id: str) -> Tracker:
        tracker = TrackerRepository(session).get_by_id(tracker_id)
        if tracker is None or tracker.is_deleted:
            raise NotFoundError("Tracker not found")
        return tracker

    def get_trackers_by_user(self, session: Session, user_id: str) -> list[Tracker]:
        return TrackerRepository(session).list_by_user(user_id)

    def update_tracker(
        self,
        session: Session,
        tracker_id: str,
        display_name: str | None = None,
        is_active: bool | None = None,
    ) -> Tracker:
        """Change a tracker's display name and/or active flag."""
        tracker = self.get_tracker(session, tracker_id)

        def _apply(tx: Session) -> Tracker:
            if display_name is not None:
                tracker.display_name = display_name
            if is_active is not None:
                tracker.is_active = is_active
            tx.flush()
            return tracker

        return run_in_transaction(session, _apply)

    def delete_tracker(self, session: Session, tracker_id: str) -> Tracker:
        """Soft-delete a tracker; its URL stays reserved."""
        tracker = self.get_tracker(session, tracker_id)
        run_in_transaction(session, lambda tx: TrackerRepository(tx).soft_delete(tracker))
        logger.info("Soft-deleted tracker %s", tracker_id)
        return tracker

    def update_scraping_status(
        self,
        session: Session,
        tracker_id: str,
        status: ScrapingStatus,
        error: str | None = None,
    ) -> Tracker:
        """Record scraper progress for a tracker."""
        tracker = TrackerRepository(session).get_by_id(tracker_id)
        if tracker is None:
            raise NotFoundError("Tracker not found")

        def _apply(tx: Session) -> Tracker:
            tracker.scraping_status = status
            if status == ScrapingStatus.IN_PROGRESS:
                tracker.scraping_attempts += 1
            elif status == ScrapingStatus.COMPLETED:
                tracker.last_scraped_at = utcnow()
                tracker.scraping_error = None
            elif status == ScrapingStatus.FAILED:
                tracker.scraping_error = error
            tx.flush()
            return tracker

        return run_in_transaction(session, _apply)

    def _validate_batch(
        self, session: Session, user_id: str, urls: list[str]
    ) -> list[tuple[str, ParsedTrackerUrl]]:
        if not urls or len(urls) > self.max_trackers_per_user:
            raise TrackerValidationError(
                f"You must provide between 1 and {self.max_trackers_per_user} tracker URLs",
                reason="invalid_count",
            )
        if len({canonical_tracker_url(url) for url in urls}) != len(urls):
            raise TrackerValidationError("Duplicate URLs are not allowed", reason="duplicate_urls")

        uniqueness = self.validator.batch_check_url_uniqueness(session, urls)
        held = self._held_by_registration(session, user_id, urls)
        taken = [url for url in urls if not uniqueness[url] or url in held]
        if taken:
            raise ConflictError(
                "The following tracker URL(s) have already been registered: " + ", ".join(taken),
                field="url",
            )

        return [
            (url, self.validator.validate_tracker_url(session, url, skip_uniqueness_check=True))
            for url in urls
        ]

    @staticmethod
    def _held_by_registration(session: Session, user_id: str, urls: list[str]) -> set[str]:
        """Return the URLs claimed by another user's non-rejected registration."""
        claimed = {
            registration.canonical_url
            for registration in RegistrationRepository(session).find_active_by_urls(
                urls, exclude_user_id=user_id
            )
        }
        return {url for url in urls if canonical_tracker_url(url) in claimed}

    @staticmethod
    def _create(
        repo: TrackerRepository, user_id: str, url: str, parsed: ParsedTrackerUrl
    ) -> Tracker:
        return repo.create(
            url=url,
            game=parsed.game,
            platform=parsed.platform,
            username=parsed.username,
            user_id=user_id,
        )

    @staticmethod
    def _write(session: Session, callback: Callable[[Session], T]) -> T:
        try:
            return run_in_transaction(session, callback)
        except IntegrityError as exc:
            field = unique_violation_field(exc)
            if field == "url":
                raise ConflictError(
                    "This tracker URL has already been registered with another user.",
                    field="url",
                ) from exc
            raise
