"""Validation and parsing of Rocket League tracker profile URLs.

Accepted URLs look like::

    https://rocketleague.tracker.network/rocket-league/profile/{platform}/{username}/overview

with at most one trailing slash. Parsing is pure; uniqueness checks read
the trackers table through the caller's session.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import quote, urlsplit

from sqlalchemy.orm import Session

from league_tracker.core.errors import TrackerValidationError
from league_tracker.core.settings import settings
from league_tracker.models import Game, GamePlatform, canonical_tracker_url
from league_tracker.repositories import TrackerRepository

logger = logging.getLogger(__name__)

TRN_HOST = "rocketleague.tracker.network"
TRN_PATH_PREFIX = "/rocket-league/profile/"
TRN_PATH_SUFFIX = "/overview"
TRN_PROFILE_PATTERN = re.compile(
    r"^https://rocketleague\.tracker\.network/rocket-league/profile/([^/]+)/([^/]*)/overview/?$",
    re.IGNORECASE,
)
TRACKER_GG_API_BASE = "https://api.tracker.gg/api/v2/rocket-league/standard/profile"

SUPPORTED_PLATFORMS: dict[str, GamePlatform] = {
    "steam": GamePlatform.STEAM,
    "epic": GamePlatform.EPIC,
    "xbl": GamePlatform.XBL,
    "psn": GamePlatform.PSN,
    "switch": GamePlatform.SWITCH,
}

INVALID_FORMAT_MESSAGE = (
    "Invalid tracker URL format. Must be: "
    "https://rocketleague.tracker.network/rocket-league/profile/{platform}/{username}/overview"
)
NOT_UNIQUE_MESSAGE = "This tracker URL has already been registered with another user."

_TRAILING_SLASHES = re.compile(r"/{2,}$")


@dataclass(frozen=True)
class ParsedTrackerUrl:
    """Structured result of a successfully validated tracker URL."""

    platform: GamePlatform
    username: str
    game: Game = Game.ROCKET_LEAGUE


def normalize_trailing_slashes(value: str) -> str:
    """Collapse a run of trailing slashes into a single slash."""
    return _TRAILING_SLASHES.sub("/", value)


def _has_valid_structure(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    path = normalize_trailing_slashes(parts.path)
    return (
        parts.scheme == "https"
        and parts.hostname == TRN_HOST
        and path.startswith(TRN_PATH_PREFIX)
        and (path.endswith(TRN_PATH_SUFFIX) or path.endswith(TRN_PATH_SUFFIX + "/"))
    )


def _extract_segments(url: str) -> tuple[str, str] | None:
    match = TRN_PROFILE_PATTERN.match(normalize_trailing_slashes(url))
    if match is None:
        return None
    return match.group(1).lower(), match.group(2)


def parse_tracker_url(url: str) -> ParsedTrackerUrl | None:
    """Extract platform and username from a tracker URL without touching the database.

    Returns None when the URL does not match the profile pattern or names an
    unsupported platform. The platform segment is matched case-insensitively;
    the username is returned exactly as it appears in the URL.
    """
    segments = _extract_segments(url)
    if segments is None:
        return None
    platform_token, username = segments
    platform = SUPPORTED_PLATFORMS.get(platform_token)
    if platform is None or not username:
        return None
    return ParsedTrackerUrl(platform=platform, username=username)


def convert_to_api_url(url: str) -> str:
    """Return the tracker.gg API URL for a profile page URL."""
    segments = _extract_segments(url)
    if segments is None or not segments[1]:
        raise TrackerValidationError(INVALID_FORMAT_MESSAGE, reason="invalid_format")
    platform_token, username = segments
    return f"{TRACKER_GG_API_BASE}/{platform_token}/{quote(username, safe='')}"


class TrackerUrlValidator:
    """Validates submitted tracker URLs and checks them against persisted state."""

    def __init__(self, username_max_length: int | None = None) -> None:
        self.username_max_length = username_max_length or settings.tracker_username_max_length

    def validate_tracker_url(
        self,
        session: Session,
        url: str,
        *,
        exclude_tracker_id: str | None = None,
        skip_uniqueness_check: bool = False,
    ) -> ParsedTrackerUrl:
        """Validate ``url`` and return its parsed platform, username and game.

        Rules are applied in order and the first failure raises
        ``TrackerValidationError`` whose ``reason`` is one of
        ``invalid_format``, ``unsupported_platform``, ``invalid_username``
        or ``not_unique``.

        Args:
            session: Session used for the uniqueness lookup.
            url: Raw URL submitted by the user.
            exclude_tracker_id: Tracker whose ownership of the URL is ignored,
                for replace-in-place flows.
            skip_uniqueness_check: Set by callers that already ran
                :meth:`batch_check_url_uniqueness`.
        """
        if not _has_valid_structure(url):
            raise TrackerValidationError(INVALID_FORMAT_MESSAGE, reason="invalid_format")

        segments = _extract_segments(url)
        if segments is None:
            raise TrackerValidationError(INVALID_FORMAT_MESSAGE, reason="invalid_format")
        platform_token, username = segments

        platform = SUPPORTED_PLATFORMS.get(platform_token)
        if platform is None:
            raise TrackerValidationError(
                f"Unsupported platform: {platform_token}. "
                f"Supported platforms: {', '.join(SUPPORTED_PLATFORMS)}",
                reason="unsupported_platform",
            )

        if not username or len(username) > self.username_max_length:
            raise TrackerValidationError(
                "Invalid username format in tracker URL",
                reason="invalid_username",
            )

        if not skip_uniqueness_check and not self.check_url_uniqueness(
            session, url, exclude_tracker_id=exclude_tracker_id
        ):
            raise TrackerValidationError(NOT_UNIQUE_MESSAGE, reason="not_unique")

        return ParsedTrackerUrl(platform=platform, username=username)

    def check_url_uniqueness(
        self, session: Session, url: str, *, exclude_tracker_id: str | None = None
    ) -> bool:
        """Return True if no tracker other than ``exclude_tracker_id`` owns ``url``.

        Trailing-slash and letter-case variants of the same profile count as
        the same URL. Registrations are not consulted here.
        """
        tracker = TrackerRepository(session).get_by_url(url)
        return tracker is None or tracker.id == exclude_tracker_id

    def batch_check_url_uniqueness(
        self,
        session: Session,
        urls: Iterable[str],
        exclude_tracker_ids: Iterable[str] | None = None,
    ) -> dict[str, bool]:
        """Check many URLs against existing trackers with a single query.

        A URL whose only conflicting tracker is in ``exclude_tracker_ids``
        counts as unique.
        """
        url_list = list(urls)
        if not url_list:
            return {}

        owners = {
            tracker.canonical_url: tracker.id
            for tracker in TrackerRepository(session).find_by_urls(url_list)
        }
        excluded = set(exclude_tracker_ids or ())

        result: dict[str, bool] = {}
        for url in url_list:
            owner = owners.get(canonical_tracker_url(url))
            result[url] = owner is None or owner in excluded
        logger.debug(
            "Batch uniqueness check: %d urls, %d taken",
            len(url_list),
            sum(1 for unique in result.values() if not unique),
        )
        return result
