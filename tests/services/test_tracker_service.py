"""Tests for self-service tracker management."""

from collections.abc import Callable

import pytest
from sqlalchemy.orm import Session

from league_tracker.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TrackerValidationError,
)
from league_tracker.models import (
    GamePlatform,
    RegistrationStatus,
    ScrapingStatus,
    Tracker,
    TrackerRegistration,
    User,
)
from league_tracker.services.trackers import TrackerService
from tests.conftest import trn_url


@pytest.fixture()
def service() -> TrackerService:
    return TrackerService(max_trackers_per_user=4)


def test_register_trackers_creates_all(
    service: TrackerService, db_session: Session, test_user: User
) -> None:
    urls = [trn_url("main"), trn_url("alt", "epic")]

    trackers = service.register_trackers(db_session, test_user.id, urls)

    assert [tracker.url for tracker in trackers] == urls
    assert trackers[1].platform == GamePlatform.EPIC
    assert all(tracker.user_id == test_user.id for tracker in trackers)
    assert len(service.get_trackers_by_user(db_session, test_user.id)) == 2


@pytest.mark.parametrize("count", [0, 5])
def test_register_trackers_requires_one_to_four_urls(
    service: TrackerService, db_session: Session, test_user: User, count: int
) -> None:
    urls = [trn_url(f"user{index}") for index in range(count)]

    with pytest.raises(TrackerValidationError) as excinfo:
        service.register_trackers(db_session, test_user.id, urls)

    assert excinfo.value.reason == "invalid_count"


def test_register_trackers_rejects_duplicates_in_batch(
    service: TrackerService, db_session: Session, test_user: User
) -> None:
    with pytest.raises(TrackerValidationError) as excinfo:
        service.register_trackers(db_session, test_user.id, [trn_url("a"), trn_url("a")])

    assert excinfo.value.reason == "duplicate_urls"


def test_register_trackers_requires_no_existing_trackers(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    make_tracker(test_user, "existing")

    with pytest.raises(InvalidStateError, match="already have 1 tracker"):
        service.register_trackers(db_session, test_user.id, [trn_url("new")])


def test_register_trackers_lists_taken_urls(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_user: Callable[..., User],
    make_tracker: Callable[..., Tracker],
) -> None:
    make_tracker(make_user("Owner"), "taken")

    with pytest.raises(ConflictError) as excinfo:
        service.register_trackers(db_session, test_user.id, [trn_url("free"), trn_url("taken")])

    assert excinfo.value.field == "url"
    assert trn_url("taken") in str(excinfo.value)
    assert trn_url("free") not in str(excinfo.value)
    assert service.get_trackers_by_user(db_session, test_user.id) == []


def test_register_trackers_validates_each_url(
    service: TrackerService, db_session: Session, test_user: User
) -> None:
    bad = trn_url("someone", "stadia")

    with pytest.raises(TrackerValidationError) as excinfo:
        service.register_trackers(db_session, test_user.id, [trn_url("ok"), bad])

    assert excinfo.value.reason == "unsupported_platform"
    assert service.get_trackers_by_user(db_session, test_user.id) == []


def test_add_tracker_enforces_maximum(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    for index in range(4):
        make_tracker(test_user, f"slot{index}")

    with pytest.raises(InvalidStateError, match="maximum of 4"):
        service.add_tracker(db_session, test_user.id, trn_url("fifth"))


def test_add_tracker_ignores_deleted_trackers_in_count(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    for index in range(4):
        make_tracker(test_user, f"slot{index}", is_deleted=index == 0)

    tracker = service.add_tracker(db_session, test_user.id, trn_url("fifth"))

    assert tracker.username == "fifth"


def test_add_tracker_rejects_taken_url(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_user: Callable[..., User],
    make_tracker: Callable[..., Tracker],
) -> None:
    make_tracker(make_user("Owner"), "taken")

    with pytest.raises(TrackerValidationError) as excinfo:
        service.add_tracker(db_session, test_user.id, trn_url("taken"))

    assert excinfo.value.reason == "not_unique"


def test_add_tracker_rejects_variant_of_taken_url(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_user: Callable[..., User],
    make_tracker: Callable[..., Tracker],
) -> None:
    make_tracker(make_user("Owner"), "taken")

    with pytest.raises(TrackerValidationError) as excinfo:
        service.add_tracker(db_session, test_user.id, trn_url("taken", "STEAM") + "/")

    assert excinfo.value.reason == "not_unique"


@pytest.mark.parametrize("status", [RegistrationStatus.PENDING, RegistrationStatus.PROCESSING])
def test_add_tracker_rejects_url_held_by_another_users_registration(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_user: Callable[..., User],
    make_registration: Callable[..., TrackerRegistration],
    status: RegistrationStatus,
) -> None:
    make_registration(make_user("Owner"), "queued", status=status)

    with pytest.raises(TrackerValidationError) as excinfo:
        service.add_tracker(db_session, test_user.id, trn_url("queued") + "/")

    assert excinfo.value.reason == "not_unique"
    assert service.get_trackers_by_user(db_session, test_user.id) == []


def test_add_tracker_allows_url_of_rejected_or_own_registration(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_user: Callable[..., User],
    make_registration: Callable[..., TrackerRegistration],
) -> None:
    make_registration(make_user("Owner"), "released", status=RegistrationStatus.REJECTED)
    make_registration(test_user, "mine")

    released = service.add_tracker(db_session, test_user.id, trn_url("released"))
    mine = service.add_tracker(db_session, test_user.id, trn_url("mine"))

    assert (released.username, mine.username) == ("released", "mine")


def test_register_trackers_lists_urls_held_by_registrations(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_user: Callable[..., User],
    make_registration: Callable[..., TrackerRegistration],
) -> None:
    make_registration(make_user("Owner"), "queued")

    with pytest.raises(ConflictError) as excinfo:
        service.register_trackers(db_session, test_user.id, [trn_url("free"), trn_url("queued")])

    assert excinfo.value.field == "url"
    assert trn_url("queued") in str(excinfo.value)
    assert service.get_trackers_by_user(db_session, test_user.id) == []


def test_register_trackers_treats_variants_as_duplicates(
    service: TrackerService, db_session: Session, test_user: User
) -> None:
    with pytest.raises(TrackerValidationError) as excinfo:
        service.register_trackers(
            db_session, test_user.id, [trn_url("twin"), trn_url("twin", "STEAM") + "/"]
        )

    assert excinfo.value.reason == "duplicate_urls"


def test_get_tracker_hides_deleted(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    tracker = make_tracker(test_user)
    assert service.get_tracker(db_session, tracker.id).id == tracker.id

    service.delete_tracker(db_session, tracker.id)

    with pytest.raises(NotFoundError):
        service.get_tracker(db_session, tracker.id)
    assert service.get_trackers_by_user(db_session, test_user.id) == []
    assert db_session.get(Tracker, tracker.id).is_active is False


def test_update_tracker(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    tracker = make_tracker(test_user)

    updated = service.update_tracker(db_session, tracker.id, display_name="Main", is_active=False)

    assert updated.display_name == "Main"
    assert updated.is_active is False

    unchanged = service.update_tracker(db_session, tracker.id)
    assert unchanged.display_name == "Main"


def test_update_scraping_status(
    service: TrackerService,
    db_session: Session,
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    tracker = make_tracker(test_user)

    service.update_scraping_status(db_session, tracker.id, ScrapingStatus.IN_PROGRESS)
    failed = service.update_scraping_status(
        db_session, tracker.id, ScrapingStatus.FAILED, error="rate limited"
    )
    assert failed.scraping_attempts == 1
    assert failed.scraping_error == "rate limited"

    completed = service.update_scraping_status(db_session, tracker.id, ScrapingStatus.COMPLETED)
    assert completed.scraping_status == ScrapingStatus.COMPLETED
    assert completed.scraping_error is None
    assert completed.last_scraped_at is not None

    with pytest.raises(NotFoundError):
        service.update_scraping_status(db_session, "missing", ScrapingStatus.COMPLETED)
