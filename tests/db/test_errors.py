"""Tests for unique-violation parsing across database backends."""

import pytest
from sqlalchemy.exc import IntegrityError

from league_tracker.db.errors import is_unique_violation, unique_violation_field


class FakeDriverError(Exception):
    def __init__(self, message: str, pgcode: str | None = None) -> None:
        super().__init__(message)
        self.pgcode = pgcode


def _integrity_error(message: str, pgcode: str | None = None) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, FakeDriverError(message, pgcode))


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("UNIQUE constraint failed: tracker_registrations.url", "url"),
        ("UNIQUE constraint failed: trackers.url, trackers.user_id", "url"),
        ("UNIQUE constraint failed: trackers.canonical_url", "url"),
        (
            'duplicate key value violates unique constraint "trackers_url_key"\n'
            "DETAIL:  Key (url)=(https://example.com) already exists.",
            "url",
        ),
        (
            'duplicate key value violates unique constraint "uq_tracker_registrations_active_url"',
            "url",
        ),
        (
            'duplicate key value violates unique constraint "uq_trackers_canonical_url"\n'
            "DETAIL:  Key (canonical_url)=(https://example.com) already exists.",
            "url",
        ),
        (
            'duplicate key value violates unique constraint "uq_processed_events_event_key"',
            "event_key",
        ),
    ],
)
def test_unique_violation_field(message: str, expected: str) -> None:
    assert unique_violation_field(_integrity_error(message)) == expected


def test_pgcode_marks_unique_violation() -> None:
    exc = _integrity_error("constraint violated", pgcode="23505")

    assert is_unique_violation(exc)
    assert unique_violation_field(exc) is None


def test_other_integrity_errors_are_not_unique_violations() -> None:
    exc = _integrity_error("NOT NULL constraint failed: trackers.url")

    assert not is_unique_violation(exc)
    assert unique_violation_field(exc) is None
