"""Tests for the processed-message ledger."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from league_tracker.core.errors import DuplicateMessageError
from league_tracker.db.time import utcnow
from league_tracker.models import ProcessedEvent
from league_tracker.services.idempotency import IdempotencyService


@pytest.fixture()
def ledger() -> IdempotencyService:
    return IdempotencyService()


def test_mark_processed_records_message(ledger: IdempotencyService, db_session: Session) -> None:
    assert not ledger.is_processed(db_session, "job-1")

    record = ledger.mark_processed(
        db_session, "job-1", "tracker_registration", "reg-1", {"messageId": "job-1"}
    )
    db_session.commit()

    assert ledger.is_processed(db_session, "job-1")
    assert record.entity_type == "tracker_registration"
    assert record.entity_id == "reg-1"
    assert record.event_metadata == {"messageId": "job-1"}


def test_duplicate_message_raises(ledger: IdempotencyService, db_session: Session) -> None:
    ledger.mark_processed(db_session, "job-7", "tracker_registration", "reg-1")
    db_session.commit()

    with pytest.raises(DuplicateMessageError) as excinfo:
        ledger.mark_processed(db_session, "job-7", "tracker_registration", "reg-1")
    db_session.rollback()

    assert excinfo.value.message_id == "job-7"
    count = db_session.execute(select(func.count(ProcessedEvent.id))).scalar_one()
    assert count == 1


def test_prune_older_than(ledger: IdempotencyService, db_session: Session) -> None:
    old = ledger.mark_processed(db_session, "job-old", "tracker_registration", "reg-1")
    old.processed_at = utcnow() - timedelta(days=30)
    ledger.mark_processed(db_session, "job-new", "tracker_registration", "reg-2")
    db_session.commit()

    deleted = ledger.prune_older_than(db_session, utcnow() - timedelta(days=7))

    assert deleted == 1
    assert not ledger.is_processed(db_session, "job-old")
    assert ledger.is_processed(db_session, "job-new")
