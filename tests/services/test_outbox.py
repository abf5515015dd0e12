"""Tests for the transactional outbox writer."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from league_tracker.core.errors import NotFoundError
from league_tracker.db.time import utcnow
from league_tracker.db.transaction import run_in_transaction
from league_tracker.models import OutboxEvent, OutboxStatus
from league_tracker.services.outbox import (
    TRACKER_REGISTRATION_AGGREGATE,
    TRACKER_REGISTRATION_CREATED,
    OutboxService,
)


@pytest.fixture()
def outbox() -> OutboxService:
    return OutboxService()


def _create(outbox: OutboxService, session: Session, aggregate_id: str) -> OutboxEvent:
    return run_in_transaction(
        session,
        lambda tx: outbox.create_event(
            tx,
            TRACKER_REGISTRATION_AGGREGATE,
            aggregate_id,
            TRACKER_REGISTRATION_CREATED,
            {"registrationId": aggregate_id},
        ),
    )


def test_create_event_requires_active_transaction(
    outbox: OutboxService, db_session: Session
) -> None:
    assert not db_session.in_transaction()

    with pytest.raises(RuntimeError, match="active transaction"):
        outbox.create_event(
            db_session,
            TRACKER_REGISTRATION_AGGREGATE,
            "reg-1",
            TRACKER_REGISTRATION_CREATED,
            {},
        )


def test_create_event_commits_with_transaction(
    outbox: OutboxService, db_session: Session
) -> None:
    event = _create(outbox, db_session, "reg-1")

    stored = db_session.get(OutboxEvent, event.id)
    assert stored is not None
    assert stored.status == OutboxStatus.PENDING
    assert stored.source_type == "tracker_registration"
    assert stored.event_type == TRACKER_REGISTRATION_CREATED
    assert stored.payload == {"registrationId": "reg-1"}
    assert stored.retry_count == 0


def test_rolled_back_transaction_leaves_no_event(
    outbox: OutboxService, db_session: Session
) -> None:
    def _fail(tx: Session) -> None:
        outbox.create_event(
            tx, TRACKER_REGISTRATION_AGGREGATE, "reg-1", TRACKER_REGISTRATION_CREATED, {}
        )
        raise ValueError("boom")

    with pytest.raises(ValueError):
        run_in_transaction(db_session, _fail)

    assert db_session.execute(select(OutboxEvent)).first() is None


def test_find_pending_events_oldest_first(outbox: OutboxService, db_session: Session) -> None:
    now = utcnow()
    newer = _create(outbox, db_session, "reg-newer")
    older = _create(outbox, db_session, "reg-older")
    done = _create(outbox, db_session, "reg-done")
    newer.created_at = now
    older.created_at = now - timedelta(minutes=5)
    done.status = OutboxStatus.COMPLETED
    db_session.commit()

    pending = outbox.find_pending_events(db_session)

    assert [event.source_id for event in pending] == ["reg-older", "reg-newer"]
    assert outbox.find_pending_events(db_session, limit=1)[0].source_id == "reg-older"
    assert outbox.find_pending_events(db_session, source_type="other") == []


def test_update_status(outbox: OutboxService, db_session: Session) -> None:
    event = _create(outbox, db_session, "reg-1")

    updated = outbox.update_status(db_session, event.id, OutboxStatus.COMPLETED)
    db_session.commit()

    assert updated.status == OutboxStatus.COMPLETED
    assert updated.processed_at is not None

    with pytest.raises(NotFoundError):
        outbox.update_status(db_session, "missing", OutboxStatus.FAILED)
