"""Background delivery of committed outbox events.

The dispatcher polls the outbox for PENDING rows, hands each one to the
handler registered for its event type and records the outcome. Delivery is
at-least-once: an event whose handler fails goes back to PENDING until it
has failed ``max_retries`` times, and events left PROCESSING by a crashed
process are released again on start-up.

Events handed to the job queue stay PROCESSING until their job settles; the
job id is the event id, so a re-dispatched event reaches the processor under
the same idempotency key.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from league_tracker.core.settings import settings
from league_tracker.db.session import SessionLocal
from league_tracker.models import OutboxEvent, OutboxStatus
from league_tracker.services.outbox import TRACKER_REGISTRATION_CREATED, OutboxService
from league_tracker.workers.queue import TRACKER_REGISTRATION_JOB, Job, JobQueue, JobState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboxEnvelope:
    """Detached copy of an outbox row handed to event handlers."""

    id: str
    source_type: str
    source_id: str
    event_type: str
    payload: dict[str, Any]


EventHandler = Callable[[OutboxEnvelope], Awaitable[None]]


class OutboxDispatcher:
    """Periodically drains the outbox into the job queue."""

    def __init__(
        self,
        queue: JobQueue,
        session_factory: sessionmaker[Session] | None = None,
        outbox: OutboxService | None = None,
        *,
        batch_size: int | None = None,
        max_retries: int | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self.queue = queue
        self.session_factory = session_factory or SessionLocal
        self.outbox = outbox or OutboxService()
        self.batch_size = batch_size or settings.outbox_batch_size
        self.max_retries = max_retries or settings.outbox_max_retries
        self.poll_interval = (
            settings.outbox_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self._handlers: dict[str, EventHandler] = {}
        self._settled_by_queue: set[str] = set()
        self.register_handler(
            TRACKER_REGISTRATION_CREATED, self._enqueue_registration_job, settled_by_queue=True
        )
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._processing = False

    def register_handler(
        self, event_type: str, handler: EventHandler, *, settled_by_queue: bool = False
    ) -> None:
        """Route ``event_type`` to ``handler``.

        With ``settled_by_queue`` the handler must enqueue a job whose id is the
        event id; the event is completed by :meth:`on_job_settled` rather than
        when the handler returns.
        """
        self._handlers[event_type] = handler
        if settled_by_queue:
            self._settled_by_queue.add(event_type)
        else:
            self._settled_by_queue.discard(event_type)

    async def start(self) -> None:
        """Start the background polling loop."""

        if self._task is None or self._task.done():
            await asyncio.to_thread(self.release_in_flight)
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background polling loop."""

        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        interval = max(0.1, float(self.poll_interval))

        while not self._stopping.is_set():
            try:
                await self.process_pending_events()
            except (OSError, ConnectionError, TimeoutError) as e:
                logger.warning("OutboxDispatcher encountered database error: %s", e)
                await asyncio.sleep(min(interval * 4, 30.0))
                continue
            except Exception as e:
                logger.error("OutboxDispatcher encountered error: %s", e, exc_info=True)
                await asyncio.sleep(min(interval * 4, 30.0))
                continue

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                pass

    async def process_pending_events(self) -> int:
        """Dispatch one batch of pending events; returns how many were claimed."""
        if self._processing:
            logger.debug("Outbox batch already in progress, skipping")
            return 0

        self._processing = True
        try:
            envelopes = await asyncio.to_thread(self._claim_batch)
            logger.debug("Found %d pending outbox events", len(envelopes))
            for envelope in envelopes:
                await self._dispatch(envelope)
            return len(envelopes)
        finally:
            self._processing = False

    async def _dispatch(self, envelope: OutboxEnvelope) -> None:
        handler = self._handlers.get(envelope.event_type)
        if handler is None:
            logger.warning(
                "No handler for outbox event type %s (%s), marking completed",
                envelope.event_type,
                envelope.id,
            )
            await asyncio.to_thread(self._complete, envelope.id)
            return

        try:
            await handler(envelope)
        except Exception as exc:
            logger.warning(
                "Outbox event %s (%s) failed: %s", envelope.id, envelope.event_type, exc
            )
            await asyncio.to_thread(self._record_failure, envelope.id, str(exc))
            return

        if envelope.event_type in self._settled_by_queue:
            logger.debug("Outbox event %s handed to the job queue", envelope.id)
            return
        await asyncio.to_thread(self._complete, envelope.id)

    async def on_job_settled(self, job: Job) -> None:
        """Queue listener completing or failing the event a job was created for."""
        if job.state == JobState.COMPLETED:
            await asyncio.to_thread(self._settle, job.id, OutboxStatus.COMPLETED, None)
        elif job.state == JobState.FAILED:
            await asyncio.to_thread(self._settle, job.id, OutboxStatus.FAILED, job.failed_reason)

    async def _enqueue_registration_job(self, envelope: OutboxEnvelope) -> None:
        job_id = await self.queue.enqueue(
            TRACKER_REGISTRATION_JOB,
            envelope.payload,
            dedupe_key=envelope.source_id,
            job_id=envelope.id,
        )
        logger.info(
            "Queued registration %s as job %s", envelope.source_id, job_id
        )

    def _claim_batch(self) -> list[OutboxEnvelope]:
        with self.session_factory() as db:
            events = self.outbox.find_pending_events(db, limit=self.batch_size)
            envelopes = [
                OutboxEnvelope(
                    id=event.id,
                    source_type=event.source_type,
                    source_id=event.source_id,
                    event_type=event.event_type,
                    payload=dict(event.payload),
                )
                for event in events
            ]
            for event in events:
                event.status = OutboxStatus.PROCESSING
            db.commit()
            return envelopes

    def _complete(self, event_id: str) -> None:
        with self.session_factory() as db:
            self.outbox.update_status(db, event_id, OutboxStatus.COMPLETED)
            db.commit()

    def _settle(self, event_id: str, status: OutboxStatus, error_message: str | None) -> None:
        with self.session_factory() as db:
            event = db.get(OutboxEvent, event_id)
            if event is None or event.status == OutboxStatus.COMPLETED:
                return
            self.outbox.update_status(db, event_id, status, error_message)
            db.commit()
        logger.info("Outbox event %s settled as %s", event_id, status.value)

    def _record_failure(self, event_id: str, error_message: str) -> None:
        with self.session_factory() as db:
            event = db.get(OutboxEvent, event_id)
            if event is None:
                return
            event.retry_count += 1
            event.error_message = error_message
            if event.retry_count >= self.max_retries:
                event.status = OutboxStatus.FAILED
                logger.error(
                    "Outbox event %s failed permanently after %d attempts",
                    event_id,
                    event.retry_count,
                )
            else:
                event.status = OutboxStatus.PENDING
            db.commit()

    def release_in_flight(self) -> int:
        """Return PROCESSING events to PENDING; run before any job of this process exists."""
        with self.session_factory() as db:
            result = db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.status == OutboxStatus.PROCESSING)
                .values(status=OutboxStatus.PENDING)
            )
            db.commit()
            if result.rowcount:
                logger.info("Released %d in-flight outbox events", result.rowcount)
            return result.rowcount
