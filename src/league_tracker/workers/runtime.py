"""Wiring of the queue, processor and outbox dispatcher for the app process."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from league_tracker.core.settings import settings
from league_tracker.db.session import SessionLocal
from league_tracker.services.notifications import TrackerNotificationService
from league_tracker.workers.outbox_dispatcher import OutboxDispatcher
from league_tracker.workers.queue import TRACKER_REGISTRATION_JOB, InMemoryJobQueue
from league_tracker.workers.registration_processor import TrackerRegistrationProcessor

logger = logging.getLogger(__name__)


@dataclass
class WorkerRuntime:
    queue: InMemoryJobQueue
    dispatcher: OutboxDispatcher
    processor: TrackerRegistrationProcessor
    notifications: TrackerNotificationService

    async def start(self) -> None:
        await self.queue.start(settings.queue_concurrency)
        await self.dispatcher.start()
        logger.info("Background workers started")

    async def stop(self) -> None:
        await self.dispatcher.stop()
        await self.queue.stop()
        await self.notifications.close()
        logger.info("Background workers stopped")

    @property
    def running(self) -> bool:
        return self.queue.running and self.dispatcher.running


def build_worker_runtime(
    session_factory: sessionmaker[Session] | None = None,
    notifications: TrackerNotificationService | None = None,
) -> WorkerRuntime:
    """Assemble the background pipeline; nothing runs until ``start``."""
    factory = session_factory or SessionLocal
    notifications = notifications or TrackerNotificationService()
    queue = InMemoryJobQueue()
    processor = TrackerRegistrationProcessor(notifications, session_factory=factory)
    queue.register_handler(TRACKER_REGISTRATION_JOB, processor.handle)
    dispatcher = OutboxDispatcher(queue, session_factory=factory)
    queue.add_listener(dispatcher.on_job_settled)
    return WorkerRuntime(
        queue=queue,
        dispatcher=dispatcher,
        processor=processor,
        notifications=notifications,
    )
