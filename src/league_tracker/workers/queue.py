"""Asyncio job queue with at-least-once delivery.

Jobs are handed to registered handlers by a pool of consumer tasks. A
handler that raises is retried with exponential backoff under the same job
id, so handlers that key their idempotency on the job id see the same key
on every attempt. Jobs that exhaust their attempts move to a dead-letter
list from which they can be retried by hand.

Job ids are random unless the caller supplies one. Listeners added with
``add_listener`` are awaited whenever a job reaches COMPLETED or FAILED.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from league_tracker.core.settings import settings

logger = logging.getLogger(__name__)

TRACKER_REGISTRATION_JOB = "tracker.registration"


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    """A unit of work delivered to a handler."""

    id: str
    job_type: str
    payload: dict[str, Any]
    dedupe_key: str | None = None
    max_attempts: int = 3
    attempts_made: int = 0
    state: JobState = JobState.WAITING
    failed_reason: str | None = None
    result: Any = None
    history: list[str] = field(default_factory=list)


JobHandler = Callable[[Job], Awaitable[Any]]
JobListener = Callable[[Job], Awaitable[None]]


class JobQueue(Protocol):
    """Enqueue side of a job queue."""

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        *,
        dedupe_key: str | None = None,
        job_id: str | None = None,
    ) -> str: ...


class InMemoryJobQueue:
    """Process-local job queue consumed by asyncio tasks."""

    def __init__(
        self,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        max_backoff_seconds: float | None = None,
    ) -> None:
        self.max_attempts = max_attempts or settings.queue_max_attempts
        self.backoff_seconds = (
            settings.queue_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self.max_backoff_seconds = (
            settings.queue_max_backoff_seconds
            if max_backoff_seconds is None
            else max_backoff_seconds
        )
        self._jobs: dict[str, Job] = {}
        self._dedupe: dict[str, str] = {}
        self._handlers: dict[str, JobHandler] = {}
        self._pending: asyncio.Queue[str] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._delayed: set[asyncio.Task[None]] = set()
        self._stopping = asyncio.Event()
        self._listeners: list[JobListener] = []

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[job_type] = handler

    def add_listener(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        *,
        dedupe_key: str | None = None,
        job_id: str | None = None,
    ) -> str:
        """Add a job and return its id.

        While a job with the same ``dedupe_key`` or ``job_id`` exists and has
        not been dead-lettered, its id is returned and nothing new is queued.
        A dead-lettered job is replaced by the new one.
        """
        existing_id = job_id if job_id in self._jobs else None
        if existing_id is None and dedupe_key is not None:
            existing_id = self._dedupe.get(dedupe_key)
        if existing_id is not None and self._jobs[existing_id].state != JobState.FAILED:
            logger.debug("Job %s already queued", existing_id)
            return existing_id

        job = Job(
            id=job_id or uuid.uuid4().hex,
            job_type=job_type,
            payload=dict(payload),
            dedupe_key=dedupe_key,
            max_attempts=self.max_attempts,
        )
        self._jobs[job.id] = job
        if dedupe_key is not None:
            self._dedupe[dedupe_key] = job.id
        self._pending.put_nowait(job.id)
        logger.debug("Enqueued %s job %s", job_type, job.id)
        return job.id

    async def start(self, concurrency: int | None = None) -> None:
        """Spawn consumer tasks."""
        if self._workers:
            return
        self._stopping.clear()
        count = max(1, concurrency or settings.queue_concurrency)
        self._workers = [
            asyncio.create_task(self._consume(index), name=f"job-consumer-{index}")
            for index in range(count)
        ]
        logger.info("Job queue started with %d consumer(s)", count)

    async def stop(self) -> None:
        """Stop consumers and drop scheduled retries."""
        self._stopping.set()
        for task in self._delayed:
            task.cancel()
        await asyncio.gather(*self._workers, *self._delayed, return_exceptions=True)
        self._workers = []
        self._delayed.clear()

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._stopping.is_set()

    async def _consume(self, index: int) -> None:
        while not self._stopping.is_set():
            try:
                job_id = await asyncio.wait_for(self._pending.get(), timeout=0.5)
            except TimeoutError:
                continue
            await self.process_job(job_id)

    async def run_pending(self) -> int:
        """Process every job currently waiting, in this task; returns how many ran."""
        processed = 0
        while not self._pending.empty():
            await self.process_job(self._pending.get_nowait())
            processed += 1
        return processed

    async def process_job(self, job_id: str) -> None:
        """Deliver one job to its handler and record the outcome."""
        job = self._jobs[job_id]
        handler = self._handlers.get(job.job_type)
        if handler is None:
            job.state = JobState.FAILED
            job.failed_reason = f"No handler registered for {job.job_type}"
            logger.error("Job %s failed: %s", job.id, job.failed_reason)
            await self._notify_settled(job)
            return

        job.state = JobState.ACTIVE
        job.attempts_made += 1
        try:
            job.result = await handler(job)
        except Exception as exc:
            job.failed_reason = str(exc) or exc.__class__.__name__
            job.history.append(job.failed_reason)
            if job.attempts_made >= job.max_attempts:
                job.state = JobState.FAILED
                logger.error(
                    "Job %s failed after %d attempt(s): %s",
                    job.id,
                    job.attempts_made,
                    job.failed_reason,
                )
                await self._notify_settled(job)
                return
            delay = self.backoff_for(job.attempts_made)
            job.state = JobState.DELAYED
            logger.warning(
                "Job %s attempt %d failed (%s), retrying in %.1fs",
                job.id,
                job.attempts_made,
                job.failed_reason,
                delay,
            )
            self._schedule(job.id, delay)
            return

        job.state = JobState.COMPLETED
        logger.debug("Job %s completed", job.id)
        await self._notify_settled(job)

    async def _notify_settled(self, job: Job) -> None:
        for listener in self._listeners:
            try:
                await listener(job)
            except Exception:
                logger.exception("Listener failed for job %s (%s)", job.id, job.state.value)

    def backoff_for(self, attempt: int) -> float:
        """Exponential delay before retry number ``attempt``."""
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)

    def _schedule(self, job_id: str, delay: float) -> None:
        async def _requeue() -> None:
            await asyncio.sleep(delay)
            self._jobs[job_id].state = JobState.WAITING
            self._pending.put_nowait(job_id)

        task = asyncio.create_task(_requeue())
        self._delayed.add(task)
        task.add_done_callback(self._delayed.discard)

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def get_failed(self) -> list[Job]:
        """Return dead-lettered jobs."""
        return [job for job in self._jobs.values() if job.state == JobState.FAILED]

    async def retry(self, job_id: str) -> Job:
        """Requeue a dead-lettered job with a fresh attempt budget.

        Raises:
            KeyError: Unknown job id.
            ValueError: The job is not in the failed state.
        """
        job = self._jobs[job_id]
        if job.state != JobState.FAILED:
            raise ValueError(f"Job {job_id} is {job.state.value}, not failed")
        job.state = JobState.WAITING
        job.attempts_made = 0
        job.failed_reason = None
        self._pending.put_nowait(job.id)
        logger.info("Retrying dead-lettered job %s", job.id)
        return job
