"""Background workers: job queue, registration processor and outbox dispatcher."""

from .queue import InMemoryJobQueue, Job, JobQueue, JobState

__all__ = ["InMemoryJobQueue", "Job", "JobQueue", "JobState"]
