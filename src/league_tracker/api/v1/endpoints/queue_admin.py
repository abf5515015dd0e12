# src/league_tracker/api/v1/endpoints/queue_admin.py
"""Inspection and manual retry of dead-lettered queue jobs."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, status

from league_tracker.api.v1.dependencies import CurrentUserDep, JobQueueDep
from league_tracker.workers.queue import Job

router = APIRouter(prefix="/admin/queue", tags=["queue"])


def _serialize(job: Job) -> dict[str, Any]:
    return {
        "id": job.id,
        "job_type": job.job_type,
        "state": job.state.value,
        "attempts_made": job.attempts_made,
        "max_attempts": job.max_attempts,
        "failed_reason": job.failed_reason,
        "payload": job.payload,
    }


@router.get("/failed")
async def list_failed_jobs(
    _current_user: CurrentUserDep,
    queue: JobQueueDep,
) -> list[dict[str, Any]]:
    """List jobs that exhausted their retry attempts."""
    return [_serialize(job) for job in queue.get_failed()]


@router.post("/retry/{job_id}")
async def retry_job(
    job_id: str,
    _current_user: CurrentUserDep,
    queue: JobQueueDep,
) -> dict[str, Any]:
    """Requeue a failed job."""
    try:
        job = await queue.retry(job_id)
    except KeyError as err:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        ) from err
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(err),
        ) from err
    return _serialize(job)
