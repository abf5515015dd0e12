"""Tests for dead-letter queue administration endpoints."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, status
from fastapi.testclient import TestClient

from league_tracker.workers.queue import TRACKER_REGISTRATION_JOB, InMemoryJobQueue, Job, JobState


@pytest.fixture()
def failed_job() -> Job:
    return Job(
        id="12",
        job_type=TRACKER_REGISTRATION_JOB,
        payload={"registrationId": "reg-1"},
        attempts_made=3,
        state=JobState.FAILED,
        failed_reason="discord down",
    )


@pytest.fixture()
def mock_queue(
    client: TestClient, app: FastAPI, failed_job: Job, monkeypatch: pytest.MonkeyPatch
) -> MagicMock:
    queue = MagicMock(spec=InMemoryJobQueue)
    queue.get_failed.return_value = [failed_job]
    queue.retry = AsyncMock()
    monkeypatch.setattr(app.state, "worker_runtime", SimpleNamespace(queue=queue, running=False))
    return queue


def test_list_failed_jobs(
    client: TestClient, auth_token: dict[str, str], mock_queue: MagicMock
) -> None:
    response = client.get("/api/v1/admin/queue/failed", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == [
        {
            "id": "12",
            "job_type": TRACKER_REGISTRATION_JOB,
            "state": "failed",
            "attempts_made": 3,
            "max_attempts": 3,
            "failed_reason": "discord down",
            "payload": {"registrationId": "reg-1"},
        }
    ]


def test_retry_failed_job(
    client: TestClient, auth_token: dict[str, str], mock_queue: MagicMock, failed_job: Job
) -> None:
    failed_job.state = JobState.WAITING
    failed_job.attempts_made = 0
    mock_queue.retry.return_value = failed_job

    response = client.post("/api/v1/admin/queue/retry/12", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["state"] == "waiting"
    mock_queue.retry.assert_awaited_once_with("12")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (KeyError("99"), status.HTTP_404_NOT_FOUND),
        (ValueError("Job 12 is not failed"), status.HTTP_409_CONFLICT),
    ],
)
def test_retry_errors(
    client: TestClient,
    auth_token: dict[str, str],
    mock_queue: MagicMock,
    error: Exception,
    expected: int,
) -> None:
    mock_queue.retry.side_effect = error

    response = client.post("/api/v1/admin/queue/retry/99", headers=auth_token)

    assert response.status_code == expected


def test_queue_unavailable_without_runtime(
    client: TestClient, app: FastAPI, auth_token: dict[str, str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(app.state, "worker_runtime", None)

    response = client.get("/api/v1/admin/queue/failed", headers=auth_token)

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
