"""Tests for self-service tracker endpoints."""

from collections.abc import Callable

from fastapi import status
from fastapi.testclient import TestClient

from league_tracker.models import Tracker, User
from tests.conftest import trn_url


def test_register_trackers(client: TestClient, auth_token: dict[str, str], test_user: User) -> None:
    urls = [trn_url("main"), trn_url("alt", "psn")]

    response = client.post("/api/v1/trackers", json={"urls": urls}, headers=auth_token)

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert [tracker["url"] for tracker in data] == urls
    assert data[1]["platform"] == "PSN"
    assert all(tracker["user_id"] == test_user.id for tracker in data)


def test_register_too_many_trackers(client: TestClient, auth_token: dict[str, str]) -> None:
    urls = [trn_url(f"user{index}") for index in range(5)]

    response = client.post("/api/v1/trackers", json={"urls": urls}, headers=auth_token)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["reason"] == "invalid_count"


def test_add_tracker_and_list_mine(
    client: TestClient,
    auth_token: dict[str, str],
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    make_tracker(test_user, "first")

    response = client.post(
        "/api/v1/trackers/add", json={"url": trn_url("second")}, headers=auth_token
    )
    mine = client.get("/api/v1/trackers/me", headers=auth_token)

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["username"] == "second"
    assert mine.status_code == status.HTTP_200_OK
    assert {tracker["username"] for tracker in mine.json()} == {"first", "second"}


def test_add_taken_tracker_url(
    client: TestClient,
    auth_token: dict[str, str],
    admin_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    make_tracker(admin_user, "taken")

    response = client.post(
        "/api/v1/trackers/add", json={"url": trn_url("taken")}, headers=auth_token
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["reason"] == "not_unique"


def test_get_tracker(
    client: TestClient,
    auth_token: dict[str, str],
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    tracker = make_tracker(test_user)

    response = client.get(f"/api/v1/trackers/{tracker.id}", headers=auth_token)
    missing = client.get("/api/v1/trackers/missing", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["id"] == tracker.id
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_update_own_tracker(
    client: TestClient,
    auth_token: dict[str, str],
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    tracker = make_tracker(test_user)

    response = client.patch(
        f"/api/v1/trackers/{tracker.id}",
        json={"display_name": "Smurf", "is_active": False},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["display_name"] == "Smurf"
    assert data["is_active"] is False


def test_only_owner_can_modify_tracker(
    client: TestClient,
    auth_token: dict[str, str],
    admin_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    tracker = make_tracker(admin_user)

    patched = client.patch(
        f"/api/v1/trackers/{tracker.id}", json={"display_name": "Mine"}, headers=auth_token
    )
    deleted = client.delete(f"/api/v1/trackers/{tracker.id}", headers=auth_token)

    assert patched.status_code == status.HTTP_403_FORBIDDEN
    assert deleted.status_code == status.HTTP_403_FORBIDDEN


def test_delete_tracker(
    client: TestClient,
    auth_token: dict[str, str],
    test_user: User,
    make_tracker: Callable[..., Tracker],
) -> None:
    tracker = make_tracker(test_user)

    response = client.delete(f"/api/v1/trackers/{tracker.id}", headers=auth_token)

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get(f"/api/v1/trackers/{tracker.id}", headers=auth_token).status_code == (
        status.HTTP_404_NOT_FOUND
    )
