# src/league_tracker/api/v1/endpoints/trackers.py
"""Self-service tracker endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from league_tracker.api.v1.dependencies import CurrentUserDep, SessionDep, TrackerServiceDep
from league_tracker.models import Tracker, User
from league_tracker.schemas.common import ErrorResponse
from league_tracker.schemas.tracker import (
    AddTrackerRequest,
    RegisterTrackersRequest,
    TrackerResponse,
    TrackerUpdate,
)

router = APIRouter(
    prefix="/trackers",
    tags=["trackers"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)


def _ensure_owner(tracker: Tracker, user: User) -> None:
    if tracker.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not own this tracker",
        )


@router.post("", response_model=list[TrackerResponse], status_code=status.HTTP_201_CREATED)
async def register_trackers(
    body: RegisterTrackersRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    service: TrackerServiceDep,
) -> list[Tracker]:
    """Register a user's first set of trackers (one to four URLs)."""
    return service.register_trackers(db, current_user.id, body.urls)


@router.post("/add", response_model=TrackerResponse, status_code=status.HTTP_201_CREATED)
async def add_tracker(
    body: AddTrackerRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    service: TrackerServiceDep,
) -> Tracker:
    return service.add_tracker(db, current_user.id, body.url)


@router.get("/me", response_model=list[TrackerResponse])
async def list_my_trackers(
    current_user: CurrentUserDep,
    db: SessionDep,
    service: TrackerServiceDep,
) -> list[Tracker]:
    return service.get_trackers_by_user(db, current_user.id)


@router.get("/{tracker_id}", response_model=TrackerResponse)
async def get_tracker(
    tracker_id: str,
    _current_user: CurrentUserDep,
    db: SessionDep,
    service: TrackerServiceDep,
) -> Tracker:
    return service.get_tracker(db, tracker_id)


@router.patch("/{tracker_id}", response_model=TrackerResponse)
async def update_tracker(
    tracker_id: str,
    body: TrackerUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
    service: TrackerServiceDep,
) -> Tracker:
    """Update display name or active flag of one of the caller's trackers."""
    _ensure_owner(service.get_tracker(db, tracker_id), current_user)
    return service.update_tracker(
        db, tracker_id, display_name=body.display_name, is_active=body.is_active
    )


@router.delete("/{tracker_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tracker(
    tracker_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    service: TrackerServiceDep,
) -> None:
    _ensure_owner(service.get_tracker(db, tracker_id), current_user)
    service.delete_tracker(db, tracker_id)
