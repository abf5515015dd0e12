# src/league_tracker/api/v1/endpoints/registrations.py
"""Tracker registration endpoints: submission and the admin approval queue."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from league_tracker.api.v1.dependencies import (
    CurrentUserDep,
    RegistrationServiceDep,
    SessionDep,
)
from league_tracker.models import TrackerRegistration
from league_tracker.schemas.common import ErrorResponse
from league_tracker.schemas.registration import (
    ProcessRegistrationRequest,
    QueueStatsResponse,
    RegisterTrackerRequest,
    RegisterTrackerResponse,
    RegistrationResponse,
    RejectRegistrationRequest,
)
from league_tracker.schemas.tracker import TrackerResponse

router = APIRouter(
    prefix="/trackers",
    tags=["tracker-registrations"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)


@router.post(
    "/register",
    response_model=RegisterTrackerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_tracker(
    body: RegisterTrackerRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    service: RegistrationServiceDep,
) -> dict[str, object]:
    """Submit a tracker URL for admin approval in a guild."""
    return service.register_tracker(db, current_user.id, body.guild_id, body.url)


@router.get("/queue/{guild_id}/next", response_model=RegistrationResponse)
async def get_next_registration(
    guild_id: str,
    _current_user: CurrentUserDep,
    db: SessionDep,
    service: RegistrationServiceDep,
) -> TrackerRegistration:
    """Return the oldest pending registration for a guild."""
    registration = service.get_next_registration(db, guild_id)
    if registration is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pending registrations",
        )
    return registration


@router.get("/queue/{guild_id}/user/{username}", response_model=RegistrationResponse)
async def get_registration_by_user(
    guild_id: str,
    username: str,
    _current_user: CurrentUserDep,
    db: SessionDep,
    service: RegistrationServiceDep,
) -> TrackerRegistration:
    """Return the pending registration of a user, matched by Discord username."""
    registration = service.get_registration_by_user(db, guild_id, username)
    if registration is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pending registration for {username}",
        )
    return registration


@router.get("/queue/{guild_id}/stats", response_model=QueueStatsResponse)
async def get_queue_stats(
    guild_id: str,
    _current_user: CurrentUserDep,
    db: SessionDep,
    service: RegistrationServiceDep,
) -> dict[str, int]:
    return service.get_queue_stats(db, guild_id)


@router.get("/registrations/{registration_id}", response_model=RegistrationResponse)
async def get_registration(
    registration_id: str,
    _current_user: CurrentUserDep,
    db: SessionDep,
    service: RegistrationServiceDep,
) -> TrackerRegistration:
    return service.get_registration_by_id(db, registration_id)


@router.post("/registrations/{registration_id}/process")
async def process_registration(
    registration_id: str,
    body: ProcessRegistrationRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    service: RegistrationServiceDep,
) -> dict[str, object]:
    """Approve a registration, creating its tracker."""
    tracker, registration = service.process_registration(
        db, registration_id, body.display_name, current_user.id
    )
    return {
        "tracker": TrackerResponse.model_validate(tracker),
        "registration": RegistrationResponse.model_validate(registration),
    }


@router.post(
    "/registrations/{registration_id}/reject",
    response_model=RegistrationResponse,
)
async def reject_registration(
    registration_id: str,
    body: RejectRegistrationRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    service: RegistrationServiceDep,
) -> TrackerRegistration:
    """Reject a registration with an optional reason."""
    return service.reject_registration(db, registration_id, body.reason, current_user.id)
