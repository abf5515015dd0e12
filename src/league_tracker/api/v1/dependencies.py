"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from league_tracker.core.security import decode_access_token
from league_tracker.db.session import get_db
from league_tracker.models import User
from league_tracker.services import TrackerRegistrationService, TrackerService
from league_tracker.workers.queue import InMemoryJobQueue

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]

_registration_service = TrackerRegistrationService()
_tracker_service = TrackerService()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from JWT token.

    Raises:
        HTTPException: If token is invalid, the user is unknown or banned.
    """
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = db.get(User, str(payload["sub"]))
    if user is None or user.is_deleted:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if user.is_banned:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is banned",
        )
    return user


def get_registration_service() -> TrackerRegistrationService:
    return _registration_service


def get_tracker_service() -> TrackerService:
    return _tracker_service


def get_job_queue(request: Request) -> InMemoryJobQueue:
    """Return the app's job queue, or 503 if the workers were not built."""
    runtime = getattr(request.app.state, "worker_runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job queue is not available",
        )
    queue: InMemoryJobQueue = runtime.queue
    return queue


# Type aliases for dependencies
CurrentUserDep = Annotated[User, Depends(get_current_user)]
RegistrationServiceDep = Annotated[TrackerRegistrationService, Depends(get_registration_service)]
TrackerServiceDep = Annotated[TrackerService, Depends(get_tracker_service)]
JobQueueDep = Annotated[InMemoryJobQueue, Depends(get_job_queue)]
