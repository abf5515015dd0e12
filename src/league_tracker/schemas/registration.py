# src/league_tracker/schemas/registration.py
"""Tracker registration Pydantic schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from league_tracker.models import Game, GamePlatform, RegistrationStatus


class RegisterTrackerRequest(BaseModel):
    """Schema for submitting a tracker URL for admin approval."""

    guild_id: str = Field(..., min_length=1, max_length=32)
    url: str = Field(..., min_length=1, max_length=500)


class RegisterTrackerResponse(BaseModel):
    registration_id: str
    status: RegistrationStatus
    message: str


class RegistrationResponse(BaseModel):
    """Registration details returned by the queue endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    guild_id: str
    url: str
    game: Game
    platform: GamePlatform | None
    username: str | None
    status: RegistrationStatus
    processed_by: str | None
    processed_at: datetime | None
    rejection_reason: str | None
    tracker_id: str | None
    notification_sent_at: datetime | None
    notification_attempts: int
    created_at: datetime


class ProcessRegistrationRequest(BaseModel):
    display_name: str | None = Field(default=None, max_length=100)


class RejectRegistrationRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class QueueStatsResponse(BaseModel):
    """Registration counts per status for one guild."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    rejected: int = 0
    failed: int = 0
