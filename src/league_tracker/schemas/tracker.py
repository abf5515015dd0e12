# src/league_tracker/schemas/tracker.py
"""Tracker Pydantic schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from league_tracker.models import Game, GamePlatform, ScrapingStatus


class RegisterTrackersRequest(BaseModel):
    """Initial self-service registration of one or more tracker URLs."""

    urls: list[str] = Field(..., description="Between one and four tracker URLs.")


class AddTrackerRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=500)


class TrackerUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None


class TrackerResponse(BaseModel):
    """Schema for tracker information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    game: Game
    platform: GamePlatform
    username: str
    user_id: str
    display_name: str | None
    is_active: bool
    scraping_status: ScrapingStatus
    scraping_attempts: int
    last_scraped_at: datetime | None
    created_at: datetime
