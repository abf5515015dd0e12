"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body returned for domain errors."""

    detail: str
    code: str = Field(..., description="Machine readable error category.")
    field: str | None = None
    reason: str | None = None


class MessageResponse(BaseModel):
    """Simple acknowledgement payload."""

    message: str
