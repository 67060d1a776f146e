"""Pydantic schemas for user operations."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    """Payload to create a new user."""

    name: str = Field(..., min_length=1, max_length=255)


class UserRead(BaseModel):
    """User representation returned by APIs."""

    id: str
    name: str
    created_at: datetime

    class Config:
        from_attributes = True
