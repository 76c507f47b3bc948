"""Pydantic schemas for the user profile endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import Field

from schemas.envelope import CamelModel


class UserResponse(CamelModel):
    """Public representation of a user."""

    id: UUID
    email: str
    name: str | None
    created_at: datetime


class UserUpdate(CamelModel):
    """Schema for updating the profile. A null name clears it."""

    name: str | None = Field(default=None, max_length=100)
