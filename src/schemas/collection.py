"""Pydantic schemas for collection endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import Field

from schemas.envelope import CamelModel


class CollectionCreate(CamelModel):
    """Schema for creating a collection. The name is trimmed by the service."""

    name: str = Field(..., min_length=1)


class CollectionUpdate(CamelModel):
    """
    Schema for renaming a collection.

    `id` is optional; when sent it must match the id in the path.
    """

    id: UUID | None = None
    name: str = Field(..., min_length=1)


class CollectionSummary(CamelModel):
    """Compact collection representation embedded in bookmark responses."""

    id: UUID
    name: str
    is_system: bool


class CollectionResponse(CamelModel):
    """Schema for a single collection."""

    id: UUID
    name: str
    is_system: bool
    created_at: datetime
    updated_at: datetime


class CollectionWithCountResponse(CollectionResponse):
    """Collection with the number of bookmarks linked to it."""

    bookmark_count: int


class CollectionDeleteResponse(CamelModel):
    """Result of deleting a collection."""

    reassigned_bookmarks: int
