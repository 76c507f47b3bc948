"""Pydantic schemas for tag endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import Field

from schemas.envelope import CamelModel


class TagCreate(CamelModel):
    """Schema for creating a tag. The name is normalized by the service."""

    name: str = Field(..., min_length=1)


class TagUpdate(CamelModel):
    """Schema for renaming a tag."""

    name: str = Field(..., min_length=1)


class TagSummary(CamelModel):
    """Compact tag representation embedded in bookmark responses."""

    id: UUID
    name: str


class TagResponse(CamelModel):
    """Schema for a single tag."""

    id: UUID
    name: str
    created_at: datetime
    updated_at: datetime


class TagWithCountResponse(TagResponse):
    """Tag with the number of bookmarks linked to it."""

    bookmark_count: int


class TaggedBookmark(CamelModel):
    """A bookmark linked to a tag."""

    id: UUID
    title: str | None


class TagDetailResponse(TagResponse):
    """Tag with the bookmarks linked to it."""

    bookmarks: list[TaggedBookmark]


class TagDeleteResponse(CamelModel):
    """Result of deleting a tag."""

    detached_bookmarks: int
