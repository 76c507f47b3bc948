"""Pydantic schemas for bookmark endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import Field

from schemas.collection import CollectionSummary
from schemas.envelope import CamelModel
from schemas.tag import TagSummary

TITLE_MAX_LENGTH = 500


class BookmarkCreate(CamelModel):
    """
    Schema for creating a bookmark.

    Only the URL is supplied; title, description, and image come from the page
    metadata, and tags/collections are seeded from the user's latest bookmark.
    """

    url: str


class TagRef(CamelModel):
    """
    Reference to a tag in a bookmark update.

    `id` is used when it names one of the caller's tags; otherwise the tag is
    looked up (or created) by `name`.
    """

    id: str | None = None
    name: str


class CollectionRef(CamelModel):
    """Reference to one of the caller's collections. Unknown ids are ignored."""

    id: str


class BookmarkUpdate(CamelModel):
    """
    Schema for updating a bookmark.

    Omitted or null fields keep their current value. `tags` and `collections`
    replace the whole association set when present; an empty list clears it.
    """

    title: str | None = Field(default=None, max_length=TITLE_MAX_LENGTH)
    description: str | None = None
    image_url: str | None = None
    tags: list[TagRef] | None = None
    collections: list[CollectionRef] | None = None


class BookmarkResponse(CamelModel):
    """Schema for a bookmark with its tags and collections."""

    id: UUID
    url: str
    title: str | None
    description: str | None
    image_url: str | None
    created_at: datetime
    updated_at: datetime
    tags: list[TagSummary]
    collections: list[CollectionSummary]


class BookmarkCountResponse(CamelModel):
    """Number of bookmarks owned by the caller."""

    count: int
