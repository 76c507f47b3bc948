"""
Response envelope shared by every API endpoint.

Every response, success or error, is rendered as:

    {"status": 200, "message": "...", "data": ..., "metadata": ... | null,
     "errors": [{"field": "...", "message": "..."}] | null}

JSON keys are camelCase; requests accept either camelCase or snake_case.
"""
import math
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model that serializes to camelCase and accepts either casing on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiError(BaseModel):
    """A single error entry. `field` is None for errors not tied to an input field."""

    field: str | None = None
    message: str


class PageMetadata(CamelModel):
    """Pagination details for list responses."""

    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool
    next_page: int | None
    previous_page: int | None


class ApiResponse(CamelModel, Generic[T]):
    """The envelope wrapped around every response body."""

    status: int
    message: str
    data: T | None = None
    metadata: PageMetadata | None = None
    errors: list[ApiError] | None = None


def build_page_metadata(total: int, page: int, page_size: int) -> PageMetadata:
    """Compute page metadata for `total` items split into pages of `page_size`."""
    total_pages = math.ceil(total / page_size) if page_size > 0 else 0
    has_next_page = page < total_pages
    has_previous_page = page > 1
    return PageMetadata(
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_next_page=has_next_page,
        has_previous_page=has_previous_page,
        next_page=page + 1 if has_next_page else None,
        previous_page=page - 1 if has_previous_page else None,
    )
