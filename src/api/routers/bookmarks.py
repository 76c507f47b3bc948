"""Bookmark CRUD endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    Pagination,
    Principal,
    get_async_session,
    get_current_principal,
    get_metadata_resolver,
    get_pagination,
)
from schemas.bookmark import (
    BookmarkCountResponse,
    BookmarkCreate,
    BookmarkResponse,
    BookmarkUpdate,
)
from schemas.envelope import ApiResponse, build_page_metadata
from services import bookmark_service
from services.bookmark_service import MetadataResolver

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.post(
    "",
    response_model=ApiResponse[BookmarkResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_bookmark(
    data: BookmarkCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    resolver: MetadataResolver = Depends(get_metadata_resolver),
) -> ApiResponse:
    """
    Save a URL as a bookmark.

    Title, description, and preview image are fetched from the page. If the page
    cannot be fetched the bookmark is still created, titled with the URL.
    Returns 409 if the URL is already saved.
    """
    bookmark = await bookmark_service.create_bookmark(db, principal.id, data.url, resolver)
    return ApiResponse(
        status=status.HTTP_201_CREATED,
        message="Bookmark added successfully.",
        data=BookmarkResponse.model_validate(bookmark),
    )


@router.get("", response_model=ApiResponse[list[BookmarkResponse]])
async def list_bookmarks(
    search: str | None = Query(default=None, description="Matches title, description, and url"),
    collection_id: UUID | None = Query(default=None, alias="collectionId"),
    tag_id: UUID | None = Query(default=None, alias="tagId"),
    pagination: Pagination = Depends(get_pagination),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """
    List the current user's bookmarks, newest first.

    - **search**: case-insensitive substring match
    - **collectionId** / **tagId**: only bookmarks linked to that collection or tag
    - **page** / **pageSize**: pagination (see response metadata)
    """
    bookmarks, total = await bookmark_service.search_bookmarks(
        db=db,
        user_id=principal.id,
        page=pagination.page,
        page_size=pagination.page_size,
        search=search,
        collection_id=collection_id,
        tag_id=tag_id,
    )
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Bookmarks retrieved successfully.",
        data=[BookmarkResponse.model_validate(b) for b in bookmarks],
        metadata=build_page_metadata(total, pagination.page, pagination.page_size),
    )


@router.get("/count", response_model=ApiResponse[BookmarkCountResponse])
async def count_bookmarks(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Count the current user's bookmarks."""
    count = await bookmark_service.count_bookmarks(db, principal.id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Bookmark count retrieved successfully.",
        data=BookmarkCountResponse(count=count),
    )


@router.get("/{bookmark_id}", response_model=ApiResponse[BookmarkResponse])
async def get_bookmark(
    bookmark_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Get a single bookmark with its tags and collections."""
    bookmark = await bookmark_service.get_bookmark(db, principal.id, bookmark_id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Bookmark retrieved successfully.",
        data=BookmarkResponse.model_validate(bookmark),
    )


@router.put("/{bookmark_id}", response_model=ApiResponse[BookmarkResponse])
async def update_bookmark(
    bookmark_id: UUID,
    data: BookmarkUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """
    Update a bookmark.

    Omitted or null fields are left unchanged. `tags` and `collections` replace
    the current set when sent; `[]` clears it. Tags are matched by id or created
    by name; collection ids the user does not own are ignored.
    """
    bookmark = await bookmark_service.update_bookmark(db, principal.id, bookmark_id, data)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Bookmark updated successfully.",
        data=BookmarkResponse.model_validate(bookmark),
    )


@router.delete("/{bookmark_id}", response_model=ApiResponse[None])
async def delete_bookmark(
    bookmark_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Delete a bookmark."""
    await bookmark_service.delete_bookmark(db, principal.id, bookmark_id)
    return ApiResponse(status=status.HTTP_200_OK, message="Bookmark deleted successfully.")
