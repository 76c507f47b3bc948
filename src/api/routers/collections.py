"""Collection management endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    Pagination,
    Principal,
    get_async_session,
    get_current_principal,
    get_pagination,
)
from schemas.bookmark import BookmarkResponse
from schemas.collection import (
    CollectionCreate,
    CollectionDeleteResponse,
    CollectionResponse,
    CollectionUpdate,
    CollectionWithCountResponse,
)
from schemas.envelope import ApiResponse, build_page_metadata
from services import bookmark_service, collection_service
from services.exceptions import ValidationError

router = APIRouter(prefix="/collections", tags=["collections"])


@router.post(
    "",
    response_model=ApiResponse[CollectionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_collection(
    data: CollectionCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Create a collection. Returns 409 if the name is already used."""
    collection = await collection_service.create_collection(db, principal.id, data.name)
    return ApiResponse(
        status=status.HTTP_201_CREATED,
        message="Collection created successfully.",
        data=CollectionResponse.model_validate(collection),
    )


@router.get("", response_model=ApiResponse[list[CollectionWithCountResponse]])
async def list_collections(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """List the current user's collections by name, with bookmark counts."""
    collections = await collection_service.list_collections_with_counts(db, principal.id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Collections retrieved successfully.",
        data=collections,
    )


@router.get("/{collection_id}", response_model=ApiResponse[CollectionWithCountResponse])
async def get_collection(
    collection_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Get a single collection with its bookmark count."""
    collection = await collection_service.get_collection(db, principal.id, collection_id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Collection retrieved successfully.",
        data=collection,
    )


@router.get(
    "/{collection_id}/bookmarks",
    response_model=ApiResponse[list[BookmarkResponse]],
)
async def list_collection_bookmarks(
    collection_id: UUID,
    search: str | None = Query(default=None, description="Matches title, description, and url"),
    pagination: Pagination = Depends(get_pagination),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """List the bookmarks in a collection, newest first."""
    # 404 for collections the user does not own, rather than an empty page
    await collection_service.get_collection(db, principal.id, collection_id)
    bookmarks, total = await bookmark_service.search_bookmarks(
        db=db,
        user_id=principal.id,
        page=pagination.page,
        page_size=pagination.page_size,
        search=search,
        collection_id=collection_id,
    )
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Bookmarks retrieved successfully.",
        data=[BookmarkResponse.model_validate(b) for b in bookmarks],
        metadata=build_page_metadata(total, pagination.page, pagination.page_size),
    )


@router.put("/{collection_id}", response_model=ApiResponse[CollectionResponse])
async def update_collection(
    collection_id: UUID,
    data: CollectionUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """
    Rename a collection.

    Returns 403 for the "Unsorted" collection and 409 if the name is already used.
    """
    if data.id is not None and data.id != collection_id:
        raise ValidationError("Collection id in body does not match the URL.", field="id")
    collection = await collection_service.rename_collection(
        db, principal.id, collection_id, data.name,
    )
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Collection updated successfully.",
        data=CollectionResponse.model_validate(collection),
    )


@router.delete("/{collection_id}", response_model=ApiResponse[CollectionDeleteResponse])
async def delete_collection(
    collection_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """
    Delete a collection.

    Bookmarks that were only in this collection move to "Unsorted". Bookmarks
    that are also in other collections just lose this one. Returns 403 for the
    "Unsorted" collection.
    """
    reassigned = await collection_service.delete_collection(db, principal.id, collection_id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Collection deleted successfully.",
        data=CollectionDeleteResponse(reassigned_bookmarks=reassigned),
    )
