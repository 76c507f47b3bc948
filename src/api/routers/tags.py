"""Tag management endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Principal, get_async_session, get_current_principal
from schemas.envelope import ApiResponse
from schemas.tag import (
    TagCreate,
    TagDeleteResponse,
    TagDetailResponse,
    TagResponse,
    TagUpdate,
    TagWithCountResponse,
)
from services import tag_service

router = APIRouter(prefix="/tags", tags=["tags"])


@router.post("", response_model=ApiResponse[TagResponse], status_code=status.HTTP_201_CREATED)
async def create_tag(
    data: TagCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """
    Create a tag.

    Names are stored trimmed and lower-cased. Returns 409 if the tag exists.
    """
    tag = await tag_service.create_tag(db, principal.id, data.name)
    return ApiResponse(
        status=status.HTTP_201_CREATED,
        message="Tag created successfully.",
        data=TagResponse.model_validate(tag),
    )


@router.get("", response_model=ApiResponse[list[TagWithCountResponse]])
async def list_tags(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """List the current user's tags by name, with bookmark counts."""
    tags = await tag_service.list_tags_with_counts(db, principal.id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Tags retrieved successfully.",
        data=tags,
    )


@router.get("/{tag_id}", response_model=ApiResponse[TagDetailResponse])
async def get_tag(
    tag_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Get a tag with the bookmarks linked to it."""
    tag = await tag_service.get_tag(db, principal.id, tag_id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Tag retrieved successfully.",
        data=TagDetailResponse.model_validate(tag),
    )


@router.put("/{tag_id}", response_model=ApiResponse[TagResponse])
async def rename_tag(
    tag_id: UUID,
    data: TagUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """
    Rename a tag.

    All bookmarks using this tag reflect the new name.
    Returns 409 if another tag already has the name.
    """
    tag = await tag_service.rename_tag(db, principal.id, tag_id, data.name)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Tag updated successfully.",
        data=TagResponse.model_validate(tag),
    )


@router.delete("/{tag_id}", response_model=ApiResponse[TagDeleteResponse])
async def delete_tag(
    tag_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Remove a tag from all bookmarks, then delete it."""
    detached = await tag_service.delete_tag(db, principal.id, tag_id)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Tag deleted successfully.",
        data=TagDeleteResponse(detached_bookmarks=detached),
    )
