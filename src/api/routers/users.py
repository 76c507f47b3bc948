"""Profile endpoints for the signed-in user."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Principal, get_async_session, get_current_principal
from schemas.envelope import ApiResponse
from schemas.user import UserResponse, UserUpdate
from services import user_service

router = APIRouter(prefix="/user", tags=["user"])


@router.get("", response_model=ApiResponse[UserResponse])
async def get_profile(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Get the current user's profile."""
    user = await user_service.get_user(db, principal.id)
    return ApiResponse(
        status=200,
        message="User retrieved successfully.",
        data=UserResponse.model_validate(user),
    )


@router.put("", response_model=ApiResponse[UserResponse])
async def update_profile(
    data: UserUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Update the current user's display name."""
    user = await user_service.update_user(db, principal.id, data.name)
    return ApiResponse(
        status=200,
        message="User updated successfully.",
        data=UserResponse.model_validate(user),
    )
