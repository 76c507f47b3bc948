"""Account endpoints: register, login, and password management."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    Principal,
    get_async_session,
    get_current_principal,
    get_reset_code_sender,
    get_settings,
)
from core.config import Settings
from core.security import create_access_token
from models.user import User
from schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
)
from schemas.envelope import ApiResponse
from schemas.user import UserResponse
from services import user_service
from services.user_service import ResetCodeSender

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: User, settings: Settings) -> TokenResponse:
    user_data = UserResponse.model_validate(user)
    return TokenResponse(
        token=create_access_token(user_data.id, user_data.email, settings),
        user=user_data,
    )


@router.post(
    "/register",
    response_model=ApiResponse[TokenResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> ApiResponse:
    """
    Create an account and sign in.

    The new account starts with the "Unsorted" collection and the default tags.
    Returns 409 if the email is already registered.
    """
    user = await user_service.register_user(db, data.email, data.password, data.name)
    return ApiResponse(
        status=status.HTTP_201_CREATED,
        message="Account created successfully.",
        data=_token_response(user, settings),
    )


@router.post("/login", response_model=ApiResponse[TokenResponse])
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> ApiResponse:
    """Exchange email and password for an access token."""
    user = await user_service.authenticate_user(db, data.email, data.password)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="Login successful.",
        data=_token_response(user, settings),
    )


@router.post("/forgot-password", response_model=ApiResponse[None])
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_async_session),
    sender: ResetCodeSender = Depends(get_reset_code_sender),
) -> ApiResponse:
    """
    Send a password reset code.

    Always succeeds, whether or not the email has an account.
    """
    await user_service.request_password_reset(db, data.email, sender)
    return ApiResponse(
        status=status.HTTP_200_OK,
        message="If an account exists for this email, a reset code has been sent.",
    )


@router.post("/reset-password", response_model=ApiResponse[None])
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Set a new password with a reset code. Returns 400 if the code is wrong or expired."""
    await user_service.reset_password(db, data.email, data.code, data.new_password)
    return ApiResponse(status=status.HTTP_200_OK, message="Password reset successfully.")


@router.post("/change-password", response_model=ApiResponse[None])
async def change_password(
    data: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
) -> ApiResponse:
    """Change the password of the signed-in user. Returns 401 if the current password is wrong."""
    await user_service.change_password(
        db, principal.id, data.current_password, data.new_password,
    )
    return ApiResponse(status=status.HTTP_200_OK, message="Password changed successfully.")
