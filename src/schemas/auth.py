"""Pydantic schemas for authentication endpoints."""
from typing import Literal

from pydantic import EmailStr, Field

from schemas.envelope import CamelModel
from schemas.user import UserResponse

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


class RegisterRequest(CamelModel):
    """Schema for creating an account."""

    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    name: str | None = Field(default=None, max_length=100)


class LoginRequest(CamelModel):
    """Schema for exchanging credentials for a token."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(CamelModel):
    """Schema for requesting a password reset code."""

    email: EmailStr


class ResetPasswordRequest(CamelModel):
    """Schema for setting a new password with a reset code."""

    email: EmailStr
    code: str = Field(..., min_length=1)
    new_password: str = Field(
        ..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH,
    )


class ChangePasswordRequest(CamelModel):
    """Schema for changing the password of the signed-in user."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(
        ..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH,
    )


class TokenResponse(CamelModel):
    """Access token issued on registration or login."""

    token: str
    token_type: Literal["bearer"] = "bearer"
    user: UserResponse
