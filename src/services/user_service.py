"""Service layer for accounts: registration, login, profile, and password reset."""
import hmac
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.security import (
    generate_reset_code,
    hash_password,
    hash_reset_code,
    verify_password,
)
from models.base import utcnow
from models.user import User
from services.collection_service import ensure_system_collection
from services.exceptions import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from services.tag_service import seed_default_tags

logger = logging.getLogger(__name__)

ResetCodeSender = Callable[[str, str], Awaitable[None]]


class EmailAlreadyRegisteredError(ConflictError):
    """Raised when registering an email that already has an account."""

    def __init__(self) -> None:
        super().__init__("An account with this email already exists.", field="email")


class InvalidCredentialsError(UnauthorizedError):
    """Raised on a failed login. The message does not reveal which part was wrong."""

    def __init__(self) -> None:
        super().__init__("Invalid email or password.")


class InvalidResetCodeError(ValidationError):
    """Raised when a password reset code is wrong, expired, or was never issued."""

    def __init__(self) -> None:
        super().__init__("Invalid or expired reset code.", field="code")


def normalize_email(email: str) -> str:
    """Emails are stored and matched trimmed and lower-cased."""
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Get a user by email (normalized here)."""
    result = await db.execute(
        select(User).where(User.email == normalize_email(email)),
    )
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: UUID) -> User:
    """
    Get a user by id.

    Raises:
        NotFoundError: If no such user exists.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    name: str | None = None,
) -> User:
    """
    Create an account with its system collection and default tags.

    Everything is created in the caller's transaction, so a failure part-way
    leaves no partial account behind.

    Raises:
        EmailAlreadyRegisteredError: If the email already has an account.
    """
    normalized = normalize_email(email)
    if await get_user_by_email(db, normalized) is not None:
        raise EmailAlreadyRegisteredError

    try:
        async with db.begin_nested():
            user = User(
                email=normalized,
                password_hash=hash_password(password),
                name=name.strip() if name and name.strip() else None,
            )
            db.add(user)
            await db.flush()
    except IntegrityError as e:
        # Race: the same email registered concurrently
        raise EmailAlreadyRegisteredError from e

    await ensure_system_collection(db, user.id)
    await seed_default_tags(db, user.id)

    logger.info("Registered user %s", user.id)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """
    Check login credentials.

    Raises:
        InvalidCredentialsError: For an unknown email or a wrong password alike.
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError
    return user


async def update_user(db: AsyncSession, user_id: UUID, name: str | None) -> User:
    """Update the display name. Blank names are stored as None."""
    user = await get_user(db, user_id)
    user.name = name.strip() if name and name.strip() else None
    await db.flush()
    await db.refresh(user)
    return user


async def change_password(
    db: AsyncSession,
    user_id: UUID,
    current_password: str,
    new_password: str,
) -> None:
    """
    Change the password of a signed-in user.

    Raises:
        InvalidCredentialsError: If `current_password` is wrong.
    """
    user = await get_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentialsError
    user.password_hash = hash_password(new_password)
    await db.flush()
    logger.info("Changed password for user %s", user.id)


async def log_reset_code_issued(email: str, code: str) -> None:  # noqa: ARG001
    """Default reset code sender. Records that a code was issued, never the code."""
    logger.info("Password reset code issued for %s", email)


async def request_password_reset(
    db: AsyncSession,
    email: str,
    sender: ResetCodeSender = log_reset_code_issued,
) -> None:
    """
    Issue a password reset code and hand it to `sender`.

    Only a hash of the code is stored, with an expiry of
    settings.password_reset_ttl_minutes. Unknown emails are ignored silently so
    the response cannot be used to discover accounts.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        logger.debug("Password reset requested for unknown email")
        return

    settings = get_settings()
    code = generate_reset_code()
    user.reset_code_hash = hash_reset_code(code)
    user.reset_code_expires_at = utcnow() + timedelta(minutes=settings.password_reset_ttl_minutes)
    await db.flush()

    await sender(user.email, code)


async def reset_password(
    db: AsyncSession,
    email: str,
    code: str,
    new_password: str,
) -> None:
    """
    Set a new password using a reset code. The code can be used once.

    Raises:
        InvalidResetCodeError: If the code does not match or has expired.
    """
    user = await get_user_by_email(db, email)
    if user is None or user.reset_code_hash is None or user.reset_code_expires_at is None:
        raise InvalidResetCodeError

    expires_at = user.reset_code_expires_at
    if expires_at.tzinfo is None:
        # SQLite returns naive datetimes; values are always stored as UTC
        expires_at = expires_at.replace(tzinfo=utcnow().tzinfo)
    if expires_at < utcnow():
        raise InvalidResetCodeError
    if not hmac.compare_digest(user.reset_code_hash, hash_reset_code(code)):
        raise InvalidResetCodeError

    user.password_hash = hash_password(new_password)
    user.reset_code_hash = None
    user.reset_code_expires_at = None
    await db.flush()
    logger.info("Reset password for user %s", user.id)
