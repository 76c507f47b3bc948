"""Authentication dependency: bearer access token -> Principal."""
import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from core.security import decode_access_token
from db.session import get_async_session
from models.user import User
from services.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme; missing credentials are handled below so the
# response uses the standard envelope
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller. Services receive `id` as their `user_id`."""

    id: UUID
    email: str


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """
    Dependency that validates the bearer token and returns the caller.

    Raises:
        UnauthorizedError: If the token is missing, invalid, or expired, or the
            user it names no longer exists.
    """
    if credentials is None:
        raise UnauthorizedError("Not authenticated.")

    payload = decode_access_token(credentials.credentials, settings)
    if payload is None:
        raise UnauthorizedError("Invalid or expired token.")

    try:
        user_id = UUID(str(payload["sub"]))
    except ValueError:
        logger.warning("Access token with malformed sub claim")
        raise UnauthorizedError("Invalid or expired token.") from None

    result = await db.execute(select(User.id, User.email).where(User.id == user_id))
    row = result.one_or_none()
    if row is None:
        raise UnauthorizedError("User not found.")

    return Principal(id=row.id, email=row.email)
