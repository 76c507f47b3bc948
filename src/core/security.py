"""
Credential helpers: Argon2 password hashing, HS256 access tokens, reset codes.

Nothing here touches the database; services and the auth dependency call these.
"""
import hashlib
import logging
import secrets
import string
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from core.config import Settings

logger = logging.getLogger(__name__)

RESET_CODE_LENGTH = 6
RESET_CODE_ALPHABET = string.digits + string.ascii_uppercase

_password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a password with Argon2id."""
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its Argon2 hash.

    Returns False for a wrong password or a malformed hash instead of raising.
    """
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def create_access_token(
    user_id: UUID,
    email: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed access token for a user.

    Claims: `sub` (user id), `email`, `iat`, and `exp`
    (settings.access_token_expire_minutes unless `expires_delta` is given).
    """
    now = datetime.now(UTC)
    expire = now + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> dict[str, Any] | None:
    """
    Decode and validate an access token.

    Returns:
        The claims if the signature and expiry are valid and `sub` is present,
        None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired access token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected invalid access token: %s", e)
        return None
    return payload


def generate_reset_code() -> str:
    """Generate a 6-character password reset code (digits and upper-case letters)."""
    return "".join(secrets.choice(RESET_CODE_ALPHABET) for _ in range(RESET_CODE_LENGTH))


def hash_reset_code(code: str) -> str:
    """SHA-256 hex digest of a reset code. Codes are compared case-insensitively."""
    return hashlib.sha256(code.strip().upper().encode()).hexdigest()
