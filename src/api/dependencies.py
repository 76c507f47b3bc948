"""FastAPI dependencies for injection."""
from dataclasses import dataclass
from functools import partial

from fastapi import Depends, Query

from core.auth import Principal, get_current_principal
from core.config import Settings, get_settings
from db.session import get_async_session
from services.bookmark_service import MetadataResolver
from services.exceptions import ValidationError
from services.metadata_resolver import resolve_metadata
from services.user_service import ResetCodeSender, log_reset_code_issued


@dataclass(frozen=True)
class Pagination:
    """Validated page request."""

    page: int
    page_size: int


def get_pagination(
    page: int = Query(default=1, ge=1, description="1-based page number"),
    page_size: int | None = Query(
        default=None, alias="pageSize", ge=1, description="Items per page",
    ),
    settings: Settings = Depends(get_settings),
) -> Pagination:
    """Resolve page/pageSize query parameters, applying the configured default and limit."""
    size = page_size if page_size is not None else settings.default_page_size
    if size > settings.max_page_size:
        raise ValidationError(
            f"pageSize cannot exceed {settings.max_page_size}.", field="pageSize",
        )
    return Pagination(page=page, page_size=size)


def get_metadata_resolver(settings: Settings = Depends(get_settings)) -> MetadataResolver:
    """Resolver used when creating bookmarks. Overridden in tests."""
    return partial(resolve_metadata, timeout=settings.metadata_fetch_timeout)


def get_reset_code_sender() -> ResetCodeSender:
    """Delivery for password reset codes. Overridden in tests."""
    return log_reset_code_issued


__all__ = [
    "Pagination",
    "Principal",
    "get_async_session",
    "get_current_principal",
    "get_metadata_resolver",
    "get_pagination",
    "get_reset_code_sender",
    "get_settings",
]
