"""Shared utility functions for service layer."""
from uuid import UUID


def escape_ilike(value: str) -> str:
    r"""
    Escape special LIKE characters for safe use in LIKE/ILIKE patterns.

    % and _ are wildcards and \\ is the escape character. Queries using the
    result must pass escape="\\" so the backslashes are honored on every dialect.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def parse_uuid(value: str | UUID | None) -> UUID | None:
    """Parse a client-supplied id, returning None when it is not a valid UUID."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except ValueError:
        return None
