"""Service layer for tag operations."""
import logging
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.tag import TAG_NAME_MAX_LENGTH, Tag, bookmark_tags
from schemas.bookmark import TagRef
from schemas.tag import TagWithCountResponse
from services.exceptions import ConflictError, NotFoundError, ValidationError
from services.utils import parse_uuid

logger = logging.getLogger(__name__)

DEFAULT_TAG_NAMES = ("work", "personal", "reading", "travel", "food", "tech", "finance")


class TagNotFoundError(NotFoundError):
    """Raised when a tag does not exist or is not owned by the caller."""

    def __init__(self, tag_id: UUID) -> None:
        self.tag_id = tag_id
        super().__init__("Tag not found.")


class TagAlreadyExistsError(ConflictError):
    """Raised when creating or renaming a tag to a name the user already has."""

    def __init__(self, tag_name: str) -> None:
        self.tag_name = tag_name
        super().__init__(f"Tag '{tag_name}' already exists.", field="name")


def normalize_tag_name(name: str) -> str:
    """
    Normalize a tag name for storage and lookup (trimmed, lowercase).

    Raises:
        ValidationError: If the normalized name is empty or too long.
    """
    normalized = name.strip().lower()
    if not normalized:
        raise ValidationError("Tag name cannot be empty.", field="name")
    if len(normalized) > TAG_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Tag name cannot exceed {TAG_NAME_MAX_LENGTH} characters.", field="name",
        )
    return normalized


async def get_tag_by_name(db: AsyncSession, user_id: UUID, name: str) -> Tag | None:
    """Get a tag by its already-normalized name."""
    result = await db.execute(
        select(Tag).where(Tag.user_id == user_id, Tag.name == name),
    )
    return result.scalar_one_or_none()


async def find_or_create_tag(db: AsyncSession, user_id: UUID, name: str) -> Tag:
    """
    Get the user's tag with this name, creating it if needed.

    The insert runs in a savepoint. If a concurrent request created the same tag
    first, the unique constraint fires, the savepoint is rolled back, and the
    winner's row is returned.

    Args:
        db: Database session.
        user_id: Owner of the tag.
        name: Tag name (normalized here).

    Returns:
        The existing or newly created Tag.
    """
    normalized = normalize_tag_name(name)
    existing = await get_tag_by_name(db, user_id, normalized)
    if existing is not None:
        return existing

    try:
        async with db.begin_nested():
            tag = Tag(user_id=user_id, name=normalized)
            db.add(tag)
            await db.flush()
    except IntegrityError:
        # A concurrent request won the insert; its row must now be visible
        tag = await get_tag_by_name(db, user_id, normalized)
        if tag is None:
            raise
    return tag


async def resolve_tag_refs(
    db: AsyncSession,
    user_id: UUID,
    refs: Sequence[TagRef],
) -> list[Tag]:
    """
    Resolve tag references from a bookmark update into Tag rows.

    A reference's `id` is honored only if it is a valid UUID naming one of the
    user's tags; otherwise the reference falls back to its `name`, creating the
    tag if the user does not have it. The result keeps input order without
    duplicates.
    """
    ids = {tag_id for ref in refs if (tag_id := parse_uuid(ref.id)) is not None}
    owned: dict[UUID, Tag] = {}
    if ids:
        result = await db.execute(
            select(Tag).where(Tag.user_id == user_id, Tag.id.in_(ids)),
        )
        owned = {tag.id: tag for tag in result.scalars()}

    tags: list[Tag] = []
    seen: set[UUID] = set()
    for ref in refs:
        tag_id = parse_uuid(ref.id)
        tag = owned.get(tag_id) if tag_id is not None else None
        if tag is None:
            tag = await find_or_create_tag(db, user_id, ref.name)
        if tag.id not in seen:
            seen.add(tag.id)
            tags.append(tag)
    return tags


async def create_tag(db: AsyncSession, user_id: UUID, name: str) -> Tag:
    """
    Create a tag explicitly.

    Raises:
        TagAlreadyExistsError: If the user already has a tag with this name.
    """
    normalized = normalize_tag_name(name)
    if await get_tag_by_name(db, user_id, normalized) is not None:
        raise TagAlreadyExistsError(normalized)

    try:
        async with db.begin_nested():
            tag = Tag(user_id=user_id, name=normalized)
            db.add(tag)
            await db.flush()
    except IntegrityError as e:
        # Another request created the tag between check and flush
        raise TagAlreadyExistsError(normalized) from e
    return tag


async def list_tags_with_counts(
    db: AsyncSession,
    user_id: UUID,
) -> list[TagWithCountResponse]:
    """
    Get all of the user's tags with the number of bookmarks linked to each.

    Returns:
        Tags sorted by name. Tags without bookmarks have a count of 0.
    """
    result = await db.execute(
        select(
            Tag.id,
            Tag.name,
            Tag.created_at,
            Tag.updated_at,
            func.count(bookmark_tags.c.bookmark_id).label("bookmark_count"),
        )
        .outerjoin(bookmark_tags, Tag.id == bookmark_tags.c.tag_id)
        .where(Tag.user_id == user_id)
        .group_by(Tag.id, Tag.name, Tag.created_at, Tag.updated_at)
        .order_by(Tag.name.asc()),
    )
    return [TagWithCountResponse.model_validate(row) for row in result]


async def get_tag(db: AsyncSession, user_id: UUID, tag_id: UUID) -> Tag:
    """
    Get a tag with its bookmarks loaded.

    Raises:
        TagNotFoundError: If the tag doesn't exist or belongs to another user.
    """
    result = await db.execute(
        select(Tag)
        .options(selectinload(Tag.bookmarks))
        .where(Tag.id == tag_id, Tag.user_id == user_id)
        .execution_options(populate_existing=True),
    )
    tag = result.scalar_one_or_none()
    if tag is None:
        raise TagNotFoundError(tag_id)
    return tag


async def rename_tag(
    db: AsyncSession,
    user_id: UUID,
    tag_id: UUID,
    new_name: str,
) -> Tag:
    """
    Rename a tag.

    Args:
        db: Database session.
        user_id: Owner of the tag.
        tag_id: Tag to rename.
        new_name: New name (normalized here).

    Returns:
        The updated Tag.

    Raises:
        TagNotFoundError: If the tag doesn't exist or belongs to another user.
        TagAlreadyExistsError: If another of the user's tags has the new name.
    """
    normalized = normalize_tag_name(new_name)

    result = await db.execute(
        select(Tag).where(Tag.id == tag_id, Tag.user_id == user_id),
    )
    tag = result.scalar_one_or_none()
    if tag is None:
        raise TagNotFoundError(tag_id)

    if tag.name == normalized:
        return tag

    # Early check for a better error message; the constraint still guards races
    if await get_tag_by_name(db, user_id, normalized) is not None:
        raise TagAlreadyExistsError(normalized)

    try:
        async with db.begin_nested():
            tag.name = normalized
            await db.flush()
    except IntegrityError as e:
        raise TagAlreadyExistsError(normalized) from e
    await db.refresh(tag)
    return tag


async def delete_tag(db: AsyncSession, user_id: UUID, tag_id: UUID) -> int:
    """
    Detach a tag from every bookmark, then delete it.

    Both steps run in one savepoint so a failure leaves all links in place.

    Returns:
        Number of bookmarks the tag was detached from.

    Raises:
        TagNotFoundError: If the tag doesn't exist or belongs to another user.
    """
    async with db.begin_nested():
        result = await db.execute(
            select(Tag.id)
            .where(Tag.id == tag_id, Tag.user_id == user_id)
            .with_for_update(),
        )
        if result.scalar_one_or_none() is None:
            raise TagNotFoundError(tag_id)

        detached = await db.execute(
            delete(bookmark_tags).where(bookmark_tags.c.tag_id == tag_id),
        )
        await db.execute(
            delete(Tag).where(Tag.id == tag_id, Tag.user_id == user_id),
        )

    detached_count = detached.rowcount or 0
    logger.info(
        "Deleted tag %s for user %s (detached from %d bookmarks)",
        tag_id, user_id, detached_count,
    )
    return detached_count


async def seed_default_tags(db: AsyncSession, user_id: UUID) -> list[Tag]:
    """Create the default tag set for a user. Existing tags are reused."""
    return [await find_or_create_tag(db, user_id, name) for name in DEFAULT_TAG_NAMES]
