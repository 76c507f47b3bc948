"""
Service layer for bookmark operations.

Owns the bookmark side of the two many-to-many associations (bookmark_tags and
bookmark_collections). Link rows are written here directly with core
insert/delete statements, and every multi-statement change runs inside a
savepoint so a failure part-way through leaves the links as they were.
"""
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import Table, delete, exists, func, insert, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.base import utcnow
from models.bookmark import Bookmark
from models.collection import Collection, bookmark_collections
from models.tag import bookmark_tags
from schemas.bookmark import BookmarkUpdate
from services.collection_service import get_system_collection
from services.exceptions import ConflictError, NotFoundError, ValidationError
from services.metadata_resolver import Metadata
from services.tag_service import resolve_tag_refs
from services.utils import escape_ilike, parse_uuid

logger = logging.getLogger(__name__)

FALLBACK_TITLE_LENGTH = 100

MetadataResolver = Callable[[str], Awaitable[Metadata]]


class DuplicateUrlError(ConflictError):
    """Raised when a bookmark with the same URL already exists for the user."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__("Bookmark with this URL already exists.", field="url")


class BookmarkNotFoundError(NotFoundError):
    """Raised when a bookmark does not exist or is not owned by the caller."""

    def __init__(self, bookmark_id: UUID) -> None:
        self.bookmark_id = bookmark_id
        super().__init__("Bookmark not found.")


@dataclass(frozen=True)
class AssociationSuggestion:
    """Tag and collection to link a new bookmark to. Either may be None."""

    tag_id: UUID | None = None
    collection_id: UUID | None = None


async def suggest_default_associations(
    db: AsyncSession,
    user_id: UUID,
) -> AssociationSuggestion:
    """
    Suggest default links for a new bookmark from the user's latest bookmark.

    Picks the earliest-created tag and the earliest-created collection (lowest
    UUIDv7) of the most recently created bookmark. Returns an empty suggestion
    when the user has no bookmarks yet.
    """
    result = await db.execute(
        select(Bookmark.id)
        .where(Bookmark.user_id == user_id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .limit(1),
    )
    latest_id = result.scalar_one_or_none()
    if latest_id is None:
        return AssociationSuggestion()

    tag_result = await db.execute(
        select(bookmark_tags.c.tag_id)
        .where(bookmark_tags.c.bookmark_id == latest_id)
        .order_by(bookmark_tags.c.tag_id.asc())
        .limit(1),
    )
    collection_result = await db.execute(
        select(bookmark_collections.c.collection_id)
        .where(bookmark_collections.c.bookmark_id == latest_id)
        .order_by(bookmark_collections.c.collection_id.asc())
        .limit(1),
    )
    return AssociationSuggestion(
        tag_id=tag_result.scalar_one_or_none(),
        collection_id=collection_result.scalar_one_or_none(),
    )


async def _check_url_exists(db: AsyncSession, user_id: UUID, url: str) -> bool:
    result = await db.execute(
        select(Bookmark.id).where(Bookmark.user_id == user_id, Bookmark.url == url),
    )
    return result.scalar_one_or_none() is not None


async def create_bookmark(
    db: AsyncSession,
    user_id: UUID,
    url: object,
    resolver: MetadataResolver,
) -> Bookmark:
    """
    Create a bookmark from a URL.

    Title, description, and image come from the page metadata; the title falls
    back to the start of the URL when the page has none (or cannot be fetched).
    The new bookmark is linked to the suggested tag and collection from
    suggest_default_associations. Without a suggested collection it goes to
    the user's system collection.

    Args:
        db: Database session.
        user_id: Owner of the new bookmark.
        url: URL to save.
        resolver: Async callable returning Metadata for a URL.

    Returns:
        The created bookmark with tags and collections loaded.

    Raises:
        ValidationError: If the URL is missing or blank.
        DuplicateUrlError: If the user already saved this URL.
        SystemCollectionMissingError: If the default collection is needed and the
            user has no system collection.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("URL is required and must be a valid string.", field="url")
    url = url.strip()

    if await _check_url_exists(db, user_id, url):
        raise DuplicateUrlError(url)

    metadata = await resolver(url)
    suggestion = await suggest_default_associations(db, user_id)
    collection_id = suggestion.collection_id
    if collection_id is None:
        collection_id = (await get_system_collection(db, user_id)).id

    try:
        async with db.begin_nested():
            bookmark = Bookmark(
                user_id=user_id,
                url=url,
                title=metadata.title or url[:FALLBACK_TITLE_LENGTH],
                description=metadata.description,
                image_url=metadata.image_url,
            )
            db.add(bookmark)
            await db.flush()

            await db.execute(
                insert(bookmark_collections).values(
                    bookmark_id=bookmark.id, collection_id=collection_id,
                ),
            )
            if suggestion.tag_id is not None:
                await db.execute(
                    insert(bookmark_tags).values(bookmark_id=bookmark.id, tag_id=suggestion.tag_id),
                )
    except IntegrityError as e:
        # Race: another request saved the same URL between check and flush
        if await _check_url_exists(db, user_id, url):
            raise DuplicateUrlError(url) from e
        raise

    logger.info("Created bookmark %s for user %s", bookmark.id, user_id)
    return await get_bookmark(db, user_id, bookmark.id)


async def get_bookmark(db: AsyncSession, user_id: UUID, bookmark_id: UUID) -> Bookmark:
    """
    Get a bookmark with its tags and collections, scoped to the user.

    Raises:
        BookmarkNotFoundError: If the bookmark doesn't exist or belongs to another user.
    """
    result = await db.execute(
        select(Bookmark)
        .options(selectinload(Bookmark.tags), selectinload(Bookmark.collections))
        .where(Bookmark.id == bookmark_id, Bookmark.user_id == user_id)
        .execution_options(populate_existing=True),
    )
    bookmark = result.scalar_one_or_none()
    if bookmark is None:
        raise BookmarkNotFoundError(bookmark_id)
    return bookmark


async def search_bookmarks(
    db: AsyncSession,
    user_id: UUID,
    page: int = 1,
    page_size: int = 10,
    search: str | None = None,
    collection_id: UUID | None = None,
    tag_id: UUID | None = None,
) -> tuple[list[Bookmark], int]:
    """
    Search and filter a user's bookmarks with pagination.

    Args:
        db: Database session.
        user_id: User ID to scope bookmarks.
        page: 1-based page number.
        page_size: Items per page.
        search: Case-insensitive substring match on title, description, and url.
        collection_id: Only bookmarks linked to this collection.
        tag_id: Only bookmarks linked to this tag.

    Returns:
        Tuple of (bookmarks on the page, newest first; total matching count).
    """
    base_query = select(Bookmark).where(Bookmark.user_id == user_id)

    if search and search.strip():
        pattern = f"%{escape_ilike(search.strip())}%"
        base_query = base_query.where(
            or_(
                Bookmark.title.ilike(pattern, escape="\\"),
                Bookmark.description.ilike(pattern, escape="\\"),
                Bookmark.url.ilike(pattern, escape="\\"),
            ),
        )

    if collection_id is not None:
        base_query = base_query.where(
            exists().where(
                bookmark_collections.c.bookmark_id == Bookmark.id,
                bookmark_collections.c.collection_id == collection_id,
            ),
        )

    if tag_id is not None:
        base_query = base_query.where(
            exists().where(
                bookmark_tags.c.bookmark_id == Bookmark.id,
                bookmark_tags.c.tag_id == tag_id,
            ),
        )

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    page_query = (
        base_query
        .options(selectinload(Bookmark.tags), selectinload(Bookmark.collections))
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(page_query)
    return list(result.scalars().all()), total


async def count_bookmarks(db: AsyncSession, user_id: UUID) -> int:
    """Count all of a user's bookmarks."""
    result = await db.execute(
        select(func.count()).select_from(Bookmark).where(Bookmark.user_id == user_id),
    )
    return result.scalar() or 0


async def _owned_collection_ids(
    db: AsyncSession,
    user_id: UUID,
    raw_ids: Iterable[str],
) -> list[UUID]:
    """Keep the ids that parse as UUIDs and name one of the user's collections."""
    requested: list[UUID] = []
    for raw_id in raw_ids:
        collection_id = parse_uuid(raw_id)
        if collection_id is None:
            logger.debug("Ignoring malformed collection id %r for user %s", raw_id, user_id)
            continue
        if collection_id not in requested:
            requested.append(collection_id)
    if not requested:
        return []

    result = await db.execute(
        select(Collection.id).where(
            Collection.user_id == user_id,
            Collection.id.in_(requested),
        ),
    )
    owned = set(result.scalars())
    dropped = [collection_id for collection_id in requested if collection_id not in owned]
    if dropped:
        logger.debug("Ignoring collections not owned by user %s: %s", user_id, dropped)
    return [collection_id for collection_id in requested if collection_id in owned]


async def _apply_link_set(
    db: AsyncSession,
    link_table: Table,
    target_column: str,
    bookmark_id: UUID,
    desired_ids: Iterable[UUID],
) -> None:
    """
    Make a bookmark's links in `link_table` match `desired_ids` exactly.

    Only the difference is written: links no longer wanted are deleted and new
    ones inserted. Links present in both sets are left untouched.
    """
    target = link_table.c[target_column]
    result = await db.execute(
        select(target).where(link_table.c.bookmark_id == bookmark_id),
    )
    current = set(result.scalars())
    desired = set(desired_ids)

    removed = current - desired
    added = desired - current
    if removed:
        await db.execute(
            delete(link_table).where(
                link_table.c.bookmark_id == bookmark_id,
                target.in_(removed),
            ),
        )
    if added:
        await db.execute(
            insert(link_table),
            [{"bookmark_id": bookmark_id, target_column: target_id} for target_id in added],
        )


async def update_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
    data: BookmarkUpdate,
) -> Bookmark:
    """
    Update a bookmark's fields and associations.

    Scalar fields change only when sent with a non-null value. `tags` and
    `collections` replace the whole association set when sent (an empty list
    clears it) and are left alone when omitted or null. Collection ids that are
    malformed or belong to someone else are dropped silently.

    Raises:
        BookmarkNotFoundError: If the bookmark doesn't exist or belongs to another user.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    async with db.begin_nested():
        result = await db.execute(
            select(Bookmark)
            .where(Bookmark.id == bookmark_id, Bookmark.user_id == user_id)
            .with_for_update(),
        )
        bookmark = result.scalar_one_or_none()
        if bookmark is None:
            raise BookmarkNotFoundError(bookmark_id)

        for field in ("title", "description", "image_url"):
            value = getattr(data, field)
            if value is not None:
                setattr(bookmark, field, value)

        if data.tags is not None:
            tags = await resolve_tag_refs(db, user_id, data.tags)
            await _apply_link_set(db, bookmark_tags, "tag_id", bookmark.id, [t.id for t in tags])

        if data.collections is not None:
            collection_ids = await _owned_collection_ids(
                db, user_id, [ref.id for ref in data.collections],
            )
            await _apply_link_set(
                db, bookmark_collections, "collection_id", bookmark.id, collection_ids,
            )

        # Link changes alone do not touch the row, so set the timestamp explicitly
        bookmark.updated_at = utcnow()
        await db.flush()

    return await get_bookmark(db, user_id, bookmark_id)


async def delete_bookmark(db: AsyncSession, user_id: UUID, bookmark_id: UUID) -> None:
    """
    Delete a bookmark. Its link rows are removed by ON DELETE CASCADE.

    Raises:
        BookmarkNotFoundError: If the bookmark doesn't exist or belongs to another user.
    """
    result = await db.execute(
        delete(Bookmark).where(Bookmark.id == bookmark_id, Bookmark.user_id == user_id),
    )
    if not result.rowcount:
        raise BookmarkNotFoundError(bookmark_id)
    logger.info("Deleted bookmark %s for user %s", bookmark_id, user_id)
