"""
Service layer for collection operations.

Every user owns exactly one system collection ("Unsorted"). It is created at
registration, cannot be renamed or deleted, and receives the bookmarks that
would otherwise be left without a collection when another collection is deleted.
"""
import logging
from uuid import UUID

from sqlalchemy import Select, and_, delete, exists, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from models.collection import COLLECTION_NAME_MAX_LENGTH, Collection, bookmark_collections
from schemas.collection import CollectionWithCountResponse
from services.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SYSTEM_COLLECTION_NAME = "Unsorted"


class CollectionNotFoundError(NotFoundError):
    """Raised when a collection does not exist or is not owned by the caller."""

    def __init__(self, collection_id: UUID) -> None:
        self.collection_id = collection_id
        super().__init__("Collection not found.")


class CollectionAlreadyExistsError(ConflictError):
    """Raised when the user already has a collection with the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__("A collection with this name already exists.", field="name")


class SystemCollectionProtectedError(ForbiddenError):
    """Raised when trying to rename or delete the system collection."""

    def __init__(self, action: str) -> None:
        super().__init__(f"The '{SYSTEM_COLLECTION_NAME}' collection cannot be {action}.")


class SystemCollectionMissingError(InternalError):
    """Raised when a user has no system collection. Registration always creates one."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__("System collection is missing for this account.")


def normalize_collection_name(name: str) -> str:
    """
    Trim a collection name. Case is preserved and significant.

    Raises:
        ValidationError: If the trimmed name is empty or too long.
    """
    normalized = name.strip()
    if not normalized:
        raise ValidationError("Collection name is required.", field="name")
    if len(normalized) > COLLECTION_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Collection name cannot exceed {COLLECTION_NAME_MAX_LENGTH} characters.",
            field="name",
        )
    return normalized


async def _get_owned_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
    for_update: bool = False,
) -> Collection:
    query = select(Collection).where(
        Collection.id == collection_id,
        Collection.user_id == user_id,
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    collection = result.scalar_one_or_none()
    if collection is None:
        raise CollectionNotFoundError(collection_id)
    return collection


async def _name_taken(
    db: AsyncSession,
    user_id: UUID,
    name: str,
    exclude_id: UUID | None = None,
) -> bool:
    query = select(Collection.id).where(
        Collection.user_id == user_id,
        Collection.name == name,
    )
    if exclude_id is not None:
        query = query.where(Collection.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def get_system_collection(
    db: AsyncSession,
    user_id: UUID,
    for_update: bool = False,
) -> Collection:
    """
    Get the user's system collection.

    Args:
        db: Database session.
        user_id: Owner of the collection.
        for_update: Lock the row (serializes collection deletes per user).

    Raises:
        SystemCollectionMissingError: If the user has no system collection.
    """
    query = select(Collection).where(
        Collection.user_id == user_id,
        Collection.is_system.is_(True),
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    collection = result.scalar_one_or_none()
    if collection is None:
        raise SystemCollectionMissingError(user_id)
    return collection


async def ensure_system_collection(db: AsyncSession, user_id: UUID) -> Collection:
    """Get the user's system collection, creating it if it does not exist."""
    try:
        return await get_system_collection(db, user_id)
    except SystemCollectionMissingError:
        pass

    try:
        async with db.begin_nested():
            collection = Collection(
                user_id=user_id, name=SYSTEM_COLLECTION_NAME, is_system=True,
            )
            db.add(collection)
            await db.flush()
    except IntegrityError:
        # Created concurrently; the partial unique index guarantees a single row
        return await get_system_collection(db, user_id)
    return collection


async def create_collection(db: AsyncSession, user_id: UUID, name: str) -> Collection:
    """
    Create a collection.

    Raises:
        CollectionAlreadyExistsError: If the user already has a collection with this name.
    """
    normalized = normalize_collection_name(name)
    if await _name_taken(db, user_id, normalized):
        raise CollectionAlreadyExistsError(normalized)

    try:
        async with db.begin_nested():
            collection = Collection(user_id=user_id, name=normalized)
            db.add(collection)
            await db.flush()
    except IntegrityError as e:
        raise CollectionAlreadyExistsError(normalized) from e
    return collection


async def rename_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
    new_name: str,
) -> Collection:
    """
    Rename a collection.

    Raises:
        CollectionNotFoundError: If the collection doesn't exist or belongs to another user.
        SystemCollectionProtectedError: If the collection is the system collection.
        CollectionAlreadyExistsError: If another of the user's collections has the name.
    """
    normalized = normalize_collection_name(new_name)
    collection = await _get_owned_collection(db, user_id, collection_id)
    if collection.is_system:
        raise SystemCollectionProtectedError("renamed")
    if collection.name == normalized:
        return collection

    if await _name_taken(db, user_id, normalized, exclude_id=collection_id):
        raise CollectionAlreadyExistsError(normalized)

    try:
        async with db.begin_nested():
            collection.name = normalized
            await db.flush()
    except IntegrityError as e:
        raise CollectionAlreadyExistsError(normalized) from e
    await db.refresh(collection)
    return collection


def _count_query(user_id: UUID) -> Select:
    return (
        select(
            Collection.id,
            Collection.name,
            Collection.is_system,
            Collection.created_at,
            Collection.updated_at,
            func.count(bookmark_collections.c.bookmark_id).label("bookmark_count"),
        )
        .outerjoin(bookmark_collections, Collection.id == bookmark_collections.c.collection_id)
        .where(Collection.user_id == user_id)
        .group_by(
            Collection.id,
            Collection.name,
            Collection.is_system,
            Collection.created_at,
            Collection.updated_at,
        )
    )


async def list_collections_with_counts(
    db: AsyncSession,
    user_id: UUID,
) -> list[CollectionWithCountResponse]:
    """Get all of the user's collections, sorted by name, with bookmark counts."""
    result = await db.execute(_count_query(user_id).order_by(Collection.name.asc()))
    return [CollectionWithCountResponse.model_validate(row) for row in result]


async def get_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
) -> CollectionWithCountResponse:
    """
    Get a collection with its bookmark count.

    Raises:
        CollectionNotFoundError: If the collection doesn't exist or belongs to another user.
    """
    result = await db.execute(
        _count_query(user_id).where(Collection.id == collection_id),
    )
    row = result.one_or_none()
    if row is None:
        raise CollectionNotFoundError(collection_id)
    return CollectionWithCountResponse.model_validate(row)


async def delete_collection(db: AsyncSession, user_id: UUID, collection_id: UUID) -> int:
    """
    Delete a collection, moving bookmarks that would be left without a collection.

    Runs in one savepoint:
    1. Lock the user's system collection, serializing deletes for this user.
    2. Lock the target (owner in the predicate); reject the system collection.
    3. Link every bookmark whose only collection is the target to the system
       collection. Bookmarks with other collections keep those links only.
    4. Remove all links to the target, then the target itself.

    Returns:
        Number of bookmarks reassigned to the system collection.

    Raises:
        SystemCollectionMissingError: If the user has no system collection.
        CollectionNotFoundError: If the collection doesn't exist or belongs to another user.
        SystemCollectionProtectedError: If the target is the system collection.
    """
    async with db.begin_nested():
        system = await get_system_collection(db, user_id, for_update=True)
        target = await _get_owned_collection(db, user_id, collection_id, for_update=True)
        if target.is_system:
            raise SystemCollectionProtectedError("deleted")

        other_link = aliased(bookmark_collections)
        orphans = await db.execute(
            select(bookmark_collections.c.bookmark_id).where(
                bookmark_collections.c.collection_id == target.id,
                ~exists().where(
                    and_(
                        other_link.c.bookmark_id == bookmark_collections.c.bookmark_id,
                        other_link.c.collection_id != target.id,
                    ),
                ),
            ),
        )
        orphan_ids = list(orphans.scalars())

        if orphan_ids:
            await db.execute(
                insert(bookmark_collections),
                [
                    {"bookmark_id": bookmark_id, "collection_id": system.id}
                    for bookmark_id in orphan_ids
                ],
            )

        await db.execute(
            delete(bookmark_collections).where(bookmark_collections.c.collection_id == target.id),
        )
        await db.delete(target)
        await db.flush()

    logger.info(
        "Deleted collection %s for user %s (reassigned %d bookmarks to %s)",
        collection_id, user_id, len(orphan_ids), SYSTEM_COLLECTION_NAME,
    )
    return len(orphan_ids)
