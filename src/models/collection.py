"""Collection model and the bookmark/collection junction table."""
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    UniqueConstraint,
    Uuid,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDv7Mixin

if TYPE_CHECKING:
    from models.bookmark import Bookmark
    from models.user import User


COLLECTION_NAME_MAX_LENGTH = 255


bookmark_collections = Table(
    "bookmark_collections",
    Base.metadata,
    Column(
        "bookmark_id",
        Uuid,
        ForeignKey("bookmarks.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "collection_id",
        Uuid,
        ForeignKey("collections.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Index("ix_bookmark_collections_collection_id", "collection_id"),
)


class Collection(Base, UUIDv7Mixin, TimestampMixin):
    """
    Collection model - a named group of bookmarks owned by one user.

    Each user has exactly one system collection ("Unsorted"). It cannot be
    renamed or deleted and receives bookmarks orphaned by collection deletion.
    """

    __tablename__ = "collections"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_collections_user_id_name"),
        # At most one system collection per user
        Index(
            "uq_collections_user_system",
            "user_id",
            unique=True,
            postgresql_where=text("is_system"),
            sqlite_where=text("is_system"),
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(COLLECTION_NAME_MAX_LENGTH), nullable=False)
    is_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )

    user: Mapped["User"] = relationship(back_populates="collections")
    bookmarks: Mapped[list["Bookmark"]] = relationship(
        secondary=bookmark_collections,
        back_populates="collections",
        viewonly=True,
    )
