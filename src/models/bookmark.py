"""Bookmark model for storing user bookmarks."""
from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from models.user import User


class Bookmark(Base, TimestampMixin):
    """
    Bookmark model - stores URLs with metadata, tags and resolved images.

    `thumbnail` and `favicon` are set by the thumbnail resolver, never authored by
    the user directly.
    """

    __tablename__ = "bookmarks"
    __table_args__ = (
        # Ownership checks and the thumbnail cleanup pass look bookmarks up by URL
        Index("ix_bookmarks_user_url", "user_id", "url"),
        Index("ix_bookmarks_url", "url"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    thumbnail: Mapped[str | None] = mapped_column(Text, nullable=True)
    favicon: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship(back_populates="bookmarks")
