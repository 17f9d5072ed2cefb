"""Shared registry of produced thumbnails, keyed by URL hash."""
from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin


class ThumbnailKind(StrEnum):
    """What a thumbnail depicts, which also decides whether it is re-hosted."""

    VIDEO = "video"
    SCREENSHOT = "screenshot"
    FAVICON = "favicon"


class ThumbnailRecord(Base, TimestampMixin):
    """
    A thumbnail produced once and shared by every bookmark of the same URL.

    The primary key is the SHA-256 of the URL for canonical records, or
    `{hash}_{suffix}` for regenerated ones. `kind` and `blob_url` never change after
    insert; only the access statistics are updated.
    """

    __tablename__ = "thumbnail_records"

    url_hash: Mapped[str] = mapped_column(String(128), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    blob_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    blob_path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    kind: Mapped[ThumbnailKind] = mapped_column(
        Enum(ThumbnailKind, native_enum=False, length=20,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    uploader_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    access_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        server_default=func.now(),
    )
