"""SQLAlchemy models."""
from models.base import Base, TimestampMixin
from models.bookmark import Bookmark
from models.thumbnail_record import ThumbnailKind, ThumbnailRecord
from models.user import User

__all__ = [
    "Base",
    "Bookmark",
    "ThumbnailKind",
    "ThumbnailRecord",
    "TimestampMixin",
    "User",
]
