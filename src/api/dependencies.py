"""FastAPI dependencies for injection."""
from fastapi import Request

from core.auth import get_current_user
from core.config import get_settings
from db.session import get_async_session
from services.thumbnail_services import ThumbnailServices


def get_thumbnail_services(request: Request) -> ThumbnailServices:
    """Return the thumbnail services built during application startup."""
    return request.app.state.thumbnails


__all__ = [
    "get_async_session",
    "get_current_user",
    "get_settings",
    "get_thumbnail_services",
]
