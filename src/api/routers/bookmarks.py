"""Bookmark CRUD endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user, get_thumbnail_services
from models.user import User
from schemas.bookmark import (
    BookmarkCreate,
    BookmarkListResponse,
    BookmarkResponse,
    BookmarkUpdate,
)
from services import bookmark_service
from services.thumbnail_services import ThumbnailServices

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.post("/", response_model=BookmarkResponse, status_code=201)
async def create_bookmark(
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> BookmarkResponse:
    """Create a new bookmark and resolve its thumbnail."""
    bookmark = await bookmark_service.create_bookmark(db, current_user.id, data, thumbnails)
    return BookmarkResponse.model_validate(bookmark)


@router.get("/", response_model=BookmarkListResponse)
async def list_bookmarks(
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    limit: int = Query(default=50, ge=1, le=100, description="Pagination limit"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkListResponse:
    """List bookmarks for the current user, newest first."""
    bookmarks, total = await bookmark_service.list_bookmarks(
        db, current_user.id, offset=offset, limit=limit,
    )
    return BookmarkListResponse(
        items=[BookmarkResponse.model_validate(b) for b in bookmarks],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/{bookmark_id}", response_model=BookmarkResponse)
async def get_bookmark(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Get a single bookmark by ID."""
    bookmark = await bookmark_service.get_bookmark(db, current_user.id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.patch("/{bookmark_id}", response_model=BookmarkResponse)
async def update_bookmark(
    bookmark_id: int,
    data: BookmarkUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> BookmarkResponse:
    """Update a bookmark. Changing the URL re-resolves the thumbnail."""
    bookmark = await bookmark_service.update_bookmark(
        db, current_user.id, bookmark_id, data, thumbnails,
    )
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.delete("/{bookmark_id}", status_code=204)
async def delete_bookmark(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> None:
    """Delete a bookmark."""
    deleted = await bookmark_service.delete_bookmark(
        db, current_user.id, bookmark_id, thumbnails,
    )
    if not deleted:
        raise HTTPException(status_code=404, detail="Bookmark not found")


@router.post("/{bookmark_id}/thumbnail/regenerate", response_model=BookmarkResponse)
async def regenerate_thumbnail(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> BookmarkResponse:
    """
    Render a fresh thumbnail for a bookmark.

    The new image is stored separately; other bookmarks of the same URL keep the
    thumbnail they already have.
    """
    regenerated = await bookmark_service.regenerate_thumbnail(
        db, current_user.id, bookmark_id, thumbnails,
    )
    if regenerated is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    bookmark, _ = regenerated
    return BookmarkResponse.model_validate(bookmark)
