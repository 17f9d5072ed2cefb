"""Service layer for bookmark CRUD operations and their thumbnail side effects."""
import logging
from functools import partial
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.rate_limit_config import RateLimitedAction
from db.session import run_after_commit
from models.bookmark import Bookmark
from schemas.bookmark import BookmarkCreate, BookmarkUpdate
from schemas.thumbnail import ThumbnailResult
from services.exceptions import AccessDeniedError
from services.platform_extractor import favicon_url

if TYPE_CHECKING:
    from services.thumbnail_services import ThumbnailServices

logger = logging.getLogger(__name__)


async def _invalidate_ownership(
    db: AsyncSession, thumbnails: "ThumbnailServices", user_id: int,
) -> None:
    """
    Drop the cached ownership set now and again once the transaction commits.

    A lookup racing the commit would otherwise cache the pre-commit URL set.
    """
    await thumbnails.guard.invalidate(user_id)
    run_after_commit(db, partial(thumbnails.guard.invalidate, user_id))


async def _resolve_thumbnail(
    thumbnails: "ThumbnailServices",
    url: str,
    user_id: int,
    skip_access_check: bool,
) -> str | None:
    """
    Best-effort thumbnail lookup for a bookmark being saved.

    Only an access denial propagates; any other failure leaves the bookmark
    without a thumbnail.
    """
    try:
        result = await thumbnails.resolver.resolve(
            url, user_id, skip_access_check=skip_access_check,
        )
    except AccessDeniedError:
        raise
    except Exception:
        logger.exception("bookmark_thumbnail_failed url=%s user_id=%s", url, user_id)
        return None
    return result.thumbnail


async def create_bookmark(
    db: AsyncSession,
    user_id: int,
    data: BookmarkCreate,
    thumbnails: "ThumbnailServices",
) -> Bookmark:
    """
    Create a new bookmark for a user and resolve its thumbnail and favicon.

    The ownership check is skipped for the thumbnail lookup because the bookmark
    that would grant access doesn't exist yet. The lookup runs before the insert:
    the metadata store commits through its own sessions, which must never wait on
    locks held by this transaction.

    Note: Does not commit. Caller (session generator) handles commit at request end.

    Raises:
        RateLimitExceededError: If the user created too many bookmarks recently.
    """
    await thumbnails.rate_limiter.enforce_action(RateLimitedAction.BOOKMARK_CREATE, user_id)

    thumbnail = await _resolve_thumbnail(thumbnails, data.url, user_id, skip_access_check=True)
    bookmark = Bookmark(
        user_id=user_id,
        url=data.url,
        title=data.title,
        description=data.description,
        tags=data.tags,
        thumbnail=thumbnail,
        favicon=favicon_url(data.url, thumbnails.favicon_template),
    )
    db.add(bookmark)
    await db.flush()
    await _invalidate_ownership(db, thumbnails, user_id)
    await db.refresh(bookmark)
    logger.info("bookmark_created bookmark_id=%s user_id=%s", bookmark.id, user_id)
    return bookmark


async def get_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> Bookmark | None:
    """Get a bookmark by ID, scoped to user. Returns None if not found or wrong user."""
    result = await db.execute(
        select(Bookmark).where(
            Bookmark.id == bookmark_id,
            Bookmark.user_id == user_id,
        ),
    )
    return result.scalar_one_or_none()


async def list_bookmarks(
    db: AsyncSession,
    user_id: int,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Bookmark], int]:
    """Get a page of a user's bookmarks (newest first) and the total count."""
    total = await db.scalar(
        select(func.count()).select_from(Bookmark).where(Bookmark.user_id == user_id),
    )
    result = await db.execute(
        select(Bookmark)
        .where(Bookmark.user_id == user_id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .offset(offset)
        .limit(limit),
    )
    return list(result.scalars().all()), total or 0


async def list_bookmark_urls(db: AsyncSession, user_id: int) -> set[str]:
    """The set of URLs a user has bookmarked (the thumbnail ownership view)."""
    result = await db.execute(
        select(Bookmark.url).where(Bookmark.user_id == user_id).distinct(),
    )
    return set(result.scalars().all())


async def url_is_bookmarked(db: AsyncSession, url: str) -> bool:
    """Whether any user still has a bookmark for url."""
    result = await db.execute(select(Bookmark.id).where(Bookmark.url == url).limit(1))
    return result.scalar_one_or_none() is not None


async def update_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
    data: BookmarkUpdate,
    thumbnails: "ThumbnailServices",
) -> Bookmark | None:
    """
    Update a bookmark. Returns None if not found or wrong user.

    When the URL changes, the favicon is rebuilt and the thumbnail is resolved for
    the new URL. That lookup goes through the ownership check, so the cached
    ownership view is replaced with the user's URLs plus the new one first. As in
    create_bookmark, the lookup runs before anything is written.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    update_data = data.model_dump(exclude_unset=True)
    # url and tags are non-nullable; an explicit null leaves them unchanged
    for field in ("url", "tags"):
        if field in update_data and update_data[field] is None:
            del update_data[field]

    url_changed = "url" in update_data and update_data["url"] != bookmark.url
    thumbnail = None
    if url_changed:
        new_url = update_data["url"]
        owned = await list_bookmark_urls(db, user_id)
        owned.add(new_url)
        await thumbnails.guard.refresh(user_id, owned)
        thumbnail = await _resolve_thumbnail(
            thumbnails, new_url, user_id, skip_access_check=False,
        )

    for field, value in update_data.items():
        setattr(bookmark, field, value)
    if url_changed:
        bookmark.favicon = favicon_url(bookmark.url, thumbnails.favicon_template)
        bookmark.thumbnail = thumbnail
    await db.flush()
    await _invalidate_ownership(db, thumbnails, user_id)
    await db.refresh(bookmark)
    return bookmark


async def delete_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
    thumbnails: "ThumbnailServices",
) -> bool:
    """
    Delete a bookmark. Returns True if deleted, False if not found.

    The shared thumbnail record is left in place; the cleanup task removes it once
    no bookmark references the URL and it has gone unused.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return False

    await db.delete(bookmark)
    await db.flush()
    await _invalidate_ownership(db, thumbnails, user_id)
    return True


async def attach_thumbnail(
    db: AsyncSession,
    bookmark: Bookmark,
    result: ThumbnailResult,
) -> Bookmark:
    """
    Point a bookmark at a thumbnail result. An empty result leaves the current
    thumbnail in place.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    if not result.is_empty:
        bookmark.thumbnail = result.thumbnail
        await db.flush()
        await db.refresh(bookmark)
    return bookmark


async def regenerate_thumbnail(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
    thumbnails: "ThumbnailServices",
) -> tuple[Bookmark, ThumbnailResult] | None:
    """
    Render a fresh thumbnail for one of the user's bookmarks and attach it.

    Returns None if the bookmark doesn't exist or belongs to someone else.

    Raises:
        RateLimitExceededError: If the user regenerated too many thumbnails recently.
        AccessDeniedError: If the ownership check fails.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    await thumbnails.rate_limiter.enforce_action(RateLimitedAction.THUMBNAIL_REGENERATE, user_id)
    result = await thumbnails.resolver.regenerate(bookmark.url, user_id)
    bookmark = await attach_thumbnail(db, bookmark, result)
    return bookmark, result
