"""
Bookmark-ownership check for thumbnail operations.

A caller may resolve, regenerate, or track a URL only if it is one of their own
bookmarks. The ownership set is cached per user for a short time and reloaded
from the database on a miss; bookmark mutations invalidate it.
"""
import logging
from collections.abc import Awaitable, Callable

from core.cache import TieredCache
from services.exceptions import AccessDeniedError
from services.url_hasher import normalize_url

logger = logging.getLogger(__name__)

OWNERSHIP_TTL_SECONDS = 5 * 60

OwnershipLookup = Callable[[int], Awaitable[set[str]]]


def ownership_cache_key(user_id: int) -> str:
    """Cache key for a user's bookmarked URLs."""
    return f"user_bookmarks_{user_id}"


class AccessGuard:
    """Authorizes thumbnail operations against the caller's bookmarks."""

    def __init__(
        self,
        cache: TieredCache,
        ownership_lookup: OwnershipLookup,
        ttl: float = OWNERSHIP_TTL_SECONDS,
    ) -> None:
        """
        Args:
            cache: Shared tiered cache.
            ownership_lookup: Loads the set of URLs bookmarked by a user.
            ttl: Lifetime of a cached ownership set in seconds.
        """
        self._cache = cache
        self._ownership_lookup = ownership_lookup
        self._ttl = ttl

    async def owned_urls(self, user_id: int) -> set[str]:
        """Return the user's bookmarked URLs, from cache when possible."""
        key = ownership_cache_key(user_id)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.debug("ownership_cache_hit user_id=%s", user_id)
            return set(cached)

        logger.debug("ownership_cache_miss user_id=%s", user_id)
        urls = await self._ownership_lookup(user_id)
        await self._cache.set(key, sorted(urls), self._ttl)
        return set(urls)

    async def authorize(self, url: str, user_id: int, skip: bool = False) -> bool:
        """
        Check whether user_id may operate on url.

        Args:
            url: Bookmark URL (normalized before comparison).
            user_id: The caller.
            skip: Bypass the check (bookmark creation, where the bookmark is new).

        Returns:
            True if allowed.
        """
        if skip:
            return True
        normalized = normalize_url(url)
        allowed = normalized in await self.owned_urls(user_id)
        if not allowed:
            logger.info("thumbnail_access_denied user_id=%s url=%s", user_id, normalized)
        return allowed

    async def ensure_authorized(self, url: str, user_id: int, skip: bool = False) -> None:
        """
        Raises:
            AccessDeniedError: If the caller doesn't own a bookmark for url.
        """
        if not await self.authorize(url, user_id, skip):
            raise AccessDeniedError(url, user_id)

    async def refresh(self, user_id: int, urls: set[str]) -> None:
        """
        Replace the cached ownership set with one the caller already loaded.

        Used when the caller's own transaction holds uncommitted bookmark changes
        that a fresh lookup session would not see yet.
        """
        await self._cache.set(ownership_cache_key(user_id), sorted(urls), self._ttl)

    async def invalidate(self, user_id: int) -> None:
        """Drop the cached ownership set after a bookmark mutation."""
        await self._cache.remove(ownership_cache_key(user_id))
        logger.debug("ownership_cache_invalidate user_id=%s", user_id)
