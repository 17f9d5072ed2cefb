"""Construction of the thumbnail pipeline's long-lived service objects."""
import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.cache import MemoryCache, TieredCache
from core.clock import Clock, system_clock
from core.config import Settings
from core.rate_limiter import SlidingWindowRateLimiter
from core.redis import RedisClient
from services import bookmark_service
from services.access_guard import AccessGuard, OwnershipLookup
from services.access_stats import MAX_COOLDOWN_ENTRIES, AccessStatsTracker
from services.blob_store import LocalBlobStore
from services.metadata_store import ThumbnailMetadataStore
from services.render_client import RenderOptions, RenderServiceClient
from services.thumbnail_generator import ThumbnailGenerator
from services.thumbnail_resolver import ThumbnailResolver

logger = logging.getLogger(__name__)


@dataclass
class ThumbnailServices:
    """Everything request handlers need for thumbnails, built once per process."""

    resolver: ThumbnailResolver
    guard: AccessGuard
    cache: TieredCache
    store: ThumbnailMetadataStore
    blob_store: LocalBlobStore
    render_client: RenderServiceClient
    rate_limiter: SlidingWindowRateLimiter
    favicon_template: str


def bookmark_ownership_lookup(
    session_factory: async_sessionmaker[AsyncSession],
) -> OwnershipLookup:
    """Ownership lookup that reads a user's bookmarked URLs in a fresh session."""

    async def lookup(user_id: int) -> set[str]:
        async with session_factory() as session:
            return await bookmark_service.list_bookmark_urls(session, user_id)

    return lookup


def build_thumbnail_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis_client: RedisClient | None,
    http_client: httpx.AsyncClient,
    clock: Clock = system_clock,
) -> ThumbnailServices:
    """
    Wire the pipeline from settings and shared resources.

    Args:
        settings: Application settings.
        session_factory: Factory for the metadata store and ownership lookups.
        redis_client: Persistent cache tier; None for memory-only caching.
        http_client: Shared client for rendering, HEAD checks and image fetches.
        clock: Time source for caches, limiter and stores.
    """
    cache = TieredCache(
        persistent=redis_client,
        clock=clock,
        max_memory_entries=settings.cache_max_memory_entries,
        default_ttl=settings.cache_default_ttl_seconds,
    )
    store = ThumbnailMetadataStore(session_factory, clock=clock)
    blob_store = LocalBlobStore(settings.blob_storage_dir, settings.blob_public_base_url)
    render_client = RenderServiceClient(
        settings.screenshot_api_url,
        settings.screenshot_api_key,
        http_client,
        health_timeout=settings.screenshot_health_timeout,
    )
    generator = ThumbnailGenerator.create(
        render_client,
        http_client,
        favicon_template=settings.favicon_service_url,
        default_options=RenderOptions(timeout_ms=settings.screenshot_timeout_ms),
    )
    guard = AccessGuard(cache, bookmark_ownership_lookup(session_factory))
    resolver = ThumbnailResolver(
        guard=guard,
        cache=cache,
        store=store,
        blob_store=blob_store,
        generator=generator,
        stats_tracker=AccessStatsTracker(
            store, MemoryCache(clock=clock, max_entries=MAX_COOLDOWN_ENTRIES),
        ),
        http_client=http_client,
        clock=clock,
    )
    if not render_client.configuration().is_configured:
        logger.warning("render_service_not_configured api_url=%s", settings.screenshot_api_url)

    return ThumbnailServices(
        resolver=resolver,
        guard=guard,
        cache=cache,
        store=store,
        blob_store=blob_store,
        render_client=render_client,
        rate_limiter=SlidingWindowRateLimiter(redis_client, clock),
        favicon_template=settings.favicon_service_url,
    )
