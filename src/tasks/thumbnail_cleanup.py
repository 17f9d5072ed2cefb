"""
Scheduled cleanup of unused thumbnails.

This module deletes stored screenshots that nobody looks at any more. Designed to
run as a cron job (e.g., daily at 3 AM).

Usage:
    python -m tasks.thumbnail_cleanup

A screenshot is removed only when both hold:
1. It has not been accessed for `older_than_days` days
2. No bookmark of any user still points at its URL

The blob is deleted before the record, so a failure part-way leaves a record
whose blob is gone (harmless, the next resolution re-renders) rather than an
orphaned blob nothing refers to.

Each deleted screenshot's resolution shortcut is dropped from the shared cache so
no worker keeps handing out a link to the removed blob. Entries already held in a
web worker's memory tier still live until their TTL runs out.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.cache import TieredCache
from services import bookmark_service
from services.blob_store import LocalBlobStore
from services.metadata_store import ThumbnailMetadataStore
from services.thumbnail_resolver import shortcut_cache_key

logger = logging.getLogger(__name__)

DEFAULT_OLDER_THAN_DAYS = 30


@dataclass
class ThumbnailCleanupStats:
    """Statistics from a cleanup run."""

    examined: int = 0
    deleted: int = 0
    skipped_bookmarked: int = 0
    failed: int = 0
    bytes_freed: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {
            "examined": self.examined,
            "deleted": self.deleted,
            "skipped_bookmarked": self.skipped_bookmarked,
            "failed": self.failed,
            "bytes_freed": self.bytes_freed,
        }


async def cleanup_stale_thumbnails(
    store: ThumbnailMetadataStore,
    blob_store: LocalBlobStore,
    session_factory: async_sessionmaker[AsyncSession],
    older_than_days: int = DEFAULT_OLDER_THAN_DAYS,
    uploader_id: int | None = None,
    now: datetime | None = None,
    cache: TieredCache | None = None,
) -> ThumbnailCleanupStats:
    """
    Delete stale, unreferenced screenshots and their blobs.

    Args:
        store: Thumbnail metadata store.
        blob_store: Where the screenshot images live.
        session_factory: Used to check whether any bookmark references a URL.
        older_than_days: Minimum days since last access.
        uploader_id: Restrict the pass to one uploader's screenshots.
        now: Current time for cutoff calculation. Defaults to datetime.now(UTC).
        cache: Cache holding resolution shortcuts to drop for deleted screenshots.

    Returns:
        ThumbnailCleanupStats for the run. A failure on one record is logged and
        counted; the pass continues with the next.
    """
    if now is None:
        now = datetime.now(UTC)

    stats = ThumbnailCleanupStats()
    cutoff = now - timedelta(days=older_than_days)
    candidates = await store.list_stale_screenshots(cutoff, uploader_id=uploader_id)

    for record in candidates:
        stats.examined += 1
        try:
            async with session_factory() as session:
                if await bookmark_service.url_is_bookmarked(session, record.url):
                    stats.skipped_bookmarked += 1
                    continue
            if record.blob_path:
                await blob_store.delete(record.blob_path)
            await store.delete(record.url_hash)
            if cache is not None:
                await cache.remove(shortcut_cache_key(record.url))
        except Exception:
            logger.exception("Failed to clean up thumbnail %s", record.url_hash)
            stats.failed += 1
            continue
        stats.deleted += 1
        stats.bytes_freed += record.size_bytes

    if stats.deleted:
        logger.info(
            "Deleted %d stale thumbnails (not accessed for > %d days)",
            stats.deleted,
            older_than_days,
        )
    return stats


async def run_cleanup(older_than_days: int = DEFAULT_OLDER_THAN_DAYS) -> ThumbnailCleanupStats:
    """Run the cleanup pass with application settings and the default database."""
    from core.config import get_settings
    from core.redis import RedisClient
    from db.session import engine, get_session_factory

    settings = get_settings()
    session_factory = get_session_factory()
    redis_client = RedisClient(
        url=settings.redis_url,
        enabled=settings.redis_enabled,
        pool_size=settings.redis_pool_size,
    )
    logger.info("Starting thumbnail cleanup task")
    await redis_client.connect()
    try:
        stats = await cleanup_stale_thumbnails(
            ThumbnailMetadataStore(session_factory),
            LocalBlobStore(settings.blob_storage_dir, settings.blob_public_base_url),
            session_factory,
            older_than_days=older_than_days,
            cache=TieredCache(persistent=redis_client),
        )
    finally:
        await redis_client.close()
        await engine.dispose()
    logger.info("Thumbnail cleanup complete: %s", stats.to_dict())
    return stats


def main() -> None:
    """Entry point for running cleanup as a script."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_cleanup())


if __name__ == "__main__":
    main()
