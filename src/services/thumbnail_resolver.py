"""
Thumbnail resolution: access check, caching, dedup, generation, persistence.

Resolution order for a URL:

1. Ownership check (skipped only while creating the bookmark)
2. Local shortcut cache `thumbnail_{url}`
3. Dedup lookup in the metadata store by URL hash (screenshots only)
4. The generator's fallback chain
5. Upload of screenshot results to the blob store plus a metadata record

Direct links (video thumbnails, favicons) are never re-hosted or recorded; they
are cheap to re-derive and only live in the local shortcut cache. The shortcut is
shared by every owner of the URL, so it only ever holds direct links and recorded
screenshots: an un-hosted render is retried on the next resolution, and a
regenerated screenshot belongs to the caller alone.
"""
import logging
from typing import assert_never

import httpx
from sqlalchemy.exc import SQLAlchemyError

from core.cache import TieredCache
from core.clock import Clock, system_clock, utc_now
from models.thumbnail_record import ThumbnailKind, ThumbnailRecord
from schemas.thumbnail import ThumbnailResult
from services.access_guard import AccessGuard
from services.access_stats import AccessStatsTracker
from services.blob_store import LocalBlobStore, data_url_to_bytes, thumbnail_blob_path
from services.exceptions import UploadFailureError, UrlValidationError
from services.metadata_store import ThumbnailMetadataStore, ThumbnailStats
from services.render_client import RenderOptions
from services.thumbnail_generator import ThumbnailGenerator
from services.url_hasher import hash_url, make_regeneration_key, normalize_url

logger = logging.getLogger(__name__)

SHORTCUT_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_CONTENT_TYPE = "image/jpeg"


def shortcut_cache_key(url: str) -> str:
    """Local cache key for the last resolved thumbnail of url."""
    return f"thumbnail_{url}"


class ThumbnailResolver:
    """Entry point for resolving, regenerating and tracking bookmark thumbnails."""

    def __init__(
        self,
        *,
        guard: AccessGuard,
        cache: TieredCache,
        store: ThumbnailMetadataStore,
        blob_store: LocalBlobStore,
        generator: ThumbnailGenerator,
        stats_tracker: AccessStatsTracker,
        http_client: httpx.AsyncClient,
        clock: Clock = system_clock,
    ) -> None:
        self.guard = guard
        self.cache = cache
        self.store = store
        self.blob_store = blob_store
        self.generator = generator
        self.stats_tracker = stats_tracker
        self._http_client = http_client
        self._clock = clock

    async def resolve(
        self,
        url: str,
        user_id: int,
        skip_access_check: bool = False,
        options: RenderOptions | None = None,
    ) -> ThumbnailResult:
        """
        Return the best available thumbnail for url.

        Raises:
            UrlValidationError: If url is not a valid http(s) URL.
            AccessDeniedError: If the caller has no bookmark for url and
                skip_access_check is False.
        """
        normalized = normalize_url(url)
        await self.guard.ensure_authorized(normalized, user_id, skip_access_check)

        try:
            return await self._resolve_authorized(normalized, user_id, options)
        except Exception as e:
            # Caching or persistence broke; still try to hand back something direct
            logger.exception("thumbnail_resolve_failed url=%s user_id=%s", normalized, user_id)
            try:
                return await self.generator.generate(normalized, options)
            except Exception:
                logger.exception("thumbnail_direct_generate_failed url=%s", normalized)
                raise e from None

    async def _resolve_authorized(
        self, url: str, user_id: int, options: RenderOptions | None,
    ) -> ThumbnailResult:
        cache_key = shortcut_cache_key(url)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug("thumbnail_shortcut_hit url=%s", url)
            return ThumbnailResult.from_dict(cached)

        url_hash = hash_url(url)
        record = await self.store.get(url_hash)
        if record is not None and record.kind == ThumbnailKind.SCREENSHOT and record.blob_url:
            logger.debug("thumbnail_dedup_hit url=%s url_hash=%s", url, url_hash)
            await self.stats_tracker.touch(record.url_hash)
            result = self._result_from_record(record)
            await self.cache.set(cache_key, result.to_dict(), SHORTCUT_TTL_SECONDS)
            return result

        result = await self.generator.generate(url, options)
        result = await self._persist(
            url, url_hash, url_hash, result, user_id, source_prefix="storage-uploaded",
        )
        if self._is_shareable(result):
            await self.cache.set(cache_key, result.to_dict(), SHORTCUT_TTL_SECONDS)
        return result

    async def regenerate(
        self, url: str, user_id: int, options: RenderOptions | None = None,
    ) -> ThumbnailResult:
        """
        Render a fresh thumbnail for url, bypassing the shortcut cache and dedup.

        A regenerated screenshot is stored under a new, distinct key and returned
        only to the caller; the canonical record and blob for the URL are left
        untouched, and the shared shortcut is dropped rather than overwritten.

        Raises:
            UrlValidationError: If url is not a valid http(s) URL.
            AccessDeniedError: If the caller has no bookmark for url.
        """
        normalized = normalize_url(url)
        await self.guard.ensure_authorized(normalized, user_id)

        cache_key = shortcut_cache_key(normalized)
        await self.cache.remove(cache_key)

        url_hash = hash_url(normalized)
        result = await self.generator.generate(normalized, options)
        if result.kind == ThumbnailKind.SCREENSHOT and not result.is_empty:
            result = result.with_changes(source=f"regenerated-{result.source}")
        persisted = await self._persist(
            normalized, url_hash, make_regeneration_key(url_hash), result, user_id,
        )
        if persisted.record_id is not None:
            persisted = persisted.with_changes(method="regenerated")

        logger.info(
            "thumbnail_regenerated url=%s user_id=%s kind=%s source=%s",
            normalized, user_id, persisted.kind, persisted.source,
        )
        return persisted

    async def track_access(self, url: str, user_id: int) -> bool:
        """
        Count a view of url's stored thumbnail.

        Silently does nothing for invalid URLs, callers without a bookmark for the
        URL, and URLs with no stored thumbnail.

        Returns:
            True if the access count was updated.
        """
        try:
            normalized = normalize_url(url)
        except UrlValidationError:
            return False
        if not await self.guard.authorize(normalized, user_id):
            return False
        record = await self.store.get(hash_url(normalized))
        if record is None:
            return False
        return await self.stats_tracker.touch(record.url_hash)

    async def stats(self, user_id: int) -> ThumbnailStats:
        """Screenshot statistics for thumbnails uploaded by user_id."""
        return await self.store.stats_for_uploader(user_id)

    async def _persist(
        self,
        url: str,
        url_hash: str,
        key: str,
        result: ThumbnailResult,
        user_id: int,
        source_prefix: str | None = None,
    ) -> ThumbnailResult:
        match result.kind:
            case ThumbnailKind.SCREENSHOT:
                if result.is_empty:
                    return result
                return await self._upload(url, url_hash, key, result, user_id, source_prefix)
            case ThumbnailKind.VIDEO | ThumbnailKind.FAVICON:
                return result
            case _:
                assert_never(result.kind)

    async def _upload(
        self,
        url: str,
        url_hash: str,
        key: str,
        result: ThumbnailResult,
        user_id: int,
        source_prefix: str | None,
    ) -> ThumbnailResult:
        """
        Host a screenshot in the blob store and record it.

        Any failure to obtain or store the image bytes degrades to returning the
        un-hosted result unchanged. If the record can't be written, the hosted blob
        is returned without a record id; the render is never repeated.
        """
        try:
            data, content_type = await self._load_payload(result.thumbnail)
        except (ValueError, httpx.HTTPError) as e:
            logger.warning("thumbnail_payload_unavailable url=%s error=%s", url, e)
            return result

        metadata = {
            "url": url,
            "type": result.kind.value,
            "source": result.source,
            "createdAt": utc_now(self._clock).isoformat(),
            "urlHash": url_hash,
            "userId": str(user_id),
        }
        try:
            blob = await self.blob_store.upload(
                thumbnail_blob_path(key), data, content_type, metadata,
            )
        except UploadFailureError as e:
            logger.warning("thumbnail_upload_failed url=%s error=%s", url, e)
            return result

        source = f"{source_prefix}-{result.source}" if source_prefix else result.source
        try:
            record = await self.store.create(
                url_hash=key,
                url=url,
                blob_url=blob.url,
                blob_path=blob.path,
                kind=result.kind,
                source=result.source,
                uploader_id=user_id,
                size_bytes=blob.size,
            )
        except SQLAlchemyError as e:
            logger.warning("thumbnail_record_failed url=%s key=%s error=%s", url, key, e)
            return result.with_changes(thumbnail=blob.url, source=source)
        return result.with_changes(
            thumbnail=record.blob_url, source=source, record_id=record.url_hash,
        )

    async def _load_payload(self, thumbnail: str | None) -> tuple[bytes, str]:
        """
        Image bytes and content type for a render result.

        Raises:
            ValueError: If there is no usable image payload.
            httpx.HTTPError: If a remote image can't be fetched.
        """
        if not thumbnail:
            raise ValueError("Render result has no image")
        if thumbnail.startswith("data:"):
            return data_url_to_bytes(thumbnail)

        response = await self._http_client.get(thumbnail, follow_redirects=True)
        response.raise_for_status()
        content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE)
        content_type = content_type.split(";")[0].strip() or DEFAULT_CONTENT_TYPE
        if not content_type.startswith("image/"):
            raise ValueError(f"Remote thumbnail is not an image: {content_type}")
        if not response.content:
            raise ValueError("Remote thumbnail is empty")
        return response.content, content_type

    @staticmethod
    def _is_shareable(result: ThumbnailResult) -> bool:
        """Whether result may be served to every owner of the URL from the shortcut."""
        if result.is_empty:
            return False
        match result.kind:
            case ThumbnailKind.SCREENSHOT:
                return result.record_id is not None
            case ThumbnailKind.VIDEO | ThumbnailKind.FAVICON:
                return True
            case _:
                assert_never(result.kind)

    @staticmethod
    def _result_from_record(record: ThumbnailRecord) -> ThumbnailResult:
        return ThumbnailResult(
            thumbnail=record.blob_url,
            kind=record.kind,
            source=f"storage-{record.source}",
            is_video_thumbnail=record.kind == ThumbnailKind.VIDEO,
            method="metadata-cache",
            record_id=record.url_hash,
        )
