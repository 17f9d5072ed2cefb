"""
Shared registry of produced thumbnails (the dedup store).

Every operation opens its own session from the injected factory and commits
before returning, so a single store instance can be shared by all requests and
background tasks without borrowing a request's unit of work.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import Clock, system_clock, utc_now
from models.thumbnail_record import ThumbnailKind, ThumbnailRecord

logger = logging.getLogger(__name__)


@dataclass
class ThumbnailStats:
    """Screenshot statistics for one uploader."""

    total_screenshots: int = 0
    total_size: int = 0
    by_source: dict[str, int] = field(default_factory=dict)


class ThumbnailMetadataStore:
    """Persistence for ThumbnailRecord rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = system_clock,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, url_hash: str) -> ThumbnailRecord | None:
        """Return the record stored under url_hash, if any."""
        async with self._session_factory() as session:
            return await session.get(ThumbnailRecord, url_hash)

    async def create(
        self,
        *,
        url_hash: str,
        url: str,
        blob_url: str | None,
        blob_path: str,
        kind: ThumbnailKind,
        source: str,
        uploader_id: int | None,
        size_bytes: int = 0,
    ) -> ThumbnailRecord:
        """
        Insert a record unless one already exists under url_hash.

        Two first resolutions of the same new URL can both miss the dedup lookup and
        both upload. The primary key makes the second insert fail; in that case the
        transaction is rolled back and the record that won is returned, so there is
        only ever one canonical record per hash.
        """
        now = utc_now(self._clock)
        async with self._session_factory() as session:
            record = ThumbnailRecord(
                url_hash=url_hash,
                url=url,
                blob_url=blob_url,
                blob_path=blob_path,
                kind=kind,
                source=source,
                uploader_id=uploader_id,
                size_bytes=size_bytes,
                access_count=1,
                last_accessed_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                # Race condition: a concurrent writer inserted the same hash first
                await session.rollback()
                existing = await session.get(ThumbnailRecord, url_hash)
                if existing is None:
                    raise
                logger.info("thumbnail_record_exists url_hash=%s", url_hash)
                return existing

        logger.info(
            "thumbnail_record_created url_hash=%s kind=%s source=%s", url_hash, kind, source,
        )
        return record

    async def touch(self, url_hash: str) -> bool:
        """
        Increment access_count and refresh last_accessed_at.

        The increment happens in SQL so concurrent touches don't lose updates.

        Returns:
            False if no record exists under url_hash.
        """
        now = utc_now(self._clock)
        async with self._session_factory() as session:
            result = await session.execute(
                update(ThumbnailRecord)
                .where(ThumbnailRecord.url_hash == url_hash)
                .values(
                    access_count=ThumbnailRecord.access_count + 1,
                    last_accessed_at=now,
                    updated_at=now,
                ),
            )
            await session.commit()
            return result.rowcount > 0

    async def delete(self, url_hash: str) -> bool:
        """Delete the record under url_hash. Returns False if it didn't exist."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ThumbnailRecord).where(ThumbnailRecord.url_hash == url_hash),
            )
            await session.commit()
            return result.rowcount > 0

    async def list_for_url(self, url: str) -> list[ThumbnailRecord]:
        """All records (canonical and regenerated) produced for url, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ThumbnailRecord)
                .where(ThumbnailRecord.url == url)
                .order_by(ThumbnailRecord.created_at, ThumbnailRecord.url_hash),
            )
            return list(result.scalars().all())

    async def list_stale_screenshots(
        self,
        cutoff: datetime,
        uploader_id: int | None = None,
    ) -> list[ThumbnailRecord]:
        """Screenshot records not accessed since cutoff, optionally for one uploader."""
        stmt = select(ThumbnailRecord).where(
            ThumbnailRecord.kind == ThumbnailKind.SCREENSHOT,
            ThumbnailRecord.last_accessed_at < cutoff,
        )
        if uploader_id is not None:
            stmt = stmt.where(ThumbnailRecord.uploader_id == uploader_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(ThumbnailRecord.last_accessed_at))
            return list(result.scalars().all())

    async def stats_for_uploader(self, uploader_id: int) -> ThumbnailStats:
        """Count and total size of screenshots uploaded by uploader_id, by source."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    ThumbnailRecord.source,
                    func.count(),
                    func.coalesce(func.sum(ThumbnailRecord.size_bytes), 0),
                )
                .where(
                    ThumbnailRecord.uploader_id == uploader_id,
                    ThumbnailRecord.kind == ThumbnailKind.SCREENSHOT,
                )
                .group_by(ThumbnailRecord.source),
            )
            rows = result.all()

        stats = ThumbnailStats()
        for source, count, size in rows:
            stats.by_source[source] = count
            stats.total_screenshots += count
            stats.total_size += int(size)
        return stats
