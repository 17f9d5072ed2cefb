"""Tests for the thumbnail metadata store."""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import utc_now
from models.thumbnail_record import ThumbnailKind
from models.user import User
from services.metadata_store import ThumbnailMetadataStore
from services.url_hasher import hash_url
from tests.fakes import FakeClock

URL = "https://example.com/article"


@pytest.fixture
def store(
    session_factory: async_sessionmaker[AsyncSession], clock: FakeClock,
) -> ThumbnailMetadataStore:
    return ThumbnailMetadataStore(session_factory, clock=clock)


async def add_record(
    store: ThumbnailMetadataStore,
    url: str = URL,
    key: str | None = None,
    kind: ThumbnailKind = ThumbnailKind.SCREENSHOT,
    source: str = "storage-uploaded-api-jpeg",
    uploader_id: int | None = None,
    size_bytes: int = 100,
):
    key = key or hash_url(url)
    return await store.create(
        url_hash=key,
        url=url,
        blob_url=f"http://test/{key}.jpg",
        blob_path=f"thumbnails/{key}.jpg",
        kind=kind,
        source=source,
        uploader_id=uploader_id,
        size_bytes=size_bytes,
    )


class TestCreateAndGet:
    """Tests for record creation and lookup."""

    async def test__create__initial_access_stats(
        self, store: ThumbnailMetadataStore, user: User,
    ) -> None:
        """A new record starts with one access at creation time."""
        record = await add_record(store, uploader_id=user.id)

        fetched = await store.get(hash_url(URL))

        assert fetched is not None
        assert fetched.url == URL
        assert fetched.kind == ThumbnailKind.SCREENSHOT
        assert fetched.access_count == 1
        assert fetched.uploader_id == user.id
        assert record.blob_url == fetched.blob_url

    async def test__get__missing_returns_none(self, store: ThumbnailMetadataStore) -> None:
        """Unknown hashes are a miss."""
        assert await store.get("0" * 64) is None

    async def test__create__existing_hash_returns_first_record(
        self, store: ThumbnailMetadataStore,
    ) -> None:
        """A second insert for the same hash keeps the original record."""
        first = await add_record(store, source="storage-uploaded-first")

        second = await add_record(store, source="storage-uploaded-second")

        assert second.source == "storage-uploaded-first"
        assert second.url_hash == first.url_hash
        assert len(await store.list_for_url(URL)) == 1


class TestTouch:
    """Tests for access statistics updates."""

    async def test__touch__increments_and_refreshes_timestamp(
        self, store: ThumbnailMetadataStore, clock: FakeClock,
    ) -> None:
        """Each touch adds one access and moves last_accessed_at forward."""
        await add_record(store)
        clock.advance(3600)

        assert await store.touch(hash_url(URL)) is True
        assert await store.touch(hash_url(URL)) is True

        record = await store.get(hash_url(URL))
        assert record is not None
        assert record.access_count == 3
        assert record.last_accessed_at.replace(tzinfo=None) == (
            utc_now(clock).replace(tzinfo=None)
        )

    async def test__touch__missing_record(self, store: ThumbnailMetadataStore) -> None:
        """Touching an unknown hash reports False."""
        assert await store.touch("missing") is False


class TestQueries:
    """Tests for listing, deleting and statistics."""

    async def test__list_for_url__includes_regenerated(
        self, store: ThumbnailMetadataStore,
    ) -> None:
        """Canonical and regenerated records for a URL are listed together."""
        await add_record(store)
        await add_record(store, key=f"{hash_url(URL)}_regen")
        await add_record(store, url="https://other.example.com")

        records = await store.list_for_url(URL)

        assert {r.url_hash for r in records} == {hash_url(URL), f"{hash_url(URL)}_regen"}

    async def test__delete(self, store: ThumbnailMetadataStore) -> None:
        """delete() removes the record and reports whether it existed."""
        await add_record(store)

        assert await store.delete(hash_url(URL)) is True
        assert await store.get(hash_url(URL)) is None
        assert await store.delete(hash_url(URL)) is False

    async def test__list_stale_screenshots__only_old_screenshots(
        self, store: ThumbnailMetadataStore, clock: FakeClock,
    ) -> None:
        """Only screenshot records last accessed before the cutoff are returned."""
        await add_record(store, url="https://old.example.com")
        await add_record(store, url="https://old-video.example.com", kind=ThumbnailKind.VIDEO)
        clock.advance(timedelta(days=40).total_seconds())
        await add_record(store, url="https://fresh.example.com")

        stale = await store.list_stale_screenshots(utc_now(clock) - timedelta(days=30))

        assert [r.url for r in stale] == ["https://old.example.com"]

    async def test__list_stale_screenshots__filters_uploader(
        self, store: ThumbnailMetadataStore, clock: FakeClock, user: User, other_user: User,
    ) -> None:
        """The uploader filter restricts the result to that user's uploads."""
        await add_record(store, url="https://mine.example.com", uploader_id=user.id)
        await add_record(store, url="https://theirs.example.com", uploader_id=other_user.id)
        clock.advance(timedelta(days=40).total_seconds())

        stale = await store.list_stale_screenshots(
            utc_now(clock) - timedelta(days=30), uploader_id=user.id,
        )

        assert [r.url for r in stale] == ["https://mine.example.com"]

    async def test__stats_for_uploader__groups_screenshots_by_source(
        self, store: ThumbnailMetadataStore, user: User, other_user: User,
    ) -> None:
        """Stats count only the uploader's screenshot records."""
        await add_record(store, url="https://a.example.com", uploader_id=user.id, size_bytes=100)
        await add_record(store, url="https://b.example.com", uploader_id=user.id, size_bytes=50)
        await add_record(
            store,
            url="https://c.example.com",
            uploader_id=user.id,
            source="regenerated-api-jpeg",
            size_bytes=25,
        )
        await add_record(
            store, url="https://d.example.com", uploader_id=user.id, kind=ThumbnailKind.VIDEO,
        )
        await add_record(store, url="https://e.example.com", uploader_id=other_user.id)

        stats = await store.stats_for_uploader(user.id)

        assert stats.total_screenshots == 3
        assert stats.total_size == 175
        assert stats.by_source == {
            "storage-uploaded-api-jpeg": 2,
            "regenerated-api-jpeg": 1,
        }

    async def test__stats_for_uploader__empty(
        self, store: ThumbnailMetadataStore, user: User,
    ) -> None:
        """A user with no uploads has zeroed stats."""
        stats = await store.stats_for_uploader(user.id)

        assert stats.total_screenshots == 0
        assert stats.total_size == 0
        assert stats.by_source == {}
