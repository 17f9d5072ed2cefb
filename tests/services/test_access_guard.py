"""Tests for the bookmark-ownership guard."""
import pytest

from core.cache import TieredCache
from services.access_guard import AccessGuard, ownership_cache_key
from services.exceptions import AccessDeniedError, UrlValidationError
from tests.fakes import FakeClock, FakeRedis

URL = "https://example.com/article"


class OwnershipLookup:
    """Lookup returning a configurable set of URLs per user and counting calls."""

    def __init__(self, owned: dict[int, set[str]]) -> None:
        self.owned = owned
        self.calls: list[int] = []

    async def __call__(self, user_id: int) -> set[str]:
        self.calls.append(user_id)
        return set(self.owned.get(user_id, set()))


@pytest.fixture
def cache(fake_redis: FakeRedis, clock: FakeClock) -> TieredCache:
    return TieredCache(persistent=fake_redis, clock=clock)


@pytest.fixture
def lookup() -> OwnershipLookup:
    return OwnershipLookup({1: {URL}})


@pytest.fixture
def guard(cache: TieredCache, lookup: OwnershipLookup) -> AccessGuard:
    return AccessGuard(cache, lookup)


class TestAuthorize:
    """Tests for AccessGuard.authorize."""

    async def test__authorize__owner_allowed(self, guard: AccessGuard) -> None:
        """A user may access URLs they bookmarked."""
        assert await guard.authorize(URL, 1) is True

    async def test__authorize__non_owner_denied(self, guard: AccessGuard) -> None:
        """A user without a bookmark for the URL is denied."""
        assert await guard.authorize(URL, 2) is False

    async def test__authorize__normalizes_before_comparing(self, guard: AccessGuard) -> None:
        """Surrounding whitespace doesn't affect ownership."""
        assert await guard.authorize(f"  {URL}\n", 1) is True

    async def test__authorize__skip_bypasses_lookup(
        self, guard: AccessGuard, lookup: OwnershipLookup,
    ) -> None:
        """skip=True allows without consulting ownership at all."""
        assert await guard.authorize(URL, 2, skip=True) is True
        assert lookup.calls == []

    async def test__authorize__invalid_url_raises(self, guard: AccessGuard) -> None:
        """Malformed URLs are a validation error, not a denial."""
        with pytest.raises(UrlValidationError):
            await guard.authorize("not a url", 1)

    async def test__authorize__empty_ownership_denies(
        self, cache: TieredCache,
    ) -> None:
        """With no bookmarks at all the caller is denied."""
        guard = AccessGuard(cache, OwnershipLookup({}))

        assert await guard.authorize(URL, 1) is False

    async def test__ensure_authorized__raises_access_denied(self, guard: AccessGuard) -> None:
        """ensure_authorized turns a denial into AccessDeniedError."""
        with pytest.raises(AccessDeniedError) as exc_info:
            await guard.ensure_authorized(URL, 2)

        assert exc_info.value.user_id == 2
        assert "must have a bookmark" in str(exc_info.value)


class TestOwnershipCache:
    """Tests for caching of ownership sets."""

    async def test__owned_urls__cached_for_ttl(
        self, guard: AccessGuard, lookup: OwnershipLookup, clock: FakeClock,
    ) -> None:
        """The lookup runs once per TTL window."""
        await guard.authorize(URL, 1)
        clock.advance(299)
        await guard.authorize(URL, 1)
        assert lookup.calls == [1]

        clock.advance(2)
        await guard.authorize(URL, 1)

        assert lookup.calls == [1, 1]

    async def test__owned_urls__stored_in_persistent_tier(
        self, guard: AccessGuard, fake_redis: FakeRedis,
    ) -> None:
        """The ownership set is written through to the shared tier."""
        await guard.owned_urls(1)

        assert TieredCache.persistent_key(ownership_cache_key(1)) in fake_redis.data

    async def test__invalidate__forces_reload(
        self, guard: AccessGuard, lookup: OwnershipLookup,
    ) -> None:
        """After invalidation a newly bookmarked URL is visible immediately."""
        assert await guard.authorize("https://new.example.com", 1) is False
        lookup.owned[1].add("https://new.example.com")

        await guard.invalidate(1)

        assert await guard.authorize("https://new.example.com", 1) is True

    async def test__refresh__replaces_cached_set(
        self, guard: AccessGuard, lookup: OwnershipLookup,
    ) -> None:
        """refresh() installs a caller-supplied set without calling the lookup."""
        await guard.refresh(1, {"https://changed.example.com"})

        assert await guard.authorize("https://changed.example.com", 1) is True
        assert await guard.authorize(URL, 1) is False
        assert lookup.calls == []

    async def test__cache_failure__still_enforced(
        self, guard: AccessGuard, fake_redis: FakeRedis, lookup: OwnershipLookup,
    ) -> None:
        """A broken shared tier falls back to the database, never to allowing everything."""
        fake_redis.fail = True

        assert await guard.authorize(URL, 2) is False
        assert await guard.authorize(URL, 1) is True
        assert lookup.calls == [2, 1]
