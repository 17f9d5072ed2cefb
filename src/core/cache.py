"""
Two-tier local cache: a process-memory map in front of a persistent Redis tier.

Reads check memory first, then Redis; a Redis hit backfills memory. Writes go to
both tiers. Every entry carries an absolute expiry checked against the injected
clock, so expired entries are treated as misses even if Redis still holds them.
The persistent tier is best-effort: any failure there degrades to memory-only
caching and never reaches the caller.
"""
import json
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from core.clock import Clock, system_clock

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)

PERSISTENT_KEY_PREFIX = "cache_"
DEFAULT_TTL_SECONDS = 5 * 60
MAX_MEMORY_ENTRIES = 100


@dataclass
class CacheEntry:
    """A cached payload with its write time and absolute expiry (Unix seconds)."""

    data: Any
    timestamp: float
    expires: float

    def is_expired(self, now: float) -> bool:
        """Check whether the entry has passed its expiry."""
        return now > self.expires

    def to_json(self) -> str:
        """Serialize for the persistent tier."""
        return json.dumps(
            {"data": self.data, "timestamp": self.timestamp, "expires": self.expires},
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "CacheEntry":
        """Deserialize an entry written by to_json."""
        d = json.loads(raw)
        return cls(data=d["data"], timestamp=d["timestamp"], expires=d["expires"])


class MemoryCache:
    """
    Capacity-bounded in-process cache with per-entry TTL.

    When a write finds the cache at capacity, expired entries are swept first.
    This is size-triggered cleanup, not LRU eviction: live entries are never
    evicted to make room. A new key that still finds no room is not stored in
    memory, and a tiered cache keeps serving it from Redis.
    """

    def __init__(
        self,
        clock: Clock = system_clock,
        max_entries: int = MAX_MEMORY_ENTRIES,
        default_ttl: float = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._clock = clock
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: Any, ttl: float | None = None) -> CacheEntry:
        """
        Store value under key, expiring ttl seconds from now.

        The entry is returned even when the cache is full of live entries and the
        write is skipped.
        """
        now = self._clock()
        entry = CacheEntry(
            data=value,
            timestamp=now,
            expires=now + (self._default_ttl if ttl is None else ttl),
        )
        if self._has_room(key):
            self._entries[key] = entry
        return entry

    def put_entry(self, key: str, entry: CacheEntry) -> None:
        """Store an existing entry unchanged (used for backfill from the persistent tier)."""
        if self._has_room(key):
            self._entries[key] = entry

    def _has_room(self, key: str) -> bool:
        """Sweep at capacity; a new key only goes in if the sweep freed a slot."""
        if key in self._entries or len(self._entries) < self._max_entries:
            return True
        self.sweep()
        if len(self._entries) < self._max_entries:
            return True
        logger.debug("memory_cache_full key=%s", key)
        return False

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, deleting it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """Return the cached value for key, or None on miss/expiry."""
        entry = self.get_entry(key)
        return entry.data if entry is not None else None

    def remove(self, key: str) -> None:
        """Remove key if present."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def sweep(self) -> int:
        """Delete all expired entries. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("memory_cache_sweep removed=%d", len(expired))
        return len(expired)


class TieredCache:
    """Memory tier backed by an optional persistent Redis tier."""

    def __init__(
        self,
        persistent: "RedisClient | None" = None,
        clock: Clock = system_clock,
        max_memory_entries: int = MAX_MEMORY_ENTRIES,
        default_ttl: float = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._persistent = persistent
        self._clock = clock
        self._default_ttl = default_ttl
        self.memory = MemoryCache(
            clock=clock, max_entries=max_memory_entries, default_ttl=default_ttl,
        )

    @staticmethod
    def persistent_key(key: str) -> str:
        """Key under which an entry is stored in the persistent tier."""
        return f"{PERSISTENT_KEY_PREFIX}{key}"

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Write value to both tiers."""
        entry = self.memory.set(key, value, ttl)
        if self._persistent is None:
            return
        try:
            await self._persistent.setex(
                self.persistent_key(key),
                max(1, math.ceil(entry.expires - entry.timestamp)),
                entry.to_json(),
            )
        except (RedisError, TypeError, ValueError) as e:
            logger.warning("cache_persistent_set_failed key=%s error=%s", key, e)

    async def get(self, key: str) -> Any | None:
        """Read from memory, then from the persistent tier (backfilling memory)."""
        entry = self.memory.get_entry(key)
        if entry is not None:
            return entry.data

        if self._persistent is None:
            return None
        persistent_key = self.persistent_key(key)
        try:
            raw = await self._persistent.get(persistent_key)
            if raw is None:
                return None
            entry = CacheEntry.from_json(raw)
            if entry.is_expired(self._clock()):
                await self._persistent.delete(persistent_key)
                return None
        except (RedisError, TypeError, ValueError, KeyError) as e:
            logger.warning("cache_persistent_get_failed key=%s error=%s", key, e)
            return None

        self.memory.put_entry(key, entry)
        return entry.data

    async def remove(self, key: str) -> None:
        """Remove key from both tiers."""
        self.memory.remove(key)
        if self._persistent is None:
            return
        try:
            await self._persistent.delete(self.persistent_key(key))
        except RedisError as e:
            logger.warning("cache_persistent_remove_failed key=%s error=%s", key, e)

    async def clear(self) -> None:
        """Clear the memory tier and every prefixed key in the persistent tier."""
        self.memory.clear()
        if self._persistent is None:
            return
        try:
            await self._persistent.delete_prefix(PERSISTENT_KEY_PREFIX)
        except RedisError as e:
            logger.warning("cache_persistent_clear_failed error=%s", e)

    async def stats(self) -> dict[str, int]:
        """Entry counts per tier."""
        persistent_keys = 0
        if self._persistent is not None:
            try:
                persistent_keys = await self._persistent.count_prefix(PERSISTENT_KEY_PREFIX)
            except RedisError as e:
                logger.warning("cache_persistent_stats_failed error=%s", e)
        return {"memory_size": len(self.memory), "persistent_keys": persistent_keys}
