"""Redis client with connection pooling and graceful fallback."""
import logging

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import NoScriptError, RedisError

logger = logging.getLogger(__name__)

# Lua script for sliding window rate limiting; atomic across workers sharing Redis
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local request_id = ARGV[4]

-- Drop attempts that have left the window
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)

local count = redis.call('ZCARD', key)

if count < limit then
    redis.call('ZADD', key, now, now .. ':' .. request_id)
    redis.call('EXPIRE', key, window)
    return {1, limit - count - 1, 0}
else
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local retry_after = 0
    if oldest and oldest[2] then
        retry_after = math.ceil((oldest[2] + window) - now)
    end
    return {0, 0, retry_after}
end
"""


class RedisClient:
    """
    Async Redis client with connection pooling and graceful fallback.

    Every operation returns a neutral value (None/False/0) instead of raising when
    Redis is disabled, unreachable, or errors, so callers can treat Redis as an
    optional acceleration layer.
    """

    def __init__(self, url: str, enabled: bool = True, pool_size: int = 20) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._sliding_window_sha: str | None = None

    async def connect(self) -> None:
        """Initialize connection pool and load Lua scripts."""
        if not self._enabled:
            logger.info("Redis disabled by configuration")
            return
        try:
            self._pool = ConnectionPool.from_url(self._url, max_connections=self._pool_size)
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
            await self._load_scripts()
            logger.info("Redis connected successfully")
        except RedisError as e:
            logger.warning("Redis connection failed: %s", e)
            self._client = None
            self._pool = None

    async def _load_scripts(self) -> None:
        """Load Lua scripts and store their SHAs for evalsha calls."""
        if not self._client:
            return
        try:
            self._sliding_window_sha = await self._client.script_load(SLIDING_WINDOW_SCRIPT)
        except RedisError as e:
            logger.warning("Failed to load Lua scripts: %s", e)

    async def close(self) -> None:
        """Close connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._pool = None
            logger.info("Redis connection closed")

    @property
    def enabled(self) -> bool:
        """Whether Redis is enabled by configuration."""
        return self._enabled

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        if not self._client:
            return False
        try:
            return await self._client.ping()
        except RedisError:
            return False

    async def get(self, key: str) -> bytes | None:
        """Get value, returns None if Redis unavailable."""
        if not self._client:
            return None
        try:
            return await self._client.get(key)
        except RedisError as e:
            logger.warning("Redis GET failed: %s", e)
            return None

    async def setex(self, key: str, seconds: int, value: str | bytes) -> bool:
        """Set value with expiry, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            await self._client.setex(key, seconds, value)
            return True
        except RedisError as e:
            logger.warning("Redis SETEX failed: %s", e)
            return False

    async def delete(self, *keys: str) -> bool:
        """Delete key(s), returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            await self._client.delete(*keys)
            return True
        except RedisError as e:
            logger.warning("Redis DELETE failed: %s", e)
            return False

    async def delete_prefix(self, prefix: str) -> int:
        """
        Delete every key starting with prefix.

        Uses SCAN rather than KEYS so large keyspaces don't block the server.

        Returns:
            Number of keys deleted (0 if Redis unavailable).
        """
        if not self._client:
            return 0
        deleted = 0
        try:
            batch: list[bytes] = []
            async for key in self._client.scan_iter(match=f"{prefix}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._client.delete(*batch)
        except RedisError as e:
            logger.warning("Redis prefix delete failed: %s", e)
        return deleted

    async def count_prefix(self, prefix: str) -> int:
        """Count keys starting with prefix, returns 0 if Redis unavailable."""
        if not self._client:
            return 0
        count = 0
        try:
            async for _ in self._client.scan_iter(match=f"{prefix}*", count=500):
                count += 1
        except RedisError as e:
            logger.warning("Redis prefix count failed: %s", e)
        return count

    async def eval_sliding_window(
        self,
        key: str,
        now: int,
        window_seconds: int,
        max_requests: int,
        request_id: str,
    ) -> list[int] | None:
        """
        Execute the sliding window rate limit script, reloading it once on NOSCRIPT.

        Args:
            key: Redis key for this rate limit bucket
            now: Current Unix timestamp
            window_seconds: Window size in seconds
            max_requests: Maximum requests allowed in window
            request_id: Unique ID for this request (prevents collisions)

        Returns:
            [allowed, remaining, retry_after] or None if Redis unavailable
        """
        # The SHA is missing if scripts couldn't be loaded at connect or on reload
        if not self._client or self._sliding_window_sha is None:
            return None

        args = (key, now, window_seconds, max_requests, request_id)
        try:
            return await self._client.evalsha(self._sliding_window_sha, 1, *args)
        except NoScriptError:
            # Redis restarted and lost its script cache
            logger.warning("redis_script_reload", extra={"script": "sliding_window"})
            await self._load_scripts()
            if self._sliding_window_sha is None:
                return None
            try:
                return await self._client.evalsha(self._sliding_window_sha, 1, *args)
            except RedisError as e:
                logger.warning("Redis sliding window retry failed: %s", e)
                return None
        except RedisError as e:
            logger.warning("Redis sliding window failed: %s", e)
            return None
