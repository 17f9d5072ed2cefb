"""
Sliding-window rate limiting enforcement.

This module contains the enforcement logic - the "how" of rate limiting.
For configuration (limits per action), see rate_limit_config.py.

Attempts are counted in a Redis sorted set so every worker shares one window per
key. When Redis is disabled or unreachable the limiter keeps counting in process
memory instead of failing open, so the limits still hold per worker.
"""
import logging
import math
import uuid
from dataclasses import dataclass, field

from core.clock import Clock, system_clock
from core.rate_limit_config import (
    RATE_LIMITS,
    RateLimitedAction,
    RateLimitExceededError,
    RateLimitResult,
    rate_limit_key,
)
from core.redis import RedisClient

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "rate:"
MEMORY_SWEEP_THRESHOLD = 1024


@dataclass
class _MemoryBucket:
    window_seconds: float
    attempts: list[float] = field(default_factory=list)


class SlidingWindowRateLimiter:
    """Per-key sliding-window counter backed by Redis, with an in-memory fallback."""

    def __init__(
        self,
        redis_client: RedisClient | None = None,
        clock: Clock = system_clock,
        sweep_threshold: int = MEMORY_SWEEP_THRESHOLD,
    ) -> None:
        self._redis = redis_client
        self._clock = clock
        self._sweep_threshold = sweep_threshold
        self._buckets: dict[str, _MemoryBucket] = {}

    @property
    def tracked_keys(self) -> int:
        """Number of keys held by the in-memory fallback."""
        return len(self._buckets)

    async def check(
        self, key: str, max_attempts: int, window_seconds: float,
    ) -> RateLimitResult:
        """
        Check whether another attempt is allowed for key, recording it if so.

        Args:
            key: Bucket identifier (e.g. 'bookmark-create-42').
            max_attempts: Attempts permitted within the window.
            window_seconds: Window length in seconds.

        Returns:
            RateLimitResult with the decision and header values.
        """
        if self._redis is not None and self._redis.is_connected:
            result = await self._check_redis(key, max_attempts, window_seconds)
            if result is not None:
                return result
            logger.warning("redis_unavailable", extra={"operation": "rate_limit"})
        return self._check_memory(key, max_attempts, window_seconds)

    async def allow(self, key: str, max_attempts: int, window_seconds: float) -> bool:
        """Boolean form of check()."""
        return (await self.check(key, max_attempts, window_seconds)).allowed

    async def enforce(
        self, key: str, max_attempts: int, window_seconds: float,
    ) -> RateLimitResult:
        """
        Check and raise if the attempt is not allowed.

        Raises:
            RateLimitExceededError: If the window already holds max_attempts attempts.
        """
        result = await self.check(key, max_attempts, window_seconds)
        if not result.allowed:
            logger.warning(
                "rate_limit_exceeded",
                extra={"key": key, "limit": max_attempts, "window_seconds": window_seconds},
            )
            raise RateLimitExceededError(result)
        return result

    async def enforce_action(
        self, action: RateLimitedAction, user_id: int | str,
    ) -> RateLimitResult:
        """Enforce the configured policy for an action performed by a user."""
        config = RATE_LIMITS[action]
        return await self.enforce(
            rate_limit_key(action, user_id), config.max_attempts, config.window_seconds,
        )

    async def reset(self, key: str) -> None:
        """Forget all recorded attempts for key."""
        self._buckets.pop(key, None)
        if self._redis is not None and self._redis.is_connected:
            await self._redis.delete(f"{REDIS_KEY_PREFIX}{key}")

    async def _check_redis(
        self, key: str, max_attempts: int, window_seconds: float,
    ) -> RateLimitResult | None:
        now = int(self._clock())
        window = math.ceil(window_seconds)
        result = await self._redis.eval_sliding_window(
            key=f"{REDIS_KEY_PREFIX}{key}",
            now=now,
            window_seconds=window,
            max_requests=max_attempts,
            request_id=str(uuid.uuid4()),
        )
        if result is None:
            return None

        allowed, remaining, retry_after = result
        return RateLimitResult(
            allowed=bool(allowed),
            limit=max_attempts,
            remaining=max(0, remaining),
            reset=now + window,
            retry_after=max(0, retry_after) if not allowed else 0,
        )

    def _check_memory(
        self, key: str, max_attempts: int, window_seconds: float,
    ) -> RateLimitResult:
        now = self._clock()
        if len(self._buckets) >= self._sweep_threshold:
            self._sweep(now)

        window_start = now - window_seconds
        bucket = self._buckets.get(key)
        recent = [t for t in bucket.attempts if t > window_start] if bucket else []

        if len(recent) >= max_attempts:
            self._buckets[key] = _MemoryBucket(window_seconds, recent)
            oldest = recent[0]
            return RateLimitResult(
                allowed=False,
                limit=max_attempts,
                remaining=0,
                reset=math.ceil(oldest + window_seconds),
                retry_after=max(1, math.ceil(oldest + window_seconds - now)),
            )

        recent.append(now)
        self._buckets[key] = _MemoryBucket(window_seconds, recent)
        return RateLimitResult(
            allowed=True,
            limit=max_attempts,
            remaining=max_attempts - len(recent),
            reset=math.ceil(recent[0] + window_seconds),
            retry_after=0,
        )

    def _sweep(self, now: float) -> None:
        """Drop keys whose newest attempt has left its window."""
        idle = [
            key for key, bucket in self._buckets.items()
            if not bucket.attempts or bucket.attempts[-1] <= now - bucket.window_seconds
        ]
        for key in idle:
            del self._buckets[key]
        if idle:
            logger.debug("rate_limit_sweep removed=%d", len(idle))
