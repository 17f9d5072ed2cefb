"""
Rate limiting configuration and types.

This module contains the policy configuration for rate limiting - the "what" limits
to apply, separate from the "how" (enforcement logic in rate_limiter.py).

To adjust rate limits, modify RATE_LIMITS below.
"""
from dataclasses import dataclass
from enum import Enum


class RateLimitedAction(Enum):
    """Abuse-relevant actions subject to per-user rate limiting."""

    BOOKMARK_CREATE = "bookmark-create"
    THUMBNAIL_REGENERATE = "thumbnail-regenerate"


@dataclass
class RateLimitConfig:
    """Sliding-window limit for a single action."""

    max_attempts: int
    window_seconds: float


@dataclass
class RateLimitResult:
    """Result of a rate limit check with all info needed for headers."""

    allowed: bool
    limit: int  # Max attempts in current window
    remaining: int  # Attempts remaining in current window
    reset: int  # Unix timestamp when the oldest attempt leaves the window
    retry_after: int  # Seconds until retry allowed (0 if allowed)


class RateLimitExceededError(Exception):
    """Raised when rate limit is exceeded."""

    def __init__(self, result: RateLimitResult) -> None:
        self.result = result
        super().__init__("Rate limit exceeded")


# ---------------------------------------------------------------------------
# Rate Limit Policy Configuration
# ---------------------------------------------------------------------------

RATE_LIMITS: dict[RateLimitedAction, RateLimitConfig] = {
    RateLimitedAction.BOOKMARK_CREATE: RateLimitConfig(max_attempts=10, window_seconds=60),
    # Regeneration always renders and uploads, so it is stricter
    RateLimitedAction.THUMBNAIL_REGENERATE: RateLimitConfig(max_attempts=5, window_seconds=60),
}


def rate_limit_key(action: RateLimitedAction, user_id: int | str) -> str:
    """Build the limiter key for an action performed by a user (e.g. 'bookmark-create-42')."""
    return f"{action.value}-{user_id}"
