"""Injectable time source shared by caches, limiters and stores."""
import time
from collections.abc import Callable
from datetime import UTC, datetime

# Returns the current Unix time in seconds
Clock = Callable[[], float]


def system_clock() -> float:
    """Wall-clock time in seconds since the epoch."""
    return time.time()


def utc_now(clock: Clock) -> datetime:
    """Current time from clock as a timezone-aware UTC datetime."""
    return datetime.fromtimestamp(clock(), UTC)
