"""Throttled access-count updates for thumbnail records."""
import logging

from sqlalchemy.exc import SQLAlchemyError

from core.cache import MemoryCache
from services.metadata_store import ThumbnailMetadataStore

logger = logging.getLogger(__name__)

ACCESS_COOLDOWN_SECONDS = 24 * 60 * 60
MAX_COOLDOWN_ENTRIES = 10_000


def access_cooldown_key(record_id: str) -> str:
    """Memory-cache key marking a record as recently counted."""
    return f"thumbnail_access_{record_id}"


class AccessStatsTracker:
    """
    Records thumbnail accesses at most once per cooldown window per record.

    The cooldown lives in process memory only, so a restart may let one extra
    update through. Cooldowns are kept apart from the lookup cache so a day of
    cooldowns can't fill it. Once their own map is full, extra updates go
    through. Statistics are best-effort and never fail the caller.
    """

    def __init__(
        self,
        store: ThumbnailMetadataStore,
        cooldowns: MemoryCache,
        cooldown_seconds: float = ACCESS_COOLDOWN_SECONDS,
    ) -> None:
        self._store = store
        self._cooldowns = cooldowns
        self._cooldown_seconds = cooldown_seconds

    async def touch(self, record_id: str) -> bool:
        """
        Count an access to record_id unless one was counted within the cooldown.

        Returns:
            True if the record was updated.
        """
        key = access_cooldown_key(record_id)
        if self._cooldowns.get(key) is not None:
            return False
        try:
            updated = await self._store.touch(record_id)
        except SQLAlchemyError as e:
            logger.warning("thumbnail_access_update_failed record_id=%s error=%s", record_id, e)
            return False
        self._cooldowns.set(key, True, self._cooldown_seconds)
        return updated
