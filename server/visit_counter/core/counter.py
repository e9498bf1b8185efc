"""Visit counter: cache-aside get-and-increment over the visit record.

This is the core business logic. It depends on the VisitStorage and
CountCache protocols, not concrete implementations.

The count only moves when the cache is cold. A warm cache returns the
memoised value untouched, so the stored number is the count of cache-cold
requests rather than of all requests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from visit_counter.core.models import VISIT_COUNT_KEY
from visit_counter.errors import ServiceError, StoreError

if TYPE_CHECKING:
    from visit_counter.cache.base import CountCache
    from visit_counter.storage.base import VisitStorage

log = structlog.get_logger()


async def ensure_visit_record(storage: VisitStorage) -> bool:
    """Create the visit record with a zero count if none exists.

    Returns True when a record was created. Safe to call on every startup.
    """
    if await storage.find_record() is not None:
        return False
    await storage.create_record(0)
    log.info("visit_record_initialized")
    return True


class VisitCounter:
    """Serves the visit count, incrementing the stored value on cache misses."""

    def __init__(self, storage: VisitStorage, cache: CountCache) -> None:
        self._storage = storage
        self._cache = cache

    async def get_and_increment(self) -> int:
        cached = self._cache.get(VISIT_COUNT_KEY)
        if cached:
            log.debug("visit_count_cache_hit", visit_count=cached)
            return cached

        try:
            record = await self._storage.find_record()
            if record is None:
                record = await self._storage.create_record(1)
            else:
                record.count += 1
                record = await self._storage.save_record(record)
        except StoreError as exc:
            log.error("visit_count_update_failed", error=str(exc))
            raise ServiceError(f"Failed to update visit count: {exc}") from exc

        self._cache.set(VISIT_COUNT_KEY, record.count)
        log.info("visit_count_updated", visit_count=record.count)
        return record.count
