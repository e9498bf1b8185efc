"""In-process TTL cache implementation of CountCache.

Entries expire lazily on read. ``run_cleanup`` prunes expired entries on a
fixed period so an idle cache does not hold stale values forever.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

import structlog

log = structlog.get_logger()


class MemoryCountCache:
    """CountCache backed by a dict of (expires_at, value). Zero dependencies."""

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        check_period_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._check_period = check_period_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, int]] = {}

    def get(self, key: str) -> int | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: int) -> None:
        self._entries[key] = (self._clock() + self._ttl, value)

    def prune(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    async def run_cleanup(self) -> None:
        """Periodically prune expired entries. Runs as a background task."""
        log.info("cache_cleanup_started", period_seconds=self._check_period)
        while True:
            await asyncio.sleep(self._check_period)
            removed = self.prune()
            if removed:
                log.debug("cache_pruned", removed=removed)
