"""In-process storage implementation of VisitStorage.

Holds the single record in memory. Used by the ``memory`` backend for local
development and by the test suite.
"""

from __future__ import annotations

from dataclasses import replace

import structlog

from visit_counter.core.models import VisitRecord

log = structlog.get_logger()


class MemoryVisitStorage:
    """VisitStorage holding the record in process memory."""

    def __init__(self) -> None:
        self._record: VisitRecord | None = None
        self._next_id = 1
        self._connected = False
        self.writes = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        log.info("memory_store_connected")

    async def close(self) -> None:
        self._connected = False
        log.info("memory_store_disconnected")

    async def find_record(self) -> VisitRecord | None:
        if self._record is None:
            return None
        return replace(self._record)

    async def create_record(self, initial_count: int) -> VisitRecord:
        record = VisitRecord(count=initial_count, id=self._next_id)
        self._next_id += 1
        self._record = replace(record)
        self.writes += 1
        return record

    async def save_record(self, record: VisitRecord) -> VisitRecord:
        if record.id is None:
            return await self.create_record(record.count)
        self._record = replace(record)
        self.writes += 1
        return record
