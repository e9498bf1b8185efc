"""Storage interface (port) for the persisted visit record."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from visit_counter.core.models import VisitRecord


class VisitStorage(Protocol):
    """Port: persists the singleton visit record to durable storage."""

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def find_record(self) -> VisitRecord | None: ...

    async def create_record(self, initial_count: int) -> VisitRecord: ...

    async def save_record(self, record: VisitRecord) -> VisitRecord: ...
