"""Tests for VisitCounter and the startup bootstrap."""

from __future__ import annotations

import pytest

from visit_counter.core.counter import VisitCounter, ensure_visit_record
from visit_counter.core.models import VISIT_COUNT_KEY, VisitRecord
from visit_counter.errors import ServiceError, StoreError
from visit_counter.storage.memory_storage import MemoryVisitStorage


class FailingSaveStorage(MemoryVisitStorage):
    async def save_record(self, record: VisitRecord) -> VisitRecord:
        raise StoreError("write concern failed")


@pytest.mark.asyncio
async def test_bootstrap_creates_zero_record(storage):
    created = await ensure_visit_record(storage)
    assert created is True
    record = await storage.find_record()
    assert record.count == 0


@pytest.mark.asyncio
async def test_bootstrap_is_idempotent(storage):
    await storage.create_record(7)
    writes_before = storage.writes

    assert await ensure_visit_record(storage) is False
    assert await ensure_visit_record(storage) is False

    assert storage.writes == writes_before
    assert (await storage.find_record()).count == 7


@pytest.mark.asyncio
async def test_cache_miss_without_record(storage, cache):
    counter = VisitCounter(storage=storage, cache=cache)

    assert await counter.get_and_increment() == 1
    assert (await storage.find_record()).count == 1
    assert cache.get(VISIT_COUNT_KEY) == 1


@pytest.mark.asyncio
async def test_cache_miss_with_existing_record(storage, cache):
    await storage.create_record(41)
    counter = VisitCounter(storage=storage, cache=cache)

    assert await counter.get_and_increment() == 42
    assert (await storage.find_record()).count == 42
    assert cache.get(VISIT_COUNT_KEY) == 42


@pytest.mark.asyncio
async def test_cache_hit_short_circuits(storage, cache):
    await storage.create_record(5)
    cache.set(VISIT_COUNT_KEY, 99)
    writes_before = storage.writes
    counter = VisitCounter(storage=storage, cache=cache)

    assert await counter.get_and_increment() == 99
    assert await counter.get_and_increment() == 99
    assert storage.writes == writes_before
    assert (await storage.find_record()).count == 5


@pytest.mark.asyncio
async def test_cached_zero_is_a_miss(storage, cache):
    await storage.create_record(0)
    cache.set(VISIT_COUNT_KEY, 0)
    counter = VisitCounter(storage=storage, cache=cache)

    assert await counter.get_and_increment() == 1
    assert cache.get(VISIT_COUNT_KEY) == 1


@pytest.mark.asyncio
async def test_expired_cache_goes_back_to_store(storage, cache, clock):
    await storage.create_record(3)
    counter = VisitCounter(storage=storage, cache=cache)

    assert await counter.get_and_increment() == 4
    clock.advance(300)
    assert await counter.get_and_increment() == 4
    clock.advance(301)
    assert await counter.get_and_increment() == 5


@pytest.mark.asyncio
async def test_store_failure_raises_service_error(cache):
    storage = FailingSaveStorage()
    await storage.create_record(41)
    counter = VisitCounter(storage=storage, cache=cache)

    with pytest.raises(ServiceError) as excinfo:
        await counter.get_and_increment()

    assert isinstance(excinfo.value.__cause__, StoreError)
    assert cache.get(VISIT_COUNT_KEY) is None
