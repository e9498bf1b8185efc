"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from visit_counter.cache.memory_cache import MemoryCountCache
from visit_counter.config import AppConfig
from visit_counter.core.counter import VisitCounter
from visit_counter.main import create_app
from visit_counter.storage.memory_storage import MemoryVisitStorage


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    config = AppConfig()
    config.storage.backend = "memory"
    config.logging.level = "warning"
    config.logging.file = ""
    return config


@pytest.fixture
async def storage():
    storage = MemoryVisitStorage()
    await storage.connect()
    return storage


@pytest.fixture
def cache(clock):
    return MemoryCountCache(ttl_seconds=600, check_period_seconds=120, clock=clock)


@pytest.fixture
def app(config, storage, cache):
    """Application wired with in-memory components, without running the lifespan."""
    app = create_app(config)
    app.state.storage = storage
    app.state.counter = VisitCounter(storage=storage, cache=cache)
    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
