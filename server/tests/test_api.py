"""Tests for the HTTP endpoints and middleware chain."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from visit_counter.core.counter import VisitCounter
from visit_counter.core.models import VISIT_COUNT_KEY, VisitRecord
from visit_counter.errors import StoreError
from visit_counter.main import create_app
from visit_counter.storage.memory_storage import MemoryVisitStorage


class BrokenStorage(MemoryVisitStorage):
    """Connected store whose reads always fail."""

    async def find_record(self) -> VisitRecord | None:
        raise StoreError("connection refused")


@pytest.mark.asyncio
async def test_index(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.text == "Server is running!"
    assert resp.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "OK"
    assert data["uptime"] >= 0


@pytest.mark.asyncio
async def test_readiness_connected(client):
    resp = await client.get("/readiness")
    assert resp.status_code == 200
    assert resp.json() == {"status": "Ready"}


@pytest.mark.asyncio
async def test_readiness_after_disconnect(client, storage):
    await storage.close()
    resp = await client.get("/readiness")
    assert resp.status_code == 500
    assert resp.json() == {"status": "Not Ready"}


@pytest.mark.asyncio
async def test_readiness_without_storage(client, app):
    app.state.storage = None
    resp = await client.get("/readiness")
    assert resp.status_code == 500


@pytest.mark.asyncio
async def test_visit_first_request_creates_record(client, storage):
    resp = await client.get("/api/visit")
    assert resp.status_code == 200
    assert resp.json() == {"visitCount": 1}
    record = await storage.find_record()
    assert record.count == 1


@pytest.mark.asyncio
async def test_visit_warm_cache_does_not_increment(client, storage):
    await storage.create_record(41)

    first = await client.get("/api/visit")
    second = await client.get("/api/visit")

    assert first.json() == {"visitCount": 42}
    assert second.json() == {"visitCount": 42}
    assert (await storage.find_record()).count == 42


@pytest.mark.asyncio
async def test_visit_increments_again_after_expiry(client, storage, clock):
    await storage.create_record(10)
    assert (await client.get("/api/visit")).json() == {"visitCount": 11}

    clock.advance(601)

    assert (await client.get("/api/visit")).json() == {"visitCount": 12}


@pytest.mark.asyncio
async def test_visit_store_failure_returns_error(app, client, cache):
    broken = BrokenStorage()
    await broken.connect()
    app.state.storage = broken
    app.state.counter = VisitCounter(storage=broken, cache=cache)

    resp = await client.get("/api/visit")

    assert resp.status_code == 500
    data = resp.json()
    assert set(data) == {"error"}
    assert "connection refused" in data["error"]
    assert "Traceback" not in data["error"]
    assert cache.get(VISIT_COUNT_KEY) is None


@pytest.mark.asyncio
async def test_error_response_keeps_security_headers(app, client, cache):
    broken = BrokenStorage()
    app.state.counter = VisitCounter(storage=broken, cache=cache)

    resp = await client.get("/api/visit")

    assert resp.status_code == 500
    assert resp.headers["x-content-type-options"] == "nosniff"


@pytest.mark.asyncio
async def test_security_headers(client):
    resp = await client.get("/health")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "SAMEORIGIN"
    assert resp.headers["referrer-policy"] == "no-referrer"
    assert "max-age=" in resp.headers["strict-transport-security"]
    assert "default-src 'self'" in resp.headers["content-security-policy"]


@pytest.mark.asyncio
async def test_cors_allows_any_origin(client):
    resp = await client.get("/health", headers={"origin": "https://example.com"})
    assert resp.headers["access-control-allow-origin"] == "*"


@pytest.mark.asyncio
async def test_cors_preflight(client):
    resp = await client.options(
        "/api/visit",
        headers={
            "origin": "https://example.com",
            "access-control-request-method": "GET",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"


@pytest.mark.asyncio
async def test_rate_limit_headers(client):
    resp = await client.get("/")
    assert resp.headers["x-ratelimit-limit"] == "100"
    assert resp.headers["x-ratelimit-remaining"] == "99"


@pytest.mark.asyncio
async def test_rate_limit_rejects_excess_requests(config, storage, cache):
    config.limits.rate_limit_max_requests = 3
    app = create_app(config)
    app.state.storage = storage
    app.state.counter = VisitCounter(storage=storage, cache=cache)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        statuses = [(await c.get("/health")).status_code for _ in range(4)]
        blocked = await c.get("/api/visit")

    assert statuses == [200, 200, 200, 429]
    assert blocked.status_code == 429
    assert blocked.json() == {"error": "Too many requests, please try again later."}
    assert int(blocked.headers["retry-after"]) >= 1
    # Rejected requests never reach the counter.
    assert await storage.find_record() is None
