"""Tests for the cache routes."""

import pytest
from httpx import AsyncClient


@pytest.fixture
def tree(root):
    (root / "a" / "b").mkdir(parents=True)
    (root / "a" / "x.txt").write_text("x")
    return root


@pytest.mark.asyncio
async def test_refresh_and_wait(client: AsyncClient, tree):
    resp = await client.post("/api/cache/refresh", json={"strategy": "full", "wait": True})
    assert resp.status_code == 200
    data = resp.json()
    assert data["stage"] == "complete"
    assert data["isScanning"] is False
    assert data["directories"] == 3
    assert data["totalItems"] == 3

    stats = (await client.get("/api/cache/stats")).json()
    assert stats["directories"] == 3
    assert stats["files"] == 3
    assert stats["generation"] >= 3


@pytest.mark.asyncio
async def test_background_refresh_progress(client: AsyncClient, services, tree):
    resp = await client.post("/api/cache/refresh", json={"strategy": "smart", "path": "a"})
    assert resp.status_code == 200
    assert resp.json()["isScanning"] is True

    await services.refresh.wait()
    progress = (await client.get("/api/cache/progress")).json()
    assert progress["stage"] == "complete"
    assert progress["target"] == "a"
    assert progress["strategy"] == "smart"


@pytest.mark.asyncio
async def test_strict_refresh_conflict(client: AsyncClient, services, tree):
    services.refresh.start("full")
    resp = await client.post(
        "/api/cache/refresh", json={"strategy": "fast", "strict": True, "wait": True}
    )
    assert resp.status_code == 409
    assert resp.json()["kind"] == "ScanBusy"
    await services.refresh.wait()


@pytest.mark.asyncio
async def test_refresh_missing_target(client: AsyncClient, tree):
    resp = await client.post(
        "/api/cache/refresh", json={"strategy": "fast", "path": "nope", "wait": True}
    )
    assert resp.status_code == 404
    progress = (await client.get("/api/cache/progress")).json()
    assert progress["stage"] == "error"


@pytest.mark.asyncio
async def test_unknown_strategy(client: AsyncClient, tree):
    resp = await client.post("/api/cache/refresh", json={"strategy": "turbo"})
    assert resp.status_code == 422
