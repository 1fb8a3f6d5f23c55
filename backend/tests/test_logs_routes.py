"""Tests for the event log route."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_recent_logs(client: AsyncClient, services):
    for i in range(3):
        services.events.log("info", "system", f"event {i}")
    resp = await client.get("/api/logs/recent", params={"limit": 2})
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    assert [r["message"] for r in data["records"]] == ["event 1", "event 2"]


@pytest.mark.asyncio
async def test_recent_logs_by_category(client: AsyncClient, services):
    services.events.log("info", "file", "file event")
    services.events.log("info", "system", "system event")
    resp = await client.get("/api/logs/recent", params={"category": "file"})
    data = resp.json()
    assert [r["message"] for r in data["records"]] == ["file event"]


@pytest.mark.asyncio
async def test_limit_bounds(client: AsyncClient):
    resp = await client.get("/api/logs/recent", params={"limit": 0})
    assert resp.status_code == 422
