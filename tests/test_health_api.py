import pytest
from unittest.mock import AsyncMock, MagicMock

from counter_queue.main import app


@pytest.mark.asyncio
async def test_root_health(client):
    response = await client.get("/api/v1/health/")
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_db_health(client):
    response = await client.get("/api/v1/health/db")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"


@pytest.mark.asyncio
async def test_redis_health_without_redis_reports_fallback(client):
    response = await client.get("/api/v1/health/redis")
    assert response.json()["status"] == "unavailable"
    assert response.json()["fallback"] == "in-process"


@pytest.mark.asyncio
async def test_redis_health_connected(client):
    connection = MagicMock()
    connection.connected = True
    connection.ping = AsyncMock(return_value=True)
    app.state.redis_connection = connection
    try:
        response = await client.get("/api/v1/health/redis")
    finally:
        app.state.redis_connection = None

    assert response.json() == {"status": "ok", "redis": "connected"}
