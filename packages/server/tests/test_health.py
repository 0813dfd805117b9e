"""
Health check endpoint tests.
"""

from unittest.mock import AsyncMock, patch

from httpx import AsyncClient


async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_ready_check(client: AsyncClient):
    """Ready endpoint should return status ready when dependencies answer."""
    with patch("app.main.redis_ready", AsyncMock(return_value=True)):
        response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


async def test_ready_check_redis_down(client: AsyncClient):
    with patch("app.main.redis_ready", AsyncMock(return_value=False)):
        response = await client.get("/ready")
    assert response.status_code == 503
    assert response.json() == {"status": "unavailable", "dependency": "redis"}


async def test_api_root(client: AsyncClient):
    """API v1 root should return version and endpoint list."""
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/workspaces" in data["endpoints"]


async def test_unknown_route_uses_error_shape(client: AsyncClient):
    response = await client.get("/api/v1/nothing-here")
    assert response.status_code == 404
    assert set(response.json()) == {"message", "code"}


async def test_error_bodies_documented(client: AsyncClient):
    schema = (await client.get("/openapi.json")).json()
    assert "ErrorResponse" in schema["components"]["schemas"]
    responses = schema["paths"]["/auth/login"]["post"]["responses"]
    assert responses["401"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
