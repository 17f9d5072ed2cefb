"""Tests for the health check endpoint."""
import httpx
import respx
from httpx import AsyncClient

from services.thumbnail_services import ThumbnailServices
from tests.fakes import RENDER_API_URL, FakeRedis

RENDER_HEALTH_URL = f"{RENDER_API_URL}/health"


@respx.mock
async def test_health_endpoint_returns_healthy_status(client: AsyncClient) -> None:
    """All dependencies up reports healthy everywhere."""
    respx.get(RENDER_HEALTH_URL).mock(return_value=httpx.Response(200))

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "database": "healthy",
        "redis": "healthy",
        "render_service": "healthy",
    }


@respx.mock
async def test_health_endpoint_degraded_dependencies_keep_status_healthy(
    client: AsyncClient, fake_redis: FakeRedis,
) -> None:
    """Redis and the renderer have fallbacks, so their outage doesn't fail the API."""
    respx.get(RENDER_HEALTH_URL).mock(side_effect=httpx.ConnectError("refused"))
    fake_redis.fail = True

    response = await client.get("/health")

    data = response.json()
    assert data["status"] == "healthy"
    assert data["redis"] == "unavailable"
    assert data["render_service"] == "unavailable"


async def test_health_endpoint_reports_disabled_and_unconfigured(
    client: AsyncClient,
    fake_redis: FakeRedis,
    thumbnail_services: ThumbnailServices,
    monkeypatch,
) -> None:
    """A disabled Redis and a renderer without API key are reported as such."""
    fake_redis.enabled = False
    monkeypatch.setattr(thumbnail_services.render_client, "_api_key", "")

    response = await client.get("/health")

    data = response.json()
    assert data["redis"] == "disabled"
    assert data["render_service"] == "not_configured"
