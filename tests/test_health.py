"""Tests for GET /api/health."""
import pytest
from httpx import ASGITransport, AsyncClient

from folio.main import create_app
from folio.services.completion_client import CompletionClient
from folio.services.retrieval import RetrievalClient


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["completion_service"] == "ok"
    assert data["retrieval"] == "disabled"
    assert data["active_jobs"] == 0
    assert data["generation_slots_free"] == 1
    assert "x-process-time" in resp.headers


@pytest.mark.asyncio
async def test_health_degraded_without_api_key(test_settings):
    app = create_app(
        test_settings,
        completion_client=CompletionClient(base_url="http://llm.test", api_key=""),
        retrieval_client=RetrievalClient(proxy_url="http://search.test/query"),
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        data = (await ac.get("/api/health/")).json()

    assert data["status"] == "degraded"
    assert data["completion_service"] == "not_configured"
    assert data["retrieval"] == "ok"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Folio API"
    assert data["endpoints"]["jobs"] == "/api/documents/jobs"
