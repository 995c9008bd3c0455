import pytest
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport
from plasticwatch.main import app


@pytest.mark.asyncio
async def test_health_no_api_key_required():
    """Health stays reachable for connectivity probes when API_KEY is set."""
    with patch("plasticwatch.dependencies.settings") as mock_settings:
        mock_settings.api_key = "secret123"
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_protected_route_no_key_configured():
    with patch("plasticwatch.dependencies.settings") as mock_settings:
        mock_settings.api_key = ""
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/contributions")
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_protected_route_missing_key():
    with patch("plasticwatch.dependencies.settings") as mock_settings:
        mock_settings.api_key = "secret123"
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/stats/overview")
        assert response.status_code == 403
        assert "API key" in response.json()["detail"]


@pytest.mark.asyncio
async def test_protected_route_wrong_key():
    with patch("plasticwatch.dependencies.settings") as mock_settings:
        mock_settings.api_key = "secret123"
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(
                "/api/v1/contributions",
                headers={"X-API-Key": "wrong-key"},
            )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_protected_route_correct_key():
    with patch("plasticwatch.dependencies.settings") as mock_settings:
        mock_settings.api_key = "secret123"
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(
                "/api/v1/contributions",
                headers={"X-API-Key": "secret123"},
            )
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_stored_images_need_no_api_key():
    """Object reads are linked directly from the dashboards."""
    with patch("plasticwatch.dependencies.settings") as mock_settings:
        mock_settings.api_key = "secret123"
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/storage/images/missing.jpg")
        # Not found rather than rejected by the key check
        assert response.status_code == 404
