from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from nft_api.config import Settings, settings
from nft_api.main import create_app


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient, fake_rpc):
    """Test the /health endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["network"] == settings.SOLANA_NETWORK
    assert datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00"))
    assert fake_rpc.calls == []


@pytest.mark.asyncio
async def test_get_version(client: AsyncClient):
    """Test the /version endpoint."""
    response = await client.get("/version")
    assert response.status_code == 200
    assert response.json()["app_name"] == settings.APP_NAME
    assert response.json()["version"] == settings.APP_VERSION


@pytest.mark.asyncio
async def test_unknown_endpoint(client: AsyncClient):
    response = await client.get("/api/unknown")
    assert response.status_code == 404
    assert response.json() == {"error": "Endpoint not found"}


@pytest.mark.asyncio
async def test_unsupported_method(client: AsyncClient):
    response = await client.delete("/api/nft/mint")
    assert response.status_code == 404
    assert response.json() == {"error": "Endpoint not found"}


@pytest.mark.asyncio
async def test_health_reports_app_settings():
    custom = Settings(_env_file=None, SOLANA_NETWORK="testnet", APP_NAME="Custom Mint API")
    custom_app = create_app(custom)

    async with AsyncClient(transport=ASGITransport(app=custom_app), base_url="http://test") as ac:
        health = await ac.get("/health")
        version = await ac.get("/version")

    assert health.json()["network"] == "testnet"
    assert version.json()["app_name"] == "Custom Mint API"
