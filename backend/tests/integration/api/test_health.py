"""
Integration test for the health endpoint.

WHY: Load balancers call /health without a token.
"""

import pytest
from httpx import AsyncClient

from homebid.core.config import settings


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_without_auth(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == settings.VERSION
        assert data["scheduler"]["running"] is False
