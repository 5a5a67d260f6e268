"""Tests for the health check endpoint."""
import pytest


class TestHealthEndpoint:
    """GET /api/v2/health."""

    @pytest.mark.asyncio
    async def test_health_check(self, anon_client):
        resp = await anon_client.get("/api/v2/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "storefront-admin"
        assert data["database"] == "in-memory"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_security_headers(self, anon_client):
        resp = await anon_client.get("/api/v2/health")
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "DENY"
