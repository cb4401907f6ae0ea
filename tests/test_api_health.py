"""
Tests for whatsrelay/api/health.py - liveness and readiness endpoints.
"""
import time
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from whatsrelay.api.health import VERSION, _check_database, health_check, readiness_check
from whatsrelay.services.session_state import ConnectionState


def _make_request(**state) -> MagicMock:
    request = MagicMock()
    request.app.state = SimpleNamespace(**state)
    return request


# ---------------------------------------------------------------------------
# GET /api/health - basic liveness
# ---------------------------------------------------------------------------


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_returns_healthy(self):
        result = await health_check(_make_request(started_at=time.monotonic()))
        assert result["success"] is True
        assert result["data"]["status"] == "healthy"
        assert result["data"]["version"] == VERSION
        assert result["data"]["uptime"] >= 0

    @pytest.mark.asyncio
    async def test_timestamp_is_utc_iso(self):
        result = await health_check(_make_request())
        parsed = datetime.fromisoformat(result["data"]["timestamp"])
        assert parsed.tzinfo is not None

    @pytest.mark.asyncio
    async def test_uptime_zero_before_startup(self):
        result = await health_check(_make_request())
        assert result["data"]["uptime"] == 0.0

    def test_endpoint(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "healthy"


# ---------------------------------------------------------------------------
# GET /api/health/ready - readiness check
# ---------------------------------------------------------------------------


class TestReadinessCheck:
    @pytest.mark.asyncio
    async def test_database_healthy_returns_ready(self):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(return_value=MagicMock())

        result = await readiness_check(_make_request(connection_state=ConnectionState()), db=mock_db)

        assert result["data"]["status"] == "ready"
        assert result["data"]["checks"]["database"] == {"healthy": True}
        assert result["data"]["checks"]["messaging"] == {"healthy": True, "status": "disconnected"}

    @pytest.mark.asyncio
    async def test_database_failure_returns_degraded(self):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))

        result = await readiness_check(_make_request(), db=mock_db)

        assert result["data"]["status"] == "degraded"
        assert result["data"]["checks"]["database"]["healthy"] is False
        assert result["data"]["checks"]["messaging"]["status"] == "unknown"

    @pytest.mark.asyncio
    async def test_check_database_error_message(self):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("disk I/O error"))
        assert await _check_database(mock_db) == {"healthy": False, "error": "disk I/O error"}

    def test_endpoint_against_sqlite(self, client):
        data = client.get("/api/health/ready").json()["data"]
        assert data["status"] == "ready"
