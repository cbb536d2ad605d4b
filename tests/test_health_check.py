"""
בדיקות Health Check — liveness, readiness ובדיקות התלויות (DB, push gateway).
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.circuit_breaker import get_push_circuit_breaker
from app.core.config import settings
from app.domain.services.health_service import _check_db, _check_push_gateway, check_readiness
from conftest import FakePushTransport

_HEALTH = "app.domain.services.health_service"


def _mock_session(execute: AsyncMock) -> AsyncMock:
    session = AsyncMock()
    session.execute = execute
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return session


class TestLivenessProbe:

    @pytest.mark.unit
    async def test_liveness_returns_healthy(self, test_client: httpx.AsyncClient) -> None:
        """liveness לא בודק תלויות — תמיד healthy"""
        with patch(f"{_HEALTH}._check_db", new_callable=AsyncMock, return_value="error: db_unavailable"):
            response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestReadinessProbe:

    @pytest.mark.unit
    async def test_all_healthy(self, test_client: httpx.AsyncClient) -> None:
        with patch(f"{_HEALTH}._check_db", new_callable=AsyncMock, return_value="ok"), \
             patch(f"{_HEALTH}._check_push_gateway", new_callable=AsyncMock, return_value="ok"):
            response = await test_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "db": "ok", "push_gateway": "ok"}

    @pytest.mark.unit
    @pytest.mark.parametrize("db, push", [
        ("error: db_unavailable", "ok"),
        ("ok", "error: push_circuit_open"),
        ("error: db_unavailable", "error: push_not_configured"),
    ])
    async def test_degraded(self, test_client: httpx.AsyncClient, db: str, push: str) -> None:
        with patch(f"{_HEALTH}._check_db", new_callable=AsyncMock, return_value=db), \
             patch(f"{_HEALTH}._check_push_gateway", new_callable=AsyncMock, return_value=push):
            response = await test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json() == {"status": "degraded", "db": db, "push_gateway": push}


class TestCheckDb:

    @pytest.mark.unit
    async def test_ok(self) -> None:
        session = _mock_session(AsyncMock())
        with patch(f"{_HEALTH}.AsyncSessionLocal", return_value=session):
            assert await _check_db() == "ok"

    @pytest.mark.unit
    async def test_failure_hides_details(self) -> None:
        session = _mock_session(AsyncMock(side_effect=ConnectionError("10.0.0.7 refused")))
        with patch(f"{_HEALTH}.AsyncSessionLocal", return_value=session):
            assert await _check_db() == "error: db_unavailable"


class TestCheckPushGateway:

    @pytest.mark.unit
    async def test_ok(self) -> None:
        with patch(f"{_HEALTH}.get_push_transport", return_value=FakePushTransport()):
            assert await _check_push_gateway() == "ok"

    @pytest.mark.unit
    async def test_unhealthy(self) -> None:
        transport = FakePushTransport()
        transport.healthy = False
        with patch(f"{_HEALTH}.get_push_transport", return_value=transport):
            assert await _check_push_gateway() == "error: push_unavailable"

    @pytest.mark.unit
    async def test_health_check_raises(self) -> None:
        transport = FakePushTransport()
        transport.health_check = AsyncMock(side_effect=RuntimeError("boom"))
        with patch(f"{_HEALTH}.get_push_transport", return_value=transport):
            assert await _check_push_gateway() == "error: push_unavailable"

    @pytest.mark.unit
    async def test_not_configured(self) -> None:
        with patch.object(settings, "PUSH_GATEWAY_URL", ""):
            assert await _check_push_gateway() == "error: push_not_configured"

    @pytest.mark.unit
    async def test_circuit_open_skips_request(self) -> None:
        transport = FakePushTransport()
        transport.health_check = AsyncMock(return_value=True)
        breaker = get_push_circuit_breaker()
        for _ in range(breaker.config.failure_threshold):
            await breaker.record_failure(ConnectionError("down"))

        with patch(f"{_HEALTH}.get_push_transport", return_value=transport):
            assert await _check_push_gateway() == "error: push_circuit_open"

        transport.health_check.assert_not_called()


class TestCheckReadiness:

    @pytest.mark.unit
    async def test_combines_checks(self) -> None:
        with patch(f"{_HEALTH}._check_db", new_callable=AsyncMock, return_value="ok"), \
             patch(f"{_HEALTH}._check_push_gateway", new_callable=AsyncMock, return_value="error: push_unavailable"):
            result = await check_readiness()

        assert result == {"status": "degraded", "db": "ok", "push_gateway": "error: push_unavailable"}
