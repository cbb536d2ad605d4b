"""
בדיקות endpoints של לוג ה-webhooks (אדמין)
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from app.api.dependencies.admin_auth import ADMIN_API_KEY_HEADER
from app.core.config import settings
from conftest import TEST_ADMIN_API_KEY

LOGS_URL = "/api/webhook-logs"
AUTH = {ADMIN_API_KEY_HEADER: TEST_ADMIN_API_KEY}


class TestAdminAuth:

    @pytest.mark.asyncio
    async def test_missing_key_401(self, test_client):
        response = await test_client.get(LOGS_URL)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_key_403(self, test_client):
        response = await test_client.get(LOGS_URL, headers={ADMIN_API_KEY_HEADER: "nope"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_disabled_when_key_not_configured(self, test_client):
        """ADMIN_API_KEY ריק — אין גישה גם עם header"""
        with patch.object(settings, "ADMIN_API_KEY", ""):
            response = await test_client.get(LOGS_URL, headers={ADMIN_API_KEY_HEADER: ""})
        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["", "/stats", "/1"])
    async def test_every_endpoint_protected(self, test_client, path):
        response = await test_client.get(LOGS_URL + path)
        assert response.status_code == 401


class TestListWebhookLogs:

    @pytest.mark.asyncio
    async def test_empty(self, test_client):
        response = await test_client.get(LOGS_URL, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "logs": [],
            "pagination": {"page": 1, "limit": 50, "total": 0, "total_pages": 0},
        }

    @pytest.mark.asyncio
    async def test_newest_first(self, test_client, webhook_log_factory):
        now = datetime.now(timezone.utc)
        await webhook_log_factory(resource_id="1", created_at=now - timedelta(minutes=10))
        await webhook_log_factory(resource_id="2", created_at=now)

        logs = (await test_client.get(LOGS_URL, headers=AUTH)).json()["logs"]

        assert [log["resource_id"] for log in logs] == ["2", "1"]
        assert "payload" not in logs[0]

    @pytest.mark.asyncio
    async def test_filters(self, test_client, webhook_log_factory):
        await webhook_log_factory(resource_id="1", status="completed")
        await webhook_log_factory(resource_id="2", status="processing", push_success=False)
        await webhook_log_factory(resource_id="77", event="subscription_status", status="active")

        async def ids(**params) -> list[str]:
            response = await test_client.get(LOGS_URL, headers=AUTH, params=params)
            assert response.status_code == 200
            return sorted(log["resource_id"] for log in response.json()["logs"])

        assert await ids(event="subscription_status") == ["77"]
        assert await ids(status="Processing") == ["2"]
        assert await ids(push_success="false") == ["2"]
        assert await ids(resource_id="1") == ["1"]
        assert await ids(event="order_status", status="completed") == ["1"]

    @pytest.mark.asyncio
    async def test_invalid_event_filter_422(self, test_client):
        response = await test_client.get(LOGS_URL, headers=AUTH, params={"event": "refund"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_search(self, test_client, webhook_log_factory):
        await webhook_log_factory(resource_id="1", customer_identity="dana@shop.com")
        await webhook_log_factory(resource_id="2", customer_identity="avi@shop.com")

        response = await test_client.get(LOGS_URL, headers=AUTH, params={"search": "DANA"})

        logs = response.json()["logs"]
        assert [log["resource_id"] for log in logs] == ["1"]

    @pytest.mark.asyncio
    async def test_pagination(self, test_client, webhook_log_factory):
        for i in range(5):
            await webhook_log_factory(resource_id=str(i))

        response = await test_client.get(LOGS_URL, headers=AUTH, params={"page": 2, "limit": 2})

        body = response.json()
        assert len(body["logs"]) == 2
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 201}, {"page": 0}])
    async def test_pagination_bounds(self, test_client, params):
        response = await test_client.get(LOGS_URL, headers=AUTH, params=params)
        assert response.status_code == 422


class TestWebhookLogStats:

    @pytest.mark.asyncio
    async def test_stats(self, test_client, webhook_log_factory):
        await webhook_log_factory(resource_id="1", status="completed")
        await webhook_log_factory(resource_id="2", status="completed")
        await webhook_log_factory(
            resource_id="3", status="processing", push_success=False, push_error="timeout"
        )
        await webhook_log_factory(
            resource_id="4", status="checkout-draft", skipped=True,
            push_sent=False, push_success=False,
        )
        await webhook_log_factory(
            resource_id="77", event="subscription_status", status="active",
            created_at=datetime.now(timezone.utc) - timedelta(days=2),
        )

        response = await test_client.get(f"{LOGS_URL}/stats", headers=AUTH)

        assert response.status_code == 200
        stats = response.json()
        assert stats["total_webhooks"] == 5
        assert stats["total_push_sent"] == 4
        assert stats["total_push_success"] == 3
        assert stats["total_push_failed"] == 1
        assert stats["success_rate"] == 75
        assert stats["last_24h"] == 4
        assert stats["by_event"] == {"order_status": 4, "subscription_status": 1}
        assert stats["by_status"]["order_status"] == {
            "completed": 2, "processing": 1, "checkout-draft": 1,
        }
        assert [f["resource_id"] for f in stats["recent_failures"]] == ["3"]
        assert stats["recent_failures"][0]["push_error"] == "timeout"

    @pytest.mark.asyncio
    async def test_stats_empty(self, test_client):
        stats = (await test_client.get(f"{LOGS_URL}/stats", headers=AUTH)).json()

        assert stats["total_webhooks"] == 0
        assert stats["success_rate"] == 0
        assert stats["by_event"] == {"order_status": 0, "subscription_status": 0}
        assert stats["recent_failures"] == []


class TestWebhookLogDetail:

    @pytest.mark.asyncio
    async def test_detail_includes_payload(self, test_client, webhook_log_factory):
        log = await webhook_log_factory(payload={"id": 1234, "status": "completed"})

        response = await test_client.get(f"{LOGS_URL}/{log.id}", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == log.id
        assert body["payload"] == {"id": 1234, "status": "completed"}
        assert body["notification_title"] == "Order Completed"

    @pytest.mark.asyncio
    async def test_not_found(self, test_client):
        response = await test_client.get(f"{LOGS_URL}/999", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ERR_2001"
