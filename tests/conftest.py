"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- Fake push transport (records every send)
- Test data factories (app users, webhook logs)
- WooCommerce payload / signature helpers
"""
# הגדרות סביבה לפני ייבוא app — ה-settings נטענים בזמן import
import os
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("PUSH_GATEWAY_URL", "http://push-gateway.test")

import json
import warnings
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Optional
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

with warnings.catch_warnings():
    # אזהרת "secret ריק" מה-settings לא רלוונטית לבדיקות
    warnings.simplefilter("ignore")
    from app.core.config import settings
    from app.main import app

from app.api.dependencies.webhooks import get_push_dispatcher
from app.db.database import Base, get_db
from app.db.models.app_user import AppUser, AppUserStatus
from app.db.models.webhook_log import WebhookLog
from app.domain.services.push.base_transport import BasePushTransport, PushResult
from app.domain.services.push.dispatcher import PushDispatcher
from app.domain.services.push.recipient_directory import AppUserDirectory
from app.domain.services.webhooks.signature import SIGNATURE_HEADER, compute_signature


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_WEBHOOK_SECRET = "test-woocommerce-webhook-secret"
TEST_ADMIN_API_KEY = "test-admin-api-key"

# הערה: לא מגדירים event_loop fixture מותאם אישית כי pytest-asyncio 0.23+
# מטפל בזה אוטומטית עם asyncio_mode=auto ו-asyncio_default_fixture_loop_scope=function


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


# ============================================================================
# Fake Push Transport
# ============================================================================

class FakePushTransport(BasePushTransport):
    """תחליף ל-push gateway — שומר כל שליחה ומחזיר תוצאה מוגדרת מראש."""

    def __init__(self, result: Optional[PushResult] = None) -> None:
        self.result = result or PushResult(success=True, message_id="fake-message-1")
        self.sent: list[dict[str, Any]] = []
        self.healthy = True

    @property
    def provider_name(self) -> str:
        return "fake"

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        image_url: Optional[str] = None,
        data: Optional[dict[str, str]] = None,
    ) -> PushResult:
        self.sent.append({
            "token": token,
            "title": title,
            "body": body,
            "image_url": image_url,
            "data": dict(data or {}),
        })
        return self.result

    async def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def fake_transport() -> FakePushTransport:
    return FakePushTransport()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession, fake_transport: FakePushTransport):
    """Create test client with database and push transport overrides"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    async def override_get_push_dispatcher():
        return PushDispatcher(AppUserDirectory(db_session), fake_transport)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_dispatcher] = override_get_push_dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def detached_sessions(session_maker):
    """מחליף את הסשן העצמאי של post-write ברקע בסשן על מסד הבדיקות."""

    @asynccontextmanager
    async def _detached():
        async with session_maker() as session:
            yield session

    with patch("app.domain.services.webhooks.log_writer.get_detached_session", _detached):
        yield


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def app_user_factory(db_session: AsyncSession):
    """Factory for creating mobile app users"""
    async def _create_app_user(
        email: str | None = "a@b.com",
        wp_user_id: str | None = None,
        fcm_token: str | None = "fcm-token-a",
        status: AppUserStatus = AppUserStatus.ACTIVE,
        name: str = "Test Customer",
    ) -> AppUser:
        user = AppUser(
            email=email,
            wp_user_id=wp_user_id,
            fcm_token=fcm_token,
            status=status,
            name=name,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_app_user


@pytest.fixture
def webhook_log_factory(db_session: AsyncSession):
    """Factory for creating webhook log records directly"""
    async def _create_log(
        resource_id: str = "1234",
        status: str = "completed",
        event: str = "order_status",
        source: str = "woocommerce",
        created_at: datetime | None = None,
        push_sent: bool = True,
        push_success: bool = True,
        push_error: str | None = None,
        skipped: bool = False,
        dedup_key: str | None = None,
        customer_identity: str | None = "a@b.com",
        notification_title: str | None = "Order Completed",
        notification_body: str | None = "Your order #1234 has been completed! Thank you for your purchase.",
        payload: dict | None = None,
    ) -> WebhookLog:
        log = WebhookLog(
            source=source,
            event=event,
            resource_id=resource_id,
            status=status,
            customer_identity=customer_identity,
            notification_title=notification_title,
            notification_body=notification_body,
            push_sent=push_sent,
            push_success=push_success,
            push_error=push_error,
            skipped=skipped,
            dedup_key=dedup_key,
            payload=payload,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(log)
        await db_session.commit()
        await db_session.refresh(log)
        return log

    return _create_log


# ============================================================================
# WooCommerce helpers
# ============================================================================

def order_payload(
    order_id: int = 1234,
    status: str = "completed",
    email: str | None = "a@b.com",
    **extra: Any,
) -> dict[str, Any]:
    """payload מינימלי בצורה ש-WooCommerce שולח ב-order.updated"""
    payload: dict[str, Any] = {
        "id": order_id,
        "number": str(order_id),
        "status": status,
        "customer_id": 0,
        "billing": {"first_name": "Dana", "email": email or ""},
    }
    payload.update(extra)
    return payload


def subscription_payload(
    subscription_id: int = 77,
    status: str = "active",
    email: str | None = "a@b.com",
    **extra: Any,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": subscription_id,
        "status": status,
        "customer_id": 12,
        "billing": {"email": email or ""},
    }
    payload.update(extra)
    return payload


def encode_body(payload: Any) -> bytes:
    return json.dumps(payload).encode("utf-8")


def signed_headers(body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: compute_signature(body, secret),
        "X-WC-Webhook-Topic": "order.updated",
        "X-WC-Webhook-Source": "https://shop.example.com/",
    }


# ============================================================================
# Global resets
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from app.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


@pytest.fixture(autouse=True)
def reset_push_transport():
    """ה-transport המשותף נבנה מה-settings — מאפסים כדי ש-patch ייקלט"""
    from app.domain.services.push.transport_factory import reset_transport
    reset_transport()
    yield
    reset_transport()


@pytest.fixture(autouse=True)
def default_webhook_settings():
    """ברירות מחדל צפויות לכל הבדיקות, בלי תלות ב-.env מקומי"""
    with patch.object(settings, "WOOCOMMERCE_WEBHOOK_SECRET", ""), \
         patch.object(settings, "WEBHOOK_SIGNATURE_POLICY", "log"), \
         patch.object(settings, "WEBHOOK_DEDUP_WINDOW_SECONDS", 300), \
         patch.object(settings, "WEBHOOK_SKIP_STATUSES", "checkout-draft"), \
         patch.object(settings, "WEBHOOK_LOG_SKIPPED", True), \
         patch.object(settings, "WEBHOOK_LOG_POST_WRITE_MODE", "sync"), \
         patch.object(settings, "NOTIFICATION_TEMPLATE_OVERRIDES", ""), \
         patch.object(settings, "ADMIN_API_KEY", TEST_ADMIN_API_KEY):
        yield
