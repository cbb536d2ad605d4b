"""
Transport Factory — יצירת push transport לפי הגדרות.

singleton לתהליך: ה-transport עצמו stateless, ה-circuit breaker
המשותף הוא מה שצריך להישמר בין בקשות.
"""
from __future__ import annotations

import threading

from app.core.circuit_breaker import get_push_circuit_breaker
from app.core.config import settings
from app.core.exceptions import ConfigurationError
from app.core.logging import get_logger
from app.domain.services.push.base_transport import BasePushTransport

logger = get_logger(__name__)

_transport: BasePushTransport | None = None
_lock = threading.Lock()


def _create_transport() -> BasePushTransport:
    if not settings.PUSH_GATEWAY_URL:
        raise ConfigurationError(
            "PUSH_GATEWAY_URL",
            "PUSH_GATEWAY_URL is not configured, push notifications cannot be sent",
        )

    from app.domain.services.push.http_transport import HttpPushTransport

    return HttpPushTransport(
        circuit_breaker=get_push_circuit_breaker(),
        gateway_url=settings.PUSH_GATEWAY_URL,
        api_key=settings.PUSH_GATEWAY_API_KEY,
        timeout_seconds=settings.PUSH_TIMEOUT_SECONDS,
    )


def get_push_transport() -> BasePushTransport:
    """ה-transport המשותף. זורק ConfigurationError אם ה-gateway לא מוגדר"""
    global _transport
    if _transport is None:
        with _lock:
            if _transport is None:
                _transport = _create_transport()
                logger.info(
                    "Push transport initialized",
                    extra_data={"provider": _transport.provider_name}
                )
    return _transport


def reset_transport() -> None:
    """איפוס ה-transport — לשימוש בבדיקות בלבד."""
    global _transport
    with _lock:
        _transport = None
