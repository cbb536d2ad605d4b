"""
HTTP Push Transport — שליחת push דרך gateway פנימי מעל FCM.

ה-gateway מספק:
- POST /send — שליחה ל-token בודד, מחזיר {"messageId": "..."}
- GET /health — בדיקת זמינות

אין retry: WooCommerce כבר שולח שוב webhooks שלא נענו, ו-retry כאן
רק מאריך את הבקשה. circuit breaker חוסם קריאות כשה-gateway למטה.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from app.core.circuit_breaker import CircuitBreaker
from app.core.exceptions import CircuitBreakerOpenError, PushGatewayError
from app.core.logging import get_logger
from app.domain.services.push.base_transport import (
    INVALID_TOKEN_ERROR_CODE,
    BasePushTransport,
    PushResult,
)

logger = get_logger(__name__)

# קודי שגיאה שה-gateway מעביר מ-FCM כשה-token מת
_INVALID_TOKEN_CODES = {
    "invalid_token",
    "unregistered",
    "messaging/registration-token-not-registered",
    "messaging/invalid-registration-token",
}
_INVALID_TOKEN_STATUS_CODES = {404, 410}

COLLAPSE_KEY_FIELD = "_dedupKey"


def _mask_token(token: str) -> str:
    return f"{token[:8]}…" if token else "-"


def build_collapse_key(data: dict[str, str]) -> str:
    """מפתח collapse יציב לאותו מעבר סטטוס — המכשיר מאחד התראות חוזרות"""
    parts = [data.get("type"), data.get("resourceId"), data.get("status")]
    return "notif_" + "_".join(p for p in parts if p) if any(parts) else "notif_generic"


class HttpPushTransport(BasePushTransport):
    """מימוש BasePushTransport מעל push gateway ב-HTTP"""

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        gateway_url: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._circuit_breaker = circuit_breaker
        self._gateway_url = gateway_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_seconds

    @property
    def provider_name(self) -> str:
        return "http_gateway"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_payload(
        self,
        token: str,
        title: str,
        body: str,
        image_url: Optional[str],
        data: Optional[dict[str, str]],
    ) -> dict[str, Any]:
        payload_data = {k: str(v) for k, v in (data or {}).items()}
        collapse_key = payload_data.get(COLLAPSE_KEY_FIELD) or build_collapse_key(payload_data)
        payload_data[COLLAPSE_KEY_FIELD] = collapse_key

        notification: dict[str, str] = {"title": title, "body": body}
        if image_url and image_url.strip().startswith(("http://", "https://")):
            notification["imageUrl"] = image_url.strip()

        return {
            "token": token,
            "notification": notification,
            "data": payload_data,
            "collapseKey": collapse_key,
        }

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        """קריאה בודדת ל-gateway. 5xx נזרק כדי שה-circuit breaker יספור אותו"""
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                f"{self._gateway_url}/send",
                json=payload,
                headers=self._headers(),
            )
        if response.status_code >= 500:
            raise PushGatewayError.from_response("send", response)
        return response

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        image_url: Optional[str] = None,
        data: Optional[dict[str, str]] = None,
    ) -> PushResult:
        if not token:
            return PushResult(success=False, error="empty device token")

        payload = self._build_payload(token, title, body, image_url, data)

        try:
            response = await self._circuit_breaker.execute(self._post, payload)
        except CircuitBreakerOpenError as exc:
            logger.warning(
                "Push gateway circuit open, skipping send",
                extra_data={"token": _mask_token(token), **exc.details}
            )
            return PushResult(success=False, error=exc.message, error_code="circuit_open")
        except httpx.TimeoutException:
            logger.warning(
                "Push gateway timeout",
                extra_data={"token": _mask_token(token), "timeout_seconds": self._timeout}
            )
            return PushResult(
                success=False,
                error=f"push gateway timeout after {self._timeout}s",
                error_code="timeout",
            )
        except httpx.RequestError as exc:
            logger.warning(
                "Push gateway network error",
                extra_data={"token": _mask_token(token), "error": str(exc)}
            )
            return PushResult(
                success=False,
                error=f"push gateway network error: {exc}",
                error_code="network_error",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            # URL שגוי וכד' — שגיאת תצורה, לא של ה-gateway; לא נספר ב-circuit breaker
            logger.error(
                "Push gateway request could not be built",
                extra_data={"token": _mask_token(token), "error": str(exc)}
            )
            return PushResult(
                success=False,
                error=f"push gateway configuration error: {exc}",
                error_code="configuration",
            )
        except PushGatewayError as exc:
            logger.error(
                "Push gateway server error",
                extra_data={"token": _mask_token(token), **exc.details}
            )
            return PushResult(success=False, error=exc.message, error_code="gateway_error")

        return self._parse_response(token, response)

    def _parse_response(self, token: str, response: httpx.Response) -> PushResult:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if 200 <= response.status_code < 300:
            message_id = body.get("messageId") or body.get("message_id")
            logger.info(
                "Push sent",
                extra_data={"token": _mask_token(token), "message_id": message_id}
            )
            return PushResult(success=True, message_id=str(message_id) if message_id else None)

        error_code = str(body.get("errorCode") or body.get("code") or "").strip()
        error = str(body.get("error") or body.get("message") or f"push gateway returned {response.status_code}")

        if (
            error_code.lower() in _INVALID_TOKEN_CODES
            or response.status_code in _INVALID_TOKEN_STATUS_CODES
        ):
            error_code = INVALID_TOKEN_ERROR_CODE

        logger.warning(
            "Push rejected by gateway",
            extra_data={
                "token": _mask_token(token),
                "status_code": response.status_code,
                "error_code": error_code or None,
            }
        )
        return PushResult(success=False, error=error, error_code=error_code or "rejected")

    async def health_check(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(
                    f"{self._gateway_url}/health",
                    headers=self._headers(),
                )
            return response.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning(
                "Push gateway health check failed",
                extra_data={"error": str(exc)}
            )
            return False
