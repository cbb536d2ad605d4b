"""
Smoke tests for a deployed instance.

Runs lightweight HTTP checks against a running app instance:
- GET /health
- POST /api/webhooks/woocommerce/order-status (ping + order event)
- POST /api/webhooks/woocommerce/subscription-status (ping)

WooCommerce expects 2xx for every delivery, so any other status is a regression —
גם כשה-push gateway לא זמין.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import httpx

# לאפשר הרצה מכל תיקיה (למשל `python scripts/smoke_webhooks.py` ב-shell של השרת)
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.core.logging import get_logger, setup_logging  # noqa: E402
from app.domain.services.webhooks.signature import SIGNATURE_HEADER, compute_signature  # noqa: E402


logger = get_logger(__name__)

_WEBHOOKS = "/api/webhooks/woocommerce"


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _order_payload() -> dict:
    # מזהה גבוה כדי לא להתנגש בהזמנות אמיתיות; בלי billing email — לא נשלח push
    return {
        "id": 999999001,
        "number": "SMOKE-1",
        "status": "processing",
        "billing": {},
    }


def _headers(body: bytes) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    secret = os.environ.get("WOOCOMMERCE_WEBHOOK_SECRET", "")
    if secret:
        headers[SIGNATURE_HEADER] = compute_signature(body, secret)
    return headers


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    family = resp.status_code // 100
    if family != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def main() -> None:
    setup_logging(level="INFO", json_format=False, app_name="commerce-push-smoke")

    base_url = _base_url()
    timeout = _timeout_seconds()

    logger.info("Starting smoke tests", extra_data={"base_url": base_url, "timeout_seconds": timeout})

    with httpx.Client(timeout=timeout) as client:
        health_url = f"{base_url}/health"
        logger.info("Checking health endpoint", extra_data={"url": health_url})
        _check_status(client.get(health_url))

        for endpoint in ("order-status", "subscription-status"):
            url = f"{base_url}{_WEBHOOKS}/{endpoint}"
            logger.info("Posting WooCommerce ping", extra_data={"url": url})
            resp = client.post(
                url,
                content=b"webhook_id=1",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            _check_status(resp)

        order_url = f"{base_url}{_WEBHOOKS}/order-status"
        body = json.dumps(_order_payload()).encode()
        logger.info("Posting order status event", extra_data={"url": order_url})
        resp = client.post(order_url, content=body, headers=_headers(body))
        _check_status(resp)
        logger.info("Order event acknowledged", extra_data={"response": resp.json()})

    logger.info("Smoke tests completed successfully")


if __name__ == "__main__":
    main()
