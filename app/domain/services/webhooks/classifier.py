"""
סיווג בקשת webhook: ping / unparseable / irrelevant / event.

שום תוצאה כאן אינה שגיאה מבחינת ה-caller — כל הסיווגים מקבלים 200.
כשל רועש היה מלמד את מנגנון ה-retry של WooCommerce להפציץ את ה-endpoint.
"""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from app.core.logging import get_logger
from app.core.validation import TextSanitizer
from app.domain.services.webhooks.types import (
    Classification,
    ClassificationKind,
    WebhookEvent,
    WebhookEventType,
    WebhookSource,
)

logger = get_logger(__name__)

# טוקן שמופיע בבקשות ping של WooCommerce (form-encoded או JSON)
WEBHOOK_ID_TOKEN = "webhook_id"

TOPIC_HEADER = "X-WC-Webhook-Topic"
SOURCE_HEADER = "X-WC-Webhook-Source"
DELIVERY_ID_HEADER = "X-WC-Webhook-Delivery-ID"

_MAX_DISPLAY_NUMBER_LENGTH = 64
_MAX_STATUS_LENGTH = 64
# אורכי העמודות ב-webhook_logs
_MAX_RESOURCE_ID_LENGTH = 64
_MAX_IDENTITY_LENGTH = 255


def _is_missing(value: Any) -> bool:
    """ערכים ש-WooCommerce שולח כ"אין": None, מחרוזת ריקה, 0 (למשל customer_id של אורח)"""
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        return not value.strip()
    return False


def _first_present(*values: Any) -> Optional[str]:
    for value in values:
        if not _is_missing(value) and isinstance(value, (str, int)):
            return str(value).strip()
    return None


def extract_customer_identity(payload: Mapping[str, Any]) -> Optional[str]:
    """billing.email ?? customer_email ?? email ?? customer_id"""
    billing = payload.get("billing")
    billing_email = billing.get("email") if isinstance(billing, Mapping) else None
    identity = _first_present(
        billing_email,
        payload.get("customer_email"),
        payload.get("email"),
        payload.get("customer_id"),
    )
    # לא חותכים: מזהה חתוך היה מתאים ללקוח אחר
    if identity and len(identity) > _MAX_IDENTITY_LENGTH:
        return None
    return identity


def extract_display_number(payload: Mapping[str, Any]) -> str:
    """number ?? order_number ?? id"""
    number = _first_present(
        payload.get("number"),
        payload.get("order_number"),
        payload.get("id"),
    )
    return TextSanitizer.sanitize(number or "", max_length=_MAX_DISPLAY_NUMBER_LENGTH)


def classify(
    raw_text: str,
    headers: Optional[Mapping[str, str]],
    event_type: WebhookEventType,
    source: WebhookSource = WebhookSource.WOOCOMMERCE,
) -> Classification:
    """
    סיווג גוף הבקשה. הכלל הראשון שמתאים קובע.

    1. גוף ריק → ping
    2. גוף שאינו JSON object ומכיל webhook_id → ping (ping form-encoded)
    3. JSON לא תקין → unparseable
    4. אובייקט עם webhook_id בלי id → ping
    5. חסר id או status (או JSON שאינו אובייקט) → irrelevant
    6. אחרת → event
    """
    if headers is not None:
        logger.debug(
            "Classifying webhook",
            extra_data={"event_type": event_type.value, **webhook_headers(headers)}
        )

    text = raw_text or ""
    stripped = text.strip()

    if not stripped:
        return Classification(ClassificationKind.PING, "empty body")

    if not stripped.startswith("{") and WEBHOOK_ID_TOKEN in stripped:
        return Classification(ClassificationKind.PING, "form-encoded webhook ping")

    try:
        payload = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        return Classification(ClassificationKind.UNPARSEABLE, "body is not valid JSON")

    if not isinstance(payload, dict):
        return Classification(ClassificationKind.IRRELEVANT, "JSON body is not an object")

    if WEBHOOK_ID_TOKEN in payload and _is_missing(payload.get("id")):
        return Classification(ClassificationKind.PING, "JSON webhook ping")

    resource_id = TextSanitizer.sanitize(
        _first_present(payload.get("id")) or "", max_length=_MAX_RESOURCE_ID_LENGTH + 1
    ).strip()
    raw_status = payload.get("status")
    status = ""
    if isinstance(raw_status, (str, int)) and not _is_missing(raw_status):
        status = TextSanitizer.sanitize(str(raw_status), max_length=_MAX_STATUS_LENGTH).strip().lower()

    # הבדיקה אחרי הניקוי: status של תווי בקרה בלבד הוא status חסר
    if not resource_id or not status:
        return Classification(ClassificationKind.IRRELEVANT, "missing id or status")

    # id ארוך מהעמודה היה נכשל ב-pre-write, וכל retry היה שולח push נוסף
    if len(resource_id) > _MAX_RESOURCE_ID_LENGTH:
        return Classification(ClassificationKind.IRRELEVANT, "resource id too long")

    next_payment_date = None
    if event_type is WebhookEventType.SUBSCRIPTION_STATUS:
        next_payment_date = _first_present(payload.get("next_payment_date"))

    event = WebhookEvent(
        source=source,
        event_type=event_type,
        resource_id=resource_id,
        status=status,
        display_number=extract_display_number(payload) or resource_id,
        customer_identity=extract_customer_identity(payload),
        next_payment_date=next_payment_date,
        raw_payload=payload,
    )
    return Classification(ClassificationKind.EVENT, "status transition", event=event)


def webhook_headers(headers: Mapping[str, str]) -> dict[str, Optional[str]]:
    """הכותרות האינפורמטיביות של WooCommerce — ללוג בלבד"""
    return {
        "topic": headers.get(TOPIC_HEADER),
        "source": headers.get(SOURCE_HEADER),
        "delivery_id": headers.get(DELIVERY_ID_HEADER),
    }
