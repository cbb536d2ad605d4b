"""
WooCommerce webhook → push notification pipeline
"""
from app.domain.services.webhooks.types import (
    Classification,
    ClassificationKind,
    DedupKey,
    NotificationContent,
    WebhookEvent,
    WebhookEventType,
    WebhookSource,
)

__all__ = [
    "Classification",
    "ClassificationKind",
    "DedupKey",
    "NotificationContent",
    "WebhookEvent",
    "WebhookEventType",
    "WebhookSource",
]
