"""
Domain Services
"""
from app.domain.services.webhooks.pipeline import WebhookAck, WebhookNotificationService

__all__ = [
    "WebhookAck",
    "WebhookNotificationService",
]
