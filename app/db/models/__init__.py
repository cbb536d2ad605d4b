"""
Database Models
"""
from app.db.models.app_user import AppUser, AppUserStatus
from app.db.models.webhook_log import WebhookLog

__all__ = [
    "AppUser",
    "AppUserStatus",
    "WebhookLog",
]
