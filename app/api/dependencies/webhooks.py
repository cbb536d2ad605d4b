"""
Dependencies של צינור ה-webhook.

שימוש:
    @router.post("/order-status")
    async def order_status_webhook(
        service: WebhookNotificationService = Depends(get_webhook_service),
    ):
        ...

בבדיקות מחליפים את get_push_dispatcher ב-dependency_overrides
כדי להזריק transport מזויף.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.domain.services.push import AppUserDirectory, PushDispatcher
from app.domain.services.webhooks.pipeline import WebhookNotificationService


async def get_push_dispatcher(db: AsyncSession = Depends(get_db)) -> PushDispatcher:
    """דיספצ'ר מעל טבלת app_users וה-transport המשותף"""
    return PushDispatcher(directory=AppUserDirectory(db))


async def get_webhook_service(
    db: AsyncSession = Depends(get_db),
    dispatcher: PushDispatcher = Depends(get_push_dispatcher),
) -> WebhookNotificationService:
    return WebhookNotificationService(db, dispatcher)
