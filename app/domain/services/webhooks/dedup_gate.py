"""
Deduplication Gate - חסימת אירועים שכבר טופלו בחלון הזמן האחרון.

WooCommerce שולח שוב את אותו webhook כשהוא לא מקבל תשובה מהירה,
וגם כשמנהל החנות שומר הזמנה בלי לשנות סטטוס. ה-gate בודק במסד אם
כבר קיימת רשומה לאותו (source, event, resource_id, status) בחלון.

הבדיקה כאן היא check-then-write: שני handlers מקבילים יכולים שניהם
לפספס. את המרוץ סוגר ה-INSERT על dedup_key הייחודי (ראו log_writer).
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.webhook_log import WebhookLog
from app.domain.services.webhooks.types import DedupKey

logger = get_logger(__name__)


class DedupGate:
    """חיפוש רשומת webhook קודמת לאותו מעבר סטטוס"""

    def __init__(self, db: AsyncSession, window_seconds: int):
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        self.db = db
        self.window_seconds = window_seconds

    def claim_key(self, key: DedupKey, now: Optional[datetime] = None) -> str:
        """מפתח ה-bucket שנשמר ב-dedup_key של הרשומה החדשה"""
        now = now or datetime.now(timezone.utc)
        return key.bucketed(now.timestamp(), self.window_seconds)

    async def find_recent(
        self,
        key: DedupKey,
        now: Optional[datetime] = None,
    ) -> Optional[WebhookLog]:
        """
        הרשומה האחרונה של אותו אירוע בתוך החלון, או None.

        רשומות skipped לא נספרות: הן לא שלחו push ואין להן תוכן להחזיר.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.window_seconds)

        result = await self.db.execute(
            select(WebhookLog)
            .where(
                WebhookLog.source == key.source,
                WebhookLog.event == key.event_type,
                WebhookLog.resource_id == key.resource_id,
                WebhookLog.status == key.status,
                WebhookLog.skipped.is_(False),
                WebhookLog.created_at >= cutoff,
            )
            .order_by(WebhookLog.created_at.desc(), WebhookLog.id.desc())
            .limit(1)
        )
        existing = result.scalar_one_or_none()

        if existing is not None:
            logger.info(
                "Duplicate webhook within dedup window",
                extra_data={
                    "event": key.event_type,
                    "resource_id": key.resource_id,
                    "status": key.status,
                    "existing_log_id": existing.id,
                    "window_seconds": self.window_seconds,
                }
            )
        return existing
