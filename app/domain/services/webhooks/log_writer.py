"""
Webhook Log Writer - כתיבת עקבת הביקורת של כל webhook.

שני שלבים:
1. pre_write — לפני ה-push. ה-INSERT על dedup_key הייחודי הוא ה-claim
   האטומי: מי שמכניס ראשון מקבל את האירוע, השני מקבל Conflict.
2. post_write — אחרי ה-push, עדכון push_sent / push_success / push_error.

כשל במסד אף פעם לא משנה את תשובת ה-HTTP. כשל ב-pre_write מבטל
רק את הגנת ה-dedup לאירוע הזה.
"""
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.validation import IdentityValidator
from app.db.database import get_detached_session
from app.db.models.webhook_log import WebhookLog, utcnow
from app.domain.services.webhooks.types import NotificationContent, WebhookEvent

logger = get_logger(__name__)

_MAX_PUSH_ERROR_LENGTH = 1000


@dataclass(frozen=True)
class Logged:
    """ה-claim הצליח — הרשומה שייכת ל-handler הזה"""
    record_id: int


@dataclass(frozen=True)
class Conflict:
    """handler מקביל כבר הכניס את אותו אירוע באותו bucket"""
    existing: Optional[WebhookLog]


@dataclass(frozen=True)
class Failed:
    """שגיאת מסד — ממשיכים לשלוח, בלי הגנת dedup"""
    error: str


PreWriteOutcome = Union[Logged, Conflict, Failed]


class WebhookLogWriter:
    """כתיבה ועדכון של רשומות WebhookLog"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _build_record(
        event: WebhookEvent,
        content: Optional[NotificationContent],
        dedup_key: Optional[str],
        skipped: bool = False,
    ) -> WebhookLog:
        return WebhookLog(
            source=event.source.value,
            event=event.event_type.value,
            resource_id=event.resource_id,
            status=event.status,
            customer_identity=event.customer_identity,
            notification_title=content.title if content else None,
            notification_body=content.body if content else None,
            push_sent=False,
            push_success=False,
            skipped=skipped,
            dedup_key=dedup_key,
            payload=event.raw_payload or None,
            created_at=utcnow(),
        )

    async def pre_write(
        self,
        event: WebhookEvent,
        content: NotificationContent,
        dedup_key: str,
    ) -> PreWriteOutcome:
        """
        יצירת הרשומה לפני ה-push.

        גישה אופטימיסטית: INSERT ב-savepoint, ואם ה-unique על dedup_key
        נכשל — קריאת הרשומה של ה-handler שניצח.
        """
        record = self._build_record(event, content, dedup_key)
        try:
            async with self.db.begin_nested():
                self.db.add(record)
            # commit מיידי — הרשומה חייבת להיות גלויה ל-handlers מקבילים
            # לפני שליחת ה-push, אחרת ה-claim לא שווה כלום
            await self.db.commit()
        except IntegrityError:
            logger.info(
                "Webhook claim lost to concurrent handler",
                extra_data={
                    "event": event.event_type.value,
                    "resource_id": event.resource_id,
                    "status": event.status,
                    "dedup_key": dedup_key,
                }
            )
            existing = await self._find_by_dedup_key(dedup_key)
            return Conflict(existing=existing)
        except SQLAlchemyError as e:
            await self._safe_rollback()
            logger.error(
                "Webhook pre-write failed, dedup protection disabled for this event",
                extra_data={
                    "event": event.event_type.value,
                    "resource_id": event.resource_id,
                    "status": event.status,
                    "error": str(e),
                },
                exc_info=True
            )
            return Failed(error=str(e))

        logger.debug(
            "Webhook log created",
            extra_data={
                "log_id": record.id,
                "event": event.event_type.value,
                "resource_id": event.resource_id,
                "customer": IdentityValidator.mask(event.customer_identity),
            }
        )
        return Logged(record_id=record.id)

    async def record_skipped(self, event: WebhookEvent) -> Optional[int]:
        """רשומת ביקורת לסטטוס שברשימת הדילוג (best effort, בלי dedup_key)"""
        record = self._build_record(event, None, None, skipped=True)
        try:
            self.db.add(record)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._safe_rollback()
            logger.warning(
                "Failed to log skipped webhook",
                extra_data={
                    "event": event.event_type.value,
                    "resource_id": event.resource_id,
                    "status": event.status,
                    "error": str(e),
                }
            )
            return None
        return record.id

    async def post_write(
        self,
        record_id: int,
        push_sent: bool,
        push_success: bool,
        push_error: Optional[str],
    ) -> bool:
        """עדכון תוצאת השליחה. מחזיר False על כשל (שנרשם בלוג בלבד)"""
        try:
            await self.db.execute(
                update(WebhookLog)
                .where(WebhookLog.id == record_id)
                .values(
                    push_sent=push_sent,
                    push_success=push_success,
                    push_error=push_error[:_MAX_PUSH_ERROR_LENGTH] if push_error else None,
                    updated_at=utcnow(),
                )
            )
            await self.db.commit()
            return True
        except SQLAlchemyError as e:
            await self._safe_rollback()
            logger.error(
                "Webhook post-write failed",
                extra_data={"log_id": record_id, "error": str(e)},
                exc_info=True
            )
            return False

    async def _find_by_dedup_key(self, dedup_key: str) -> Optional[WebhookLog]:
        try:
            result = await self.db.execute(
                select(WebhookLog).where(WebhookLog.dedup_key == dedup_key)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to read winning webhook log",
                extra_data={"dedup_key": dedup_key, "error": str(e)}
            )
            return None

    async def _safe_rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback after webhook log failure also failed")


async def post_write_detached(
    record_id: int,
    push_sent: bool,
    push_success: bool,
    push_error: Optional[str],
) -> None:
    """
    post_write בסשן עצמאי — ל-WEBHOOK_LOG_POST_WRITE_MODE=background.

    רץ אחרי שהתשובה נשלחה; קריסה לפני סיום משאירה את הרשומה
    עם push_sent=False, אבל ה-dedup עדיין חוסם כפילויות.
    """
    async with get_detached_session() as session:
        await WebhookLogWriter(session).post_write(
            record_id, push_sent, push_success, push_error
        )
