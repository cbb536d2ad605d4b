"""
Webhook Notification Service - הצינור הקנוני לשני ה-endpoints.

received → verified → classified → [event] skip? → deduplicated →
resolved → logged(pre) → dispatched → logged(post) → responded

כל מסלול מוכר מסתיים ב-WebhookAck עם success=True. מצב יוצא הדופן
היחיד הוא חתימה שגויה תחת WEBHOOK_SIGNATURE_POLICY=enforce.
"""
from datetime import datetime, timezone
from typing import Mapping, Optional

from fastapi import BackgroundTasks
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import InvalidWebhookSignatureError
from app.core.logging import get_logger
from app.core.validation import IdentityValidator
from app.db.models.webhook_log import WebhookLog
from app.domain.services.push.base_transport import PushResult
from app.domain.services.push.dispatcher import PushDispatcher, build_push_data
from app.domain.services.webhooks.classifier import classify
from app.domain.services.webhooks.dedup_gate import DedupGate
from app.domain.services.webhooks.log_writer import (
    Conflict,
    Failed,
    Logged,
    WebhookLogWriter,
    post_write_detached,
)
from app.domain.services.webhooks.notification_content import resolve_content
from app.domain.services.webhooks.signature import SIGNATURE_HEADER, SignatureCheck, check_signature
from app.domain.services.webhooks.types import (
    ClassificationKind,
    DedupKey,
    NotificationContent,
    WebhookEvent,
    WebhookEventType,
)

logger = get_logger(__name__)


class WebhookAck(BaseModel):
    """תשובת ה-webhook — camelCase, שדות None לא נשלחים"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: Optional[str] = None
    skipped: Optional[bool] = None
    duplicate: Optional[bool] = None
    resource_id: Optional[str] = Field(default=None, alias="resourceId")
    status: Optional[str] = None
    push_sent: Optional[bool] = Field(default=None, alias="pushSent")
    push_success: Optional[bool] = Field(default=None, alias="pushSuccess")
    push_error: Optional[str] = Field(default=None, alias="pushError")
    notification_title: Optional[str] = Field(default=None, alias="notificationTitle")
    notification_body: Optional[str] = Field(default=None, alias="notificationBody")

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


_ACK_MESSAGES = {
    ClassificationKind.PING: "Webhook ping received",
    ClassificationKind.UNPARSEABLE: "Webhook acknowledged",
    ClassificationKind.IRRELEVANT: "Event acknowledged but not processed",
}


class WebhookNotificationService:
    """
    עיבוד webhook אחד מקצה לקצה.

    ההגדרות נקראות מ-settings בכל קריאה (ולא ב-__init__), כך ששינוי
    בזמן ריצה ו-patch בבדיקות נקלטים מיד.
    """

    def __init__(self, db: AsyncSession, dispatcher: PushDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.log_writer = WebhookLogWriter(db)

    async def process(
        self,
        event_type: WebhookEventType,
        raw_body: bytes,
        headers: Mapping[str, str],
        endpoint: str,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> WebhookAck:
        """
        Raises:
            InvalidWebhookSignatureError: רק תחת מדיניות enforce, ורק לאירוע אמיתי
        """
        signature = self._verify_signature(raw_body, headers, endpoint)

        text = raw_body.decode("utf-8", errors="replace")
        classification = classify(text, headers, event_type)

        # ping / גוף לא תקין / חסר id — תמיד 200, אחרת WooCommerce ינסה שוב
        if not classification.is_event:
            logger.info(
                "Webhook acknowledged without processing",
                extra_data={
                    "endpoint": endpoint,
                    "kind": classification.kind.value,
                    "reason": classification.reason,
                }
            )
            return WebhookAck(message=_ACK_MESSAGES[classification.kind])

        if signature.is_failure and settings.WEBHOOK_SIGNATURE_POLICY == "enforce":
            raise InvalidWebhookSignatureError(endpoint)

        event = classification.event
        logger.info(
            "WooCommerce status webhook received",
            extra_data={
                "endpoint": endpoint,
                "event": event.event_type.value,
                "resource_id": event.resource_id,
                "status": event.status,
                "customer": IdentityValidator.mask(event.customer_identity),
            }
        )

        if event.status in settings.skip_statuses:
            return await self._acknowledge_skipped(event)

        key = DedupKey.for_event(event)
        now = datetime.now(timezone.utc)
        gate = DedupGate(self.db, settings.WEBHOOK_DEDUP_WINDOW_SECONDS)

        try:
            existing = await gate.find_recent(key, now)
        except SQLAlchemyError as e:
            # מסד לא זמין — ממשיכים בלי dedup, עדיף כפילות על התראה שאבדה
            logger.error(
                "Dedup lookup failed, continuing without deduplication",
                extra_data={"resource_id": event.resource_id, "error": str(e)},
                exc_info=True
            )
            await self._rollback()
            existing = None

        if existing is not None:
            return self._duplicate_ack(event, existing)

        content = resolve_content(
            event.event_type,
            event.status,
            event.display_number,
            event.resource_id,
            overrides=settings.template_overrides,
            next_payment_date=event.next_payment_date,
        )

        outcome = await self.log_writer.pre_write(event, content, gate.claim_key(key, now))
        record_id: Optional[int] = None
        if isinstance(outcome, Conflict):
            return self._duplicate_ack(event, outcome.existing, fallback=content)
        if isinstance(outcome, Logged):
            record_id = outcome.record_id
        elif isinstance(outcome, Failed):
            logger.warning(
                "Dispatching without a pre-write record",
                extra_data={"resource_id": event.resource_id, "error": outcome.error}
            )

        result = await self.dispatcher.dispatch(
            event.customer_identity,
            content,
            build_push_data(event, content),
        )

        if record_id is not None:
            await self._record_outcome(record_id, result, background_tasks)

        return WebhookAck(
            message="Notification processed",
            resource_id=event.resource_id,
            status=event.status,
            push_sent=result.attempted,
            push_success=result.success,
            push_error=result.error,
            notification_title=content.title,
            notification_body=content.body,
        )

    def _verify_signature(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        endpoint: str,
    ) -> SignatureCheck:
        check = check_signature(
            raw_body,
            headers.get(SIGNATURE_HEADER),
            settings.WOOCOMMERCE_WEBHOOK_SECRET,
        )
        if check is SignatureCheck.NOT_CONFIGURED:
            logger.debug(
                "Webhook signature not verified, no secret configured",
                extra_data={"endpoint": endpoint}
            )
        elif check.is_failure:
            logger.warning(
                "Webhook signature verification failed",
                extra_data={
                    "endpoint": endpoint,
                    "result": check.value,
                    "policy": settings.WEBHOOK_SIGNATURE_POLICY,
                }
            )
        return check

    async def _acknowledge_skipped(self, event: WebhookEvent) -> WebhookAck:
        if settings.WEBHOOK_LOG_SKIPPED:
            await self.log_writer.record_skipped(event)
        logger.info(
            "Webhook status in skip list",
            extra_data={"resource_id": event.resource_id, "status": event.status}
        )
        return WebhookAck(
            message="Status skipped",
            skipped=True,
            resource_id=event.resource_id,
            status=event.status,
        )

    @staticmethod
    def _duplicate_ack(
        event: WebhookEvent,
        existing: Optional[WebhookLog],
        fallback: Optional[NotificationContent] = None,
    ) -> WebhookAck:
        title = existing.notification_title if existing is not None else None
        body = existing.notification_body if existing is not None else None
        if title is None and fallback is not None:
            title, body = fallback.title, fallback.body
        return WebhookAck(
            message="Duplicate webhook ignored",
            duplicate=True,
            resource_id=event.resource_id,
            status=event.status,
            notification_title=title,
            notification_body=body,
        )

    async def _record_outcome(
        self,
        record_id: int,
        result: PushResult,
        background_tasks: Optional[BackgroundTasks],
    ) -> None:
        if settings.WEBHOOK_LOG_POST_WRITE_MODE == "background" and background_tasks is not None:
            background_tasks.add_task(
                post_write_detached,
                record_id,
                result.attempted,
                result.success,
                result.error,
            )
            return
        await self.log_writer.post_write(
            record_id,
            push_sent=result.attempted,
            push_success=result.success,
            push_error=result.error,
        )

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback after dedup lookup failure also failed")
