"""
Push Dispatcher — מזהה לקוח → token → transport.

לא זורק על כשלון שליחה: כל מסלול מחזיר PushResult.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ConfigurationError
from app.core.logging import get_logger, log_async_operation
from app.core.validation import IdentityValidator
from app.domain.services.push.base_transport import (
    INVALID_TOKEN_ERROR_CODE,
    BasePushTransport,
    PushResult,
)
from app.domain.services.push.recipient_directory import BaseRecipientDirectory
from app.domain.services.push.transport_factory import get_push_transport
from app.domain.services.webhooks.types import NotificationContent, WebhookEvent

logger = get_logger(__name__)

NO_IDENTITY_ERROR = "no recipient identity"
NO_TOKEN_ERROR = "no device token for recipient"


def build_push_data(event: WebhookEvent, content: NotificationContent) -> dict[str, str]:
    """payload הנתונים שהאפליקציה משתמשת בו לניווט"""
    return {
        "type": event.event_type.value,
        "notificationType": event.resource_type,
        "icon": content.icon,
        "resourceId": event.resource_id,
        "status": event.status,
        "deepLinkUrl": content.deep_link_url,
    }


class PushDispatcher:
    """שליחת התראה ללקוח בודד"""

    def __init__(
        self,
        directory: BaseRecipientDirectory,
        transport: Optional[BasePushTransport] = None,
    ):
        self.directory = directory
        # None = ה-transport המשותף, נבנה רק כשיש למי לשלוח
        self._transport = transport

    @property
    def transport(self) -> BasePushTransport:
        if self._transport is None:
            self._transport = get_push_transport()
        return self._transport

    @log_async_operation("push_dispatch")
    async def dispatch(
        self,
        customer_identity: Optional[str],
        content: NotificationContent,
        data: dict[str, str],
    ) -> PushResult:
        if not customer_identity:
            logger.info("Push skipped, webhook has no customer identity")
            return PushResult.not_attempted(NO_IDENTITY_ERROR)

        masked = IdentityValidator.mask(customer_identity)

        try:
            token = await self.directory.resolve(customer_identity)
        except SQLAlchemyError as e:
            logger.error(
                "Recipient lookup failed",
                extra_data={"customer": masked, "error": str(e)},
                exc_info=True
            )
            return PushResult.not_attempted(f"recipient lookup failed: {e}")

        if not token:
            logger.info(
                "Push skipped, no device token for customer",
                extra_data={"customer": masked}
            )
            return PushResult.not_attempted(NO_TOKEN_ERROR)

        try:
            transport = self.transport
        except ConfigurationError as e:
            logger.error(
                "Push transport not configured",
                extra_data={"customer": masked, **e.details}
            )
            return PushResult(
                success=False, error=e.message, error_code="not_configured", attempted=False
            )

        result = await transport.send(
            token,
            content.title,
            content.body,
            image_url=None,
            data=data,
        )

        if not result.success and result.error_code == INVALID_TOKEN_ERROR_CODE:
            await self._forget_token(token, masked)

        return result

    async def _forget_token(self, token: str, masked_customer: str) -> None:
        try:
            await self.directory.forget_token(token)
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to clear invalid device token",
                extra_data={"customer": masked_customer, "error": str(e)}
            )
