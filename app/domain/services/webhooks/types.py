"""
טיפוסי הליבה של צינור ה-webhook → push.

WebhookEvent חי רק לאורך בקשה אחת; WebhookLog (במסד) הוא העקבה
הקבועה היחידה.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class WebhookSource(str, enum.Enum):
    """פלטפורמות upstream נתמכות"""
    WOOCOMMERCE = "woocommerce"


class WebhookEventType(str, enum.Enum):
    ORDER_STATUS = "order_status"
    SUBSCRIPTION_STATUS = "subscription_status"

    @property
    def resource_type(self) -> str:
        """order / subscription — משמש גם לבניית deep link"""
        if self is WebhookEventType.ORDER_STATUS:
            return "order"
        return "subscription"


class ClassificationKind(str, enum.Enum):
    PING = "ping"
    UNPARSEABLE = "unparseable"
    IRRELEVANT = "irrelevant"
    EVENT = "event"


@dataclass(frozen=True)
class WebhookEvent:
    """מעבר סטטוס מנורמל של הזמנה/מנוי"""
    source: WebhookSource
    event_type: WebhookEventType
    resource_id: str
    status: str
    display_number: str
    customer_identity: Optional[str] = None
    next_payment_date: Optional[str] = None
    raw_payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def resource_type(self) -> str:
        return self.event_type.resource_type


@dataclass(frozen=True)
class Classification:
    """תוצאת ה-classifier; event קיים רק כש-kind == EVENT"""
    kind: ClassificationKind
    reason: str
    event: Optional[WebhookEvent] = None

    @property
    def is_event(self) -> bool:
        return self.kind is ClassificationKind.EVENT


@dataclass(frozen=True)
class NotificationContent:
    title: str
    body: str
    icon: str
    deep_link_url: str


@dataclass(frozen=True)
class DedupKey:
    """המפתח הלוגי של אירוע לצורך deduplication"""
    source: str
    event_type: str
    resource_id: str
    status: str

    @classmethod
    def for_event(cls, event: WebhookEvent) -> "DedupKey":
        return cls(
            source=event.source.value,
            event_type=event.event_type.value,
            resource_id=event.resource_id,
            status=event.status,
        )

    def bucketed(self, epoch_seconds: float, window_seconds: int) -> str:
        """
        מפתח ייחודי לחלון זמן — נשמר ב-WebhookLog.dedup_key תחת unique index.

        אותו אירוע באותו bucket תמיד מייצר אותה מחרוזת, כך שה-INSERT
        השני נכשל ב-IntegrityError במקום לשלוח push כפול.
        """
        bucket = int(epoch_seconds // window_seconds)
        return f"{self.source}:{self.event_type}:{self.resource_id}:{self.status}:{bucket}"
