"""
Notification Content Resolver - כותרת, גוף, אייקון ו-deep link לכל מעבר סטטוס.

פונקציה טהורה: אין גישה למסד ואין תלות ב-settings. תבניות מותאמות
מועברות כפרמטר (ה-pipeline קורא אותן מ-NOTIFICATION_TEMPLATE_OVERRIDES).
"""
from datetime import datetime
from typing import Mapping, Optional

from app.domain.services.webhooks.types import NotificationContent, WebhookEventType

# placeholder יחיד — אין מנוע תבניות, החלפה פשוטה
NUMBER_PLACEHOLDER = "{number}"

ORDER_STATUS_TEMPLATES: dict[str, tuple[str, str]] = {
    "pending": ("Order Received", "Your order #{number} has been received and is being processed."),
    "processing": ("Order Processing", "Your order #{number} is being processed."),
    "on-hold": ("Order On Hold", "Your order #{number} is currently on hold."),
    "completed": ("Order Completed", "Your order #{number} has been completed! Thank you for your purchase."),
    "cancelled": ("Order Cancelled", "Your order #{number} has been cancelled."),
    "refunded": ("Order Refunded", "Your order #{number} has been refunded."),
    "failed": ("Order Failed", "Your order #{number} payment failed. Please try again."),
}

SUBSCRIPTION_STATUS_TEMPLATES: dict[str, tuple[str, str]] = {
    "active": ("Subscription Active", "Your subscription #{number} is now active."),
    "on-hold": ("Subscription On Hold", "Your subscription #{number} is currently on hold."),
    "pending": ("Subscription Pending", "Your subscription #{number} is pending activation."),
    "pending-cancel": ("Cancellation Pending", "Your subscription #{number} cancellation is pending."),
    "cancelled": ("Subscription Cancelled", "Your subscription #{number} has been cancelled."),
    "expired": ("Subscription Expired", "Your subscription #{number} has expired."),
    "switched": ("Subscription Switched", "Your subscription #{number} has been switched."),
}

ORDER_STATUS_ICONS: dict[str, str] = {
    "pending": "ic_order_pending",
    "processing": "ic_order_processing",
    "on-hold": "ic_order_hold",
    "completed": "ic_order_completed",
    "cancelled": "ic_order_cancelled",
    "refunded": "ic_order_refunded",
    "failed": "ic_order_failed",
}

SUBSCRIPTION_STATUS_ICONS: dict[str, str] = {
    "active": "ic_sub_active",
    "on-hold": "ic_sub_hold",
    "pending": "ic_sub_pending",
    "pending-cancel": "ic_sub_pending",
    "cancelled": "ic_sub_cancelled",
    "expired": "ic_sub_expired",
    "switched": "ic_sub_active",
}

DEFAULT_ORDER_ICON = "ic_order_pending"
DEFAULT_SUBSCRIPTION_ICON = "ic_sub_pending"

_TABLES = {
    WebhookEventType.ORDER_STATUS: (
        ORDER_STATUS_TEMPLATES, ORDER_STATUS_ICONS, DEFAULT_ORDER_ICON, "Order", "order", "/orders",
    ),
    WebhookEventType.SUBSCRIPTION_STATUS: (
        SUBSCRIPTION_STATUS_TEMPLATES, SUBSCRIPTION_STATUS_ICONS, DEFAULT_SUBSCRIPTION_ICON,
        "Subscription", "subscription", "/subscriptions",
    ),
}

TemplateOverrides = Mapping[tuple[str, str], Mapping[str, str]]


def format_next_payment(raw: str) -> str:
    """תאריך תשלום הבא כ-YYYY-MM-DD; ערך שלא מתפענח מוחזר כמו שהוא"""
    value = raw.strip()
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


def deep_link_for(event_type: WebhookEventType, resource_id: str) -> str:
    return f"{_TABLES[event_type][5]}/{resource_id}"


def resolve_content(
    event_type: WebhookEventType,
    status: str,
    display_number: str,
    resource_id: str,
    overrides: Optional[TemplateOverrides] = None,
    next_payment_date: Optional[str] = None,
) -> NotificationContent:
    """
    תוכן ההתראה למעבר סטטוס.

    סדר עדיפות: override מ-settings → טבלה מובנית → הודעה גנרית
    ("Order Updated" / "Subscription Updated"). סטטוס לא מוכר אף פעם
    לא נכשל.

    Args:
        event_type: order_status / subscription_status
        status: הסטטוס החדש (מנורמל ל-lowercase ע"י ה-classifier)
        display_number: המספר שמוצג ללקוח (number / order_number / id)
        resource_id: מזהה המשאב, ל-deep link
        overrides: תבניות לפי (event_type, status)
        next_payment_date: למנוי פעיל בלבד

    Returns:
        NotificationContent
    """
    templates, icons, default_icon, label, noun, _ = _TABLES[event_type]
    status_key = (status or "").strip().lower()

    override = (overrides or {}).get((event_type.value, status_key))
    if override:
        title, body = override["title"], override["body"]
    elif status_key in templates:
        title, body = templates[status_key]
    else:
        title = f"{label} Updated"
        body = f"Your {noun} #{NUMBER_PLACEHOLDER} status has been updated to "

    title = title.replace(NUMBER_PLACEHOLDER, display_number)
    body = body.replace(NUMBER_PLACEHOLDER, display_number)
    if not override and status_key not in templates:
        body += f"{status}."

    if (
        event_type is WebhookEventType.SUBSCRIPTION_STATUS
        and status_key == "active"
        and next_payment_date
    ):
        body += f" Next payment: {format_next_payment(next_payment_date)}."

    return NotificationContent(
        title=title,
        body=body,
        icon=icons.get(status_key, default_icon),
        deep_link_url=deep_link_for(event_type, resource_id),
    )
