"""
WooCommerce Webhook Handlers - עדכוני סטטוס הזמנה ומנוי

הגדרה ב-WooCommerce → Settings → Advanced → Webhooks:
- Order updated        → /api/webhooks/woocommerce/order-status
- Subscription updated → /api/webhooks/woocommerce/subscription-status

כל בקשה מוכרת מקבלת 200 — גם ping, גוף לא תקין וכפילות.
WooCommerce מנטרל webhook אחרי רצף כשלונות, ו-5xx גורם ל-retry
שמייצר בדיוק את הכפילויות שה-dedup אמור לחסום.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from app.api.dependencies.webhooks import get_webhook_service
from app.core.exceptions import InvalidWebhookSignatureError
from app.core.logging import get_logger
from app.domain.services.webhooks.pipeline import WebhookAck, WebhookNotificationService
from app.domain.services.webhooks.types import WebhookEventType

logger = get_logger(__name__)

router = APIRouter()


async def _handle(
    event_type: WebhookEventType,
    endpoint: str,
    request: Request,
    background_tasks: BackgroundTasks,
    service: WebhookNotificationService,
) -> JSONResponse:
    raw_body = await request.body()
    try:
        ack = await service.process(
            event_type,
            raw_body,
            request.headers,
            endpoint=endpoint,
            background_tasks=background_tasks,
        )
    except InvalidWebhookSignatureError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content=WebhookAck(success=False, message=exc.message).to_response(),
        )
    except Exception:
        # בלי פרטים פנימיים בתשובה — ה-traceback נשמר בלוג
        logger.error(
            "Webhook processing failed",
            extra_data={"endpoint": endpoint},
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content=WebhookAck(success=False, message="Webhook processing failed").to_response(),
        )

    return JSONResponse(status_code=200, content=ack.to_response())


@router.post(
    "/order-status",
    summary="Webhook עדכון סטטוס הזמנה",
    response_model=WebhookAck,
    response_model_exclude_none=True,
)
async def order_status_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    service: WebhookNotificationService = Depends(get_webhook_service),
) -> JSONResponse:
    """Order status transition → push notification ללקוח"""
    return await _handle(
        WebhookEventType.ORDER_STATUS, "order-status", request, background_tasks, service
    )


@router.get("/order-status", summary="בדיקת זמינות endpoint")
async def order_status_webhook_info() -> dict[str, str]:
    return {"status": "active", "message": "Order status webhook endpoint active"}


@router.post(
    "/subscription-status",
    summary="Webhook עדכון סטטוס מנוי",
    response_model=WebhookAck,
    response_model_exclude_none=True,
)
async def subscription_status_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    service: WebhookNotificationService = Depends(get_webhook_service),
) -> JSONResponse:
    """Subscription status transition → push notification ללקוח"""
    return await _handle(
        WebhookEventType.SUBSCRIPTION_STATUS,
        "subscription-status",
        request,
        background_tasks,
        service,
    )


@router.get("/subscription-status", summary="בדיקת זמינות endpoint")
async def subscription_status_webhook_info() -> dict[str, str]:
    return {"status": "active", "message": "Subscription status webhook endpoint active"}
