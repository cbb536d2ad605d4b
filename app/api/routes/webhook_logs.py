"""
Webhook Logs Admin Endpoints — צפייה בעקבת הביקורת של webhooks נכנסים.

קריאה בלבד. הרשומות לא נמחקות ע"י השירות.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.admin_auth import require_admin_api_key
from app.core.exceptions import WebhookLogNotFoundError
from app.core.logging import get_logger
from app.db.database import get_db
from app.db.models.webhook_log import WebhookLog
from app.domain.services.webhooks.types import WebhookEventType

logger = get_logger(__name__)

router = APIRouter()

_RECENT_FAILURES_LIMIT = 10


# ─── Pydantic models ────────────────────────────────────────────────────────

class WebhookLogResponse(BaseModel):
    """רשומת webhook בודדת"""
    id: int
    source: str
    event: str
    resource_id: str
    status: str
    customer_identity: Optional[str]
    notification_title: Optional[str]
    notification_body: Optional[str]
    push_sent: bool
    push_success: bool
    push_error: Optional[str]
    skipped: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class WebhookLogDetailResponse(WebhookLogResponse):
    """רשומה מלאה כולל ה-payload הגולמי"""
    payload: Optional[dict[str, Any]]


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class WebhookLogListResponse(BaseModel):
    logs: list[WebhookLogResponse]
    pagination: PaginationResponse


class RecentFailureResponse(BaseModel):
    id: int
    event: str
    resource_id: str
    push_error: Optional[str]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class WebhookLogStatsResponse(BaseModel):
    """סטטיסטיקות מצטברות על webhooks ו-push"""
    total_webhooks: int
    total_push_sent: int
    total_push_success: int
    total_push_failed: int
    success_rate: int = Field(description="אחוז הצלחה מתוך push שנשלחו")
    last_24h: int
    by_event: dict[str, int]
    by_status: dict[str, dict[str, int]]
    recent_failures: list[RecentFailureResponse]


# ─── Endpoints ──────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=WebhookLogListResponse,
    summary="רשימת webhooks",
    description="רשימה מדופדפת, מהחדש לישן, עם סינון לפי סוג אירוע, סטטוס, הצלחת push ומזהה משאב.",
    responses={
        200: {"description": "רשימת רשומות"},
        401: {"description": "חסר מפתח API"},
        403: {"description": "מפתח API שגוי"},
    },
)
async def list_webhook_logs(
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
    event: Optional[WebhookEventType] = Query(default=None, description="order_status / subscription_status"),
    status: Optional[str] = Query(default=None, description="סטטוס WooCommerce, למשל completed"),
    push_success: Optional[bool] = Query(default=None),
    resource_id: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100, description="חיפוש בלקוח / מזהה / כותרת"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
) -> WebhookLogListResponse:
    conditions = []
    if event is not None:
        conditions.append(WebhookLog.event == event.value)
    if status:
        conditions.append(WebhookLog.status == status.strip().lower())
    if push_success is not None:
        conditions.append(WebhookLog.push_success.is_(push_success))
    if resource_id:
        conditions.append(WebhookLog.resource_id == resource_id.strip())
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                WebhookLog.customer_identity.ilike(pattern),
                WebhookLog.resource_id.ilike(pattern),
                WebhookLog.notification_title.ilike(pattern),
            )
        )

    total = (
        await db.execute(select(func.count(WebhookLog.id)).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(WebhookLog)
        .where(*conditions)
        .order_by(WebhookLog.created_at.desc(), WebhookLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    logs = result.scalars().all()

    return WebhookLogListResponse(
        logs=[WebhookLogResponse.model_validate(log) for log in logs],
        pagination=PaginationResponse(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit,
        ),
    )


async def _count(db: AsyncSession, *conditions) -> int:
    result = await db.execute(select(func.count(WebhookLog.id)).where(*conditions))
    return result.scalar_one()


@router.get(
    "/stats",
    response_model=WebhookLogStatsResponse,
    summary="סטטיסטיקות webhooks",
    responses={
        200: {"description": "סטטיסטיקות"},
        401: {"description": "חסר מפתח API"},
        403: {"description": "מפתח API שגוי"},
    },
)
async def get_webhook_log_stats(
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> WebhookLogStatsResponse:
    since = datetime.now(timezone.utc) - timedelta(hours=24)

    total = await _count(db)
    push_sent = await _count(db, WebhookLog.push_sent.is_(True))
    push_success = await _count(db, WebhookLog.push_success.is_(True))
    push_failed = await _count(
        db, WebhookLog.push_sent.is_(True), WebhookLog.push_success.is_(False)
    )
    last_24h = await _count(db, WebhookLog.created_at >= since)

    by_event: dict[str, int] = {event_type.value: 0 for event_type in WebhookEventType}
    by_status: dict[str, dict[str, int]] = {event_type.value: {} for event_type in WebhookEventType}
    rows = await db.execute(
        select(WebhookLog.event, WebhookLog.status, func.count(WebhookLog.id))
        .group_by(WebhookLog.event, WebhookLog.status)
    )
    for event, row_status, count in rows.all():
        by_event[event] = by_event.get(event, 0) + count
        by_status.setdefault(event, {})[row_status] = count

    failures = await db.execute(
        select(WebhookLog)
        .where(WebhookLog.push_sent.is_(True), WebhookLog.push_success.is_(False))
        .order_by(WebhookLog.created_at.desc(), WebhookLog.id.desc())
        .limit(_RECENT_FAILURES_LIMIT)
    )

    return WebhookLogStatsResponse(
        total_webhooks=total,
        total_push_sent=push_sent,
        total_push_success=push_success,
        total_push_failed=push_failed,
        success_rate=round(push_success * 100 / push_sent) if push_sent else 0,
        last_24h=last_24h,
        by_event=by_event,
        by_status=by_status,
        recent_failures=[
            RecentFailureResponse.model_validate(log) for log in failures.scalars().all()
        ],
    )


@router.get(
    "/{log_id}",
    response_model=WebhookLogDetailResponse,
    summary="רשומת webhook בודדת",
    responses={
        200: {"description": "הרשומה כולל payload"},
        401: {"description": "חסר מפתח API"},
        403: {"description": "מפתח API שגוי"},
        404: {"description": "רשומה לא נמצאה"},
    },
)
async def get_webhook_log(
    log_id: int,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> WebhookLogDetailResponse:
    log = await db.get(WebhookLog, log_id)
    if log is None:
        raise WebhookLogNotFoundError(log_id)
    return WebhookLogDetailResponse.model_validate(log)
