"""
שירות בדיקת בריאות — בדיקות תלויות (DB, Push Gateway).

מספק שתי רמות בדיקה:
- liveness: האם התהליך חי (ללא בדיקת תלויות)
- readiness: מסד הנתונים זמין וה-push gateway מגיב
"""
from typing import Any

from sqlalchemy import text

from app.core.circuit_breaker import get_push_circuit_breaker
from app.core.exceptions import ConfigurationError
from app.core.logging import get_logger
from app.db.database import AsyncSessionLocal
from app.domain.services.push.transport_factory import get_push_transport

logger = get_logger(__name__)

# סטטוסים אפשריים לתשובת readiness
_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# הודעות שגיאה מסוננות — ללא חשיפת פרטי תשתית
_ERROR_DB = "error: db_unavailable"
_ERROR_PUSH = "error: push_unavailable"
_ERROR_PUSH_NOT_CONFIGURED = "error: push_not_configured"
_ERROR_PUSH_CIRCUIT_OPEN = "error: push_circuit_open"


async def _check_db() -> str:
    """בדיקת חיבור למסד הנתונים באמצעות שאילתה קלה."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except Exception as e:
        logger.warning("בדיקת בריאות DB נכשלה", extra_data={"error": str(e)})
        return _ERROR_DB


async def _check_push_gateway() -> str:
    """זמינות ה-push gateway. circuit פתוח נחשב לא זמין בלי לשלוח בקשה."""
    try:
        transport = get_push_transport()
    except ConfigurationError:
        return _ERROR_PUSH_NOT_CONFIGURED

    if get_push_circuit_breaker().is_open:
        logger.warning(
            "Push gateway circuit breaker פתוח",
            extra_data=get_push_circuit_breaker().snapshot(),
        )
        return _ERROR_PUSH_CIRCUIT_OPEN

    try:
        if await transport.health_check():
            return _CHECK_OK
        return _ERROR_PUSH
    except Exception as e:
        logger.warning("בדיקת בריאות push gateway נכשלה", extra_data={"error": str(e)})
        return _ERROR_PUSH


async def check_readiness() -> dict[str, Any]:
    """
    בדיקת מוכנות מקיפה.

    מחזיר dict עם סטטוס כללי ופירוט לכל תלות:
    - status: "healthy" אם הכל תקין, "degraded" אם יש בעיה באחת התלויות
    - db / push_gateway: "ok" או "error: ..."
    """
    checks = {
        "db": await _check_db(),
        "push_gateway": await _check_push_gateway(),
    }

    all_ok = all(v == _CHECK_OK for v in checks.values())
    overall_status = _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED

    if not all_ok:
        logger.warning(
            "בדיקת מוכנות — המערכת במצב degraded",
            extra_data=checks,
        )

    return {"status": overall_status, **checks}
