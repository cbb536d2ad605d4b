"""
אימות מפתח API עבור endpoints של לוג ה-webhooks.

שימוש:
    @router.get("/webhook-logs")
    async def list_webhook_logs(
        _: None = Depends(require_admin_api_key),
    ):
        ...
"""
import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

ADMIN_API_KEY_HEADER = "X-Admin-API-Key"

_api_key_header = APIKeyHeader(name=ADMIN_API_KEY_HEADER, auto_error=False)


async def require_admin_api_key(
    api_key: str | None = Depends(_api_key_header),
) -> None:
    """
    401 כשהמפתח חסר, 403 כשהוא שגוי.

    ADMIN_API_KEY ריק בסביבה = אין גישה בכלל (403), גם עם header.
    """
    if not settings.ADMIN_API_KEY:
        logger.warning("Webhook log access denied, ADMIN_API_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is disabled",
        )

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing API key header: {ADMIN_API_KEY_HEADER}",
        )

    # השוואה בטוחה מפני timing attacks
    if not hmac.compare_digest(api_key, settings.ADMIN_API_KEY):
        logger.warning("Webhook log access denied, wrong API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
