"""
FastAPI Middleware

Provides request/response middleware for:
- Correlation ID injection (also honours the WooCommerce delivery id)
- Request logging
- Global error handling
- Security headers

אין rate limiting על נקודות ה-webhook: תשובת 429 מלמדת את WooCommerce
לשלוח שוב, וזה בדיוק ה-retry storm שאנחנו מנסים למנוע.
"""
import time
from typing import Callable
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging import (
    get_logger,
    set_correlation_id,
    get_correlation_id
)
from app.core.exceptions import AppException, ErrorCode

logger = get_logger(__name__)

_DELIVERY_ID_HEADER = "X-WC-Webhook-Delivery-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation ID to requests"""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        # עדיפות: X-Correlation-ID מפורש, אחר כך מזהה המשלוח של WooCommerce
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get(_DELIVERY_ID_HEADER)
        )
        correlation_id = set_correlation_id(correlation_id)

        request.state.correlation_id = correlation_id

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id

        return response


# כותרות שמזהות משלוח webhook ב-WooCommerce; נכנסות ללוג הבקשה
_WC_LOG_HEADERS = {
    "X-WC-Webhook-Topic": "webhook_topic",
    "X-WC-Webhook-Resource": "webhook_resource",
    "X-WC-Webhook-Event": "webhook_event",
    "X-WC-Webhook-ID": "webhook_id",
    "X-WC-Webhook-Source": "webhook_source",
}


def _request_context(request: Request) -> dict:
    context = {
        "method": request.method,
        "path": request.url.path,
        "client_host": request.client.host if request.client else None,
    }
    for header, key in _WC_LOG_HEADERS.items():
        value = request.headers.get(header)
        if value:
            context[key] = value
    return context


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    שורת לוג אחת לכל בקשה שהסתיימה (warning מ-4xx ומעלה).

    גוף הבקשה לא נרשם — payload של הזמנה מכיל פרטי לקוח.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        started = time.monotonic()
        context = _request_context(request)
        logger.debug(f"Request started: {request.method} {request.url.path}", extra_data=context)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra_data={
                    **context,
                    "duration_seconds": round(time.monotonic() - started, 4),
                    "error": str(e),
                },
                exc_info=True
            )
            raise

        log = logger.info if response.status_code < 400 else logger.warning
        log(
            f"Request completed: {request.method} {request.url.path}",
            extra_data={
                **context,
                "status_code": response.status_code,
                "duration_seconds": round(time.monotonic() - started, 4),
            }
        )
        return response


async def app_exception_handler(
    request: Request,
    exc: AppException
) -> JSONResponse:
    """Handle application exceptions"""
    logger.warning(
        f"Application exception: {exc.error_code.value}",
        extra_data={
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details,
            "path": request.url.path,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"X-Correlation-ID": get_correlation_id()}
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Handle unexpected exceptions — no internal details in the response"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra_data={
            "exception_type": type(exc).__name__,
            "message": str(exc),
            "path": request.url.path,
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "details": {}
            }
        },
        headers={"X-Correlation-ID": get_correlation_id()}
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware להוספת כותרות אבטחה לכל תשובה.

    - Strict-Transport-Security (HSTS) — מחייב גישה ב-HTTPS בלבד.
    - X-Content-Type-Options: nosniff — מונע MIME sniffing.

    הערה: HSTS מוחל רק כשאפליקציה לא במצב DEBUG, כדי לא לחסום פיתוח מקומי ב-HTTP.
    """

    def __init__(self, app: FastAPI, *, debug: bool = False) -> None:
        super().__init__(app)
        self._debug = debug

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"

        if not self._debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def setup_middleware(app: FastAPI) -> None:
    """Setup all middleware for the application"""
    from app.core.config import settings

    # ב-Starlette, ה-middleware האחרון שנוסף הוא ה-outermost.
    # סדר עיבוד בקשה: SecurityHeaders → CorrelationId → RequestLogging → app
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, debug=settings.DEBUG)


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup exception handlers"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
