"""
Commerce Push Webhooks - Main FastAPI Application

WooCommerce שולח webhook על שינוי סטטוס של הזמנה/מנוי → רשומת audit →
התראת push למכשיר של הלקוח. WooCommerce תמיד מקבל 200 (חוץ מחתימה לא תקינה
במצב enforce), כדי שכשלון push לא יגרום ל-retry ול-webhook שיושבת.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import setup_logging, get_logger
from app.core.middleware import setup_middleware, setup_exception_handlers
from app.api.routes import router as api_router
from app.db.database import engine, Base
from app.domain.services.push.transport_factory import reset_transport

# רישום המודלים ב-metadata לפני create_all
from app.db import models as _models  # noqa: F401

setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting application",
        extra_data={
            "app_name": settings.APP_NAME,
            "signature_policy": settings.WEBHOOK_SIGNATURE_POLICY,
            "dedup_window_seconds": settings.WEBHOOK_DEDUP_WINDOW_SECONDS,
            "skip_statuses": sorted(settings.skip_statuses),
            "post_write_mode": settings.WEBHOOK_LOG_POST_WRITE_MODE,
            "push_configured": bool(settings.PUSH_GATEWAY_URL),
            "template_overrides": len(settings.template_overrides),
        }
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    yield

    logger.info("Shutting down application")
    reset_transport()
    await engine.dispose()
    logger.info("Database connections disposed")


_OPENAPI_TAGS = [
    {
        "name": "Webhooks",
        "description": "Webhook-ים מ-WooCommerce: עדכוני סטטוס הזמנה ומנוי → התראת push ללקוח.",
    },
    {
        "name": "Webhook Logs",
        "description": "עקבת ביקורת של webhooks נכנסים ותוצאות השליחה (אדמין, X-Admin-API-Key).",
    },
    {"name": "Health", "description": "Liveness / readiness probes."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "קבלת webhooks של WooCommerce על שינויי סטטוס הזמנות ומנויים, "
        "סינון כפילויות ושליחת התראת push למכשיר הלקוח."
    ),
    openapi_tags=_OPENAPI_TAGS,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# correlation ID, request logging, security headers
setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

# CORS נדרש רק לכלי אדמין בדפדפן; WooCommerce שולח server-to-server
if not allowed_origins and settings.DEBUG:
    allowed_origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID", "X-Admin-API-Key"],
    )

app.include_router(api_router, prefix="/api")


@app.get(
    "/health",
    summary="בדיקת חיוּת (Liveness Probe)",
    description=(
        "בדיקה קלה שהתהליך חי ומגיב. "
        "לא בודק תלויות חיצוניות — כדי למנוע restart מיותר בגלל כשלון DB או gateway."
    ),
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    """Liveness probe — התהליך חי ומגיב."""
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="בדיקת מוכנות (Readiness Probe)",
    description=(
        "בדיקת התלויות: מסד הנתונים ו-push gateway. "
        "מחזיר status=healthy אם הכל תקין, או status=degraded עם פירוט השגיאה."
    ),
    responses={
        200: {
            "description": "כל התלויות תקינות",
            "content": {
                "application/json": {
                    "example": {"status": "healthy", "db": "ok", "push_gateway": "ok"}
                }
            },
        },
        503: {
            "description": "לפחות תלות אחת לא זמינה",
            "content": {
                "application/json": {
                    "example": {
                        "status": "degraded",
                        "db": "ok",
                        "push_gateway": "error: push_circuit_open",
                    }
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check() -> JSONResponse:
    """Readiness probe — בדיקת התלויות החיצוניות."""
    from app.domain.services.health_service import check_readiness

    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
