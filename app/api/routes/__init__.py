"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.webhook_logs import router as webhook_logs_router
from app.api.webhooks.woocommerce import router as woocommerce_router

router = APIRouter()

router.include_router(woocommerce_router, prefix="/webhooks/woocommerce", tags=["Webhooks"])
router.include_router(webhook_logs_router, prefix="/webhook-logs", tags=["Webhook Logs"])
