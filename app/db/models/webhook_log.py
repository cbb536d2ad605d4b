"""
Webhook Log Model - יומן ביקורת ומקור ה-deduplication של webhooks נכנסים.

רשומה נוצרת לפני ניסיון ה-push (pre-write) ומתעדכנת פעם אחת אחריו.
dedup_key ייחודי משמש כ-claim אטומי: שני handlers מקבילים לאותו
(source, event, resource_id, status) באותו חלון זמן — רק אחד מצליח להכניס.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, Index

from app.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookLog(Base):
    """רשומת webhook — תוכן ההתראה ותוצאת השליחה"""

    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)

    source = Column(String(30), nullable=False)  # woocommerce
    event = Column(String(40), nullable=False, index=True)  # order_status / subscription_status
    resource_id = Column(String(64), nullable=False)
    status = Column(String(64), nullable=False)
    customer_identity = Column(String(255), nullable=True)

    notification_title = Column(String(255), nullable=True)
    notification_body = Column(Text, nullable=True)

    push_sent = Column(Boolean, nullable=False, default=False)
    push_success = Column(Boolean, nullable=False, default=False)
    push_error = Column(String(1000), nullable=True)

    # סטטוס שברשימת הדילוג — נרשם לביקורת בלבד, לא משתתף ב-dedup
    skipped = Column(Boolean, nullable=False, default=False)

    # "{source}:{event}:{resource_id}:{status}:{bucket}" — NULL עבור רשומות skipped
    dedup_key = Column(String(255), nullable=True, unique=True)

    payload = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index(
            "ix_webhook_logs_dedup_lookup",
            "source", "event", "resource_id", "status", "created_at",
        ),
        Index("ix_webhook_logs_created_at", "created_at"),
    )
