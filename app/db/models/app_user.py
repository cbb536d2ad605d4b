"""
App User Model - משתמשי אפליקציית המובייל ו-FCM token של המכשיר.

הטבלה מנוהלת ע"י מערכת הרישום של האפליקציה; כאן היא משמשת
כ-recipient directory: זיהוי לפי אימייל או WordPress user id.
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum

from app.db.database import Base


class AppUserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AppUser(Base):
    """Mobile app user with an optional push token"""

    __tablename__ = "app_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    wp_user_id = Column(String(64), nullable=True, index=True)
    name = Column(String(150), nullable=True)

    # null = אין מכשיר רשום; זה לא שגיאה, פשוט אין לאן לשלוח
    fcm_token = Column(String(512), nullable=True)

    status = Column(
        SQLEnum(
            AppUserStatus,
            name="app_user_status",
            values_callable=lambda x: [e.value for e in x]
        ),
        default=AppUserStatus.ACTIVE,
        nullable=False
    )

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
