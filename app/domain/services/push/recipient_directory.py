"""
Recipient Directory — מיפוי מזהה לקוח (אימייל / WordPress user id) ל-FCM token.

המימוש הקונקרטי קורא מטבלת app_users. רק משתמש פעיל עם token רשום
נחשב נמען.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.validation import IdentityValidator
from app.db.models.app_user import AppUser, AppUserStatus

logger = get_logger(__name__)


class BaseRecipientDirectory(ABC):

    @abstractmethod
    async def resolve(self, identity: str) -> Optional[str]:
        """device token עבור הלקוח, או None אם אין"""

    @abstractmethod
    async def forget_token(self, token: str) -> None:
        """מחיקת token שהספק דיווח עליו כלא תקף"""


class AppUserDirectory(BaseRecipientDirectory):
    """Recipient directory backed by the app_users table"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, identity: str) -> Optional[str]:
        normalized = IdentityValidator.normalize(identity)
        if not normalized:
            return None

        # אימייל מושווה ללא רישיות, user id מושווה כמו שהוא
        result = await self.db.execute(
            select(AppUser.fcm_token)
            .where(
                or_(
                    func.lower(AppUser.email) == normalized.lower(),
                    AppUser.wp_user_id == normalized,
                ),
                AppUser.fcm_token.is_not(None),
                AppUser.fcm_token != "",
                AppUser.status == AppUserStatus.ACTIVE,
            )
            .order_by(AppUser.updated_at.desc(), AppUser.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def forget_token(self, token: str) -> None:
        result = await self.db.execute(
            update(AppUser)
            .where(AppUser.fcm_token == token)
            .values(fcm_token=None)
        )
        await self.db.commit()
        logger.info(
            "Cleared invalid FCM token",
            extra_data={"users_updated": result.rowcount}
        )
