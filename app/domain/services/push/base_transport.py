"""
ממשק בסיסי ל-Push Transport — Dependency Inversion.

הדיספצ'ר תלוי רק בממשק. המימוש הקונקרטי (HTTP gateway מול FCM)
נבחר ב-transport_factory, ובבדיקות מוחלף ב-fake.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PushResult:
    """
    תוצאת ניסיון שליחה. כשלון שליחה הוא ערך, לא exception.

    attempted=False כשהשליחה נעצרה לפני ה-transport (אין מזהה לקוח /
    אין token) — זה מה שקובע את pushSent בתשובת ה-webhook.
    """
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    attempted: bool = True

    @classmethod
    def not_attempted(cls, error: str) -> "PushResult":
        return cls(success=False, error=error, attempted=False)


# הספק דיווח שה-token לא רשום יותר — הדיספצ'ר מוחק אותו מה-directory
INVALID_TOKEN_ERROR_CODE = "invalid_token"


class BasePushTransport(ABC):
    """
    ממשק אחיד לשליחת push notification למכשיר בודד.

    כל מימוש אחראי על:
    - שליחת HTTP / SDK
    - circuit breaker
    - המרת שגיאות ספק ל-PushResult (בלי לזרוק)
    """

    @abstractmethod
    async def send(
        self,
        token: str,
        title: str,
        body: str,
        image_url: Optional[str] = None,
        data: Optional[dict[str, str]] = None,
    ) -> PushResult:
        """
        שליחת התראה ל-device token.

        Args:
            token: FCM token של המכשיר
            title: כותרת ההתראה
            body: גוף ההתראה
            image_url: תמונה (לא בשימוש בהתראות סטטוס)
            data: payload נתונים — כל הערכים מחרוזות

        Returns:
            PushResult — לעולם לא זורק על כשל שליחה
        """

    async def health_check(self) -> bool:
        """בדיקת זמינות לצורך readiness — ברירת מחדל: זמין"""
        return True

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """שם הספק לשימוש בלוגים ודיאגנוסטיקה."""
