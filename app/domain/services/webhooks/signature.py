"""
אימות חתימת webhook נכנס מ-WooCommerce.

WooCommerce שולח את הכותרת ``X-WC-Webhook-Signature``: base64 של
HMAC-SHA256 על גוף הבקשה הגולמי, כשה-secret של ה-webhook הוא המפתח.

חשוב: החתימה מחושבת על ה-bytes כפי שהתקבלו. פענוח JSON וסריאליזציה
מחדש לפני האימות ישברו את החתימה.
"""
import base64
import enum
import hashlib
import hmac

from app.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-WC-Webhook-Signature"


class SignatureCheck(str, enum.Enum):
    VALID = "valid"
    INVALID = "invalid"
    MISSING = "missing"
    NOT_CONFIGURED = "not_configured"

    @property
    def is_failure(self) -> bool:
        return self in (SignatureCheck.INVALID, SignatureCheck.MISSING)


def compute_signature(raw_body: bytes, secret: str) -> str:
    """base64(HMAC-SHA256(secret, raw_body))"""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """
    בדיקת חתימה בהשוואה בזמן קבוע.

    Args:
        raw_body: גוף הבקשה הגולמי בדיוק כפי שהתקבל
        signature: ערך הכותרת X-WC-Webhook-Signature
        secret: ה-secret המשותף

    Returns:
        True אם החתימה תואמת
    """
    if not signature or not secret:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature.strip())


def check_signature(raw_body: bytes, signature: str | None, secret: str) -> SignatureCheck:
    """סיווג תוצאת האימות — ההחלטה אם לחסום נעשית ע"י ה-caller לפי המדיניות"""
    if not secret:
        return SignatureCheck.NOT_CONFIGURED
    if not signature:
        return SignatureCheck.MISSING
    if verify_signature(raw_body, signature, secret):
        return SignatureCheck.VALID
    return SignatureCheck.INVALID
