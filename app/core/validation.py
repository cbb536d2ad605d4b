"""
Input Validation Utilities

Provides validation and sanitization for webhook-supplied values:
- Customer identity (e-mail or upstream user id) normalization and masking
- Text sanitization for values that end up in notifications
"""
import re


class ValidationPatterns:
    """Regex patterns for validation"""

    # מספיק לזיהוי "נראה כמו אימייל" — לא ולידציית RFC מלאה
    EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

    # מזהה משתמש של WordPress — מספרי בלבד
    WP_USER_ID = re.compile(r"^\d+$")


class IdentityValidator:
    """Customer identity utilities (email or WordPress user id)"""

    @staticmethod
    def is_email(identity: str) -> bool:
        """Check whether identity looks like an e-mail address"""
        return bool(identity) and bool(ValidationPatterns.EMAIL.match(identity.strip()))

    @staticmethod
    def normalize(identity: str) -> str:
        """
        Normalize identity for directory lookups.

        אימיילים מושווים ללא תלות ברישיות (כמו ב-WooCommerce),
        מזהים מספריים נשמרים כמו שהם.
        """
        cleaned = (identity or "").strip()
        if IdentityValidator.is_email(cleaned):
            return cleaned.lower()
        return cleaned

    @staticmethod
    def mask(identity: str | None) -> str:
        """
        Mask identity for logging (privacy).

        Returns:
            Masked identity (e.g., jo****@example.com, or ****34 for ids)
        """
        if not identity:
            return "-"
        if "@" in identity:
            local, _, domain = identity.partition("@")
            return f"{local[:2]}****@{domain}"
        if len(identity) < 4:
            return "****"
        return "****" + identity[-2:]


class TextSanitizer:
    """Text sanitization for security"""

    @staticmethod
    def sanitize(text: str, max_length: int = 1000) -> str:
        """
        Sanitize text input for safe storage.

        Note: This does NOT HTML escape. This function only:
        - Trims whitespace
        - Enforces max length
        - Removes null bytes and control characters

        Args:
            text: Text to sanitize
            max_length: Maximum allowed length

        Returns:
            Sanitized text
        """
        if not text:
            return ""

        sanitized = TextSanitizer.remove_control_characters(text.strip())

        # Enforce max length
        sanitized = sanitized[:max_length]

        # Collapse multiple spaces into one
        sanitized = re.sub(r" +", " ", sanitized)

        return sanitized

    @staticmethod
    def remove_control_characters(text: str) -> str:
        """
        Remove control characters from text (null bytes included).

        Args:
            text: Text to clean

        Returns:
            Cleaned text
        """
        if not text:
            return ""

        # Keep newlines and tabs, remove other control chars
        return "".join(
            char for char in text
            if char >= " " or char in "\n\r\t"
        )
