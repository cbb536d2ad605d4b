"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.

כשלונות שליחת push אינם exceptions — הם מיוצגים כ-PushResult.
ה-exceptions כאן מיועדים לשגיאות תצורה, תשתית ו-API של אדמין.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    NOT_FOUND = "ERR_1002"
    CONFIGURATION_ERROR = "ERR_1007"

    # Webhook errors (2xxx)
    WEBHOOK_LOG_NOT_FOUND = "ERR_2001"
    WEBHOOK_SIGNATURE_INVALID = "ERR_2002"

    # External service errors (5xxx)
    PUSH_GATEWAY_ERROR = "ERR_5001"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class WebhookLogNotFoundError(NotFoundException):
    """Raised when a webhook log record is not found"""

    def __init__(self, log_id: int):
        super().__init__(
            resource="WebhookLog",
            identifier=log_id,
            error_code=ErrorCode.WEBHOOK_LOG_NOT_FOUND
        )


class InvalidWebhookSignatureError(AppException):
    """Raised only under WEBHOOK_SIGNATURE_POLICY=enforce"""

    def __init__(self, endpoint: str):
        super().__init__(
            message="Invalid webhook signature",
            error_code=ErrorCode.WEBHOOK_SIGNATURE_INVALID,
            status_code=401,
            details={"endpoint": endpoint}
        )


class ConfigurationError(AppException):
    """Raised when a required setting is missing or invalid at runtime"""

    def __init__(self, setting_name: str, message: str | None = None):
        super().__init__(
            message=message or f"Missing or invalid configuration: {setting_name}",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details={"setting": setting_name}
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name


class PushGatewayError(ExternalServiceException):
    """Raised when the push gateway rejects or fails a request"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="push",
            message=f"Push gateway error: {message}",
            error_code=ErrorCode.PUSH_GATEWAY_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "PushGatewayError":
        """
        יצירת PushGatewayError מתוך HTTP response בצורה עקבית.

        Args:
            operation: שם הפעולה (לדוגמה: send)
            response: אובייקט response (למשל httpx.Response)
            message: הודעת שגיאה מותאמת (אם לא סופק - נבנית אוטומטית)
            max_response_chars: אורך מקסימלי לשמירת response_text (מניעת לוגים גדולים)
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )
