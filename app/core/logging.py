"""
Structured Logging

לוגים ב-JSON (production) או בפורמט קריא (DEBUG), עם correlation ID לכל בקשה.

ה-correlation ID של בקשת webhook הוא X-WC-Webhook-Delivery-ID כשהוא קיים,
כך ש-retry של WooCommerce לאותו משלוח מופיע תחת אותו מזהה — מהקבלה,
דרך ה-dedup ועד תוצאת ה-push.

שימוש:
    logger = get_logger(__name__)
    logger.info("Push sent", extra_data={"resource_id": "1234"})
"""
import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

_app_name = "commerce-push-webhooks"

# ספריות שרועשות ב-INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """שורת JSON אחת לכל רשומה; עברית נשמרת כמו שהיא (ensure_ascii=False)"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "app": _app_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            entry["extra"] = extra_data

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.Logger):
    """
    Logger שמקבל extra_data=dict בכל מתודת לוג (debug/info/warning/error/critical).

    ה-dict נשמר על ה-LogRecord ומופיע תחת "extra" בפורמט JSON.
    """

    def _log(
        self,
        level: int,
        msg: object,
        args,
        exc_info=None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra_data: dict[str, Any] | None = None,
    ) -> None:
        if extra_data:
            extra = {**(extra or {}), "extra_data": extra_data}
        # +1 כדי ש-module/function/line יצביעו על הקורא ולא על המתודה הזו
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


class CorrelationIdFilter(logging.Filter):
    """מוסיף record.correlation_id לפורמט הקריא ("-" מחוץ לבקשה)"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "commerce-push-webhooks"
) -> None:
    """
    הגדרת ה-root logger לתהליך.

    Args:
        level: DEBUG / INFO / WARNING / ERROR / CRITICAL
        json_format: JSON ל-production, שורה קריאה לפיתוח
        app_name: נכתב בשדה "app" של כל רשומת JSON
    """
    global _app_name
    _app_name = app_name

    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """קובע את ה-correlation ID של ה-context הנוכחי (נוצר חדש אם לא סופק)"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """ה-correlation ID הנוכחי; מחוץ לבקשה נוצר אחד ונשמר ב-context"""
    return correlation_id_var.get() or set_correlation_id()


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def log_async_operation(operation_name: str):
    """
    Decorator לפעולה אסינכרונית: DEBUG בהתחלה, INFO עם משך בסיום,
    ERROR עם traceback בכשלון (ה-exception עולה הלאה).
    """
    def decorator(func):
        op_logger = get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.monotonic()
            op_logger.debug(
                f"Starting {operation_name}",
                extra_data={"operation": operation_name, "status": "started"}
            )
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                op_logger.error(
                    f"Failed {operation_name}: {exc}",
                    extra_data={
                        "operation": operation_name,
                        "status": "failed",
                        "duration_seconds": round(time.monotonic() - started, 4),
                        "error": str(exc),
                    },
                    exc_info=True
                )
                raise

            op_logger.info(
                f"Completed {operation_name}",
                extra_data={
                    "operation": operation_name,
                    "status": "completed",
                    "duration_seconds": round(time.monotonic() - started, 4),
                }
            )
            return result

        return wrapper
    return decorator
