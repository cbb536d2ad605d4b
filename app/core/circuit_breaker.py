"""
Circuit Breaker ל-push gateway

כש-gateway נופל, כל webhook היה מחכה את ה-timeout המלא של HTTP לפני שמחזיר 200
ל-WooCommerce. ה-breaker נפתח אחרי רצף כשלונות, וכל עוד הוא פתוח השליחה נכשלת
מיד (PushResult עם circuit_open) במקום לחסום את הבקשה.

מצבים:
- CLOSED: שליחה רגילה, סופרים כשלונות רצופים
- OPEN: gateway לא זמין — לא פונים אליו עד שעובר timeout_seconds
- HALF_OPEN: מספר מוגבל של קריאות ניסיון; הצלחות סוגרות, כשלון פותח מחדש
"""
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, ParamSpec, TypeVar

import httpx

from app.core.exceptions import CircuitBreakerOpenError, PushGatewayError
from app.core.logging import get_logger

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3
    # רק exceptions מהסוגים האלה נספרים ככשלון של השירות; השאר עולים בלי לגעת במצב
    counted_exceptions: tuple[type[BaseException], ...] = (Exception,)


class CircuitBreaker:
    """
    Breaker אחד לכל שירות חיצוני (singleton לפי service_name).

    המצב מוגן ב-threading.Lock — אין await בתוך הקטע הקריטי, כך שזה בטוח
    גם מתוך event loop.
    """

    _instances: dict[str, "CircuitBreaker"] = {}
    _instances_lock = threading.Lock()

    def __init__(self, service_name: str, config: CircuitBreakerConfig | None = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._probe_successes = 0
        self._probe_calls = 0
        self._opened_at = 0.0

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        """מחזיר את ה-breaker של השירות; config משמש רק ביצירה הראשונה"""
        with cls._instances_lock:
            breaker = cls._instances.get(service_name)
            if breaker is None:
                breaker = cls(service_name, config)
                cls._instances[service_name] = breaker
            return breaker

    @classmethod
    def reset_all(cls) -> None:
        """מחיקת כל ה-breakers (בדיקות / reload של הגדרות)"""
        with cls._instances_lock:
            cls._instances.clear()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._state is CircuitState.HALF_OPEN

    def snapshot(self) -> dict[str, Any]:
        """מצב נוכחי לתצוגה ב-readiness / דיאגנוסטיקה"""
        return {
            "service": self.service_name,
            "state": self._state.value,
            "failure_count": self._failures,
            "retry_after_seconds": round(self.get_retry_after(), 1),
        }

    def get_retry_after(self) -> float:
        if self._state is not CircuitState.OPEN:
            return 0.0
        elapsed = time.monotonic() - self._opened_at
        return max(0.0, self.config.timeout_seconds - elapsed)

    def _move_to(self, new_state: CircuitState) -> None:
        # נקרא תחת self._lock
        old_state = self._state
        self._state = new_state

        if new_state is CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif new_state is CircuitState.HALF_OPEN:
            self._probe_calls = 0
            self._probe_successes = 0
        else:
            self._failures = 0
            self._probe_successes = 0

        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker '{self.service_name}' {old_state.value} -> {new_state.value}",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value,
                "failure_count": self._failures,
            }
        )

    async def can_execute(self) -> bool:
        """האם מותר לפנות לשירות עכשיו. ב-HALF_OPEN כל תשובה חיובית צורכת ניסיון"""
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return True

            if self._state is CircuitState.OPEN:
                if self.get_retry_after() > 0:
                    return False
                self._move_to(CircuitState.HALF_OPEN)

            if self._probe_calls >= self.config.half_open_max_calls:
                return False
            self._probe_calls += 1
            return True

    async def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._probe_successes += 1
                if self._probe_successes >= self.config.success_threshold:
                    self._move_to(CircuitState.CLOSED)
            else:
                self._failures = 0

    async def record_failure(self, error: BaseException | None = None) -> None:
        with self._lock:
            self._failures += 1
            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._failures,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None,
                }
            )

            # כשלון בניסיון half-open פותח מחדש מיד
            if (
                self._state is CircuitState.HALF_OPEN
                or self._failures >= self.config.failure_threshold
            ):
                self._move_to(CircuitState.OPEN)

    async def execute(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs
    ) -> T:
        """
        הרצת קריאה אסינכרונית דרך ה-breaker.

        Raises:
            CircuitBreakerOpenError: ה-breaker פתוח — func לא נקראה
        """
        if not await self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            result = await func(*args, **kwargs)
        except self.config.counted_exceptions as exc:
            await self.record_failure(exc)
            raise

        await self.record_success()
        return result


def get_push_circuit_breaker() -> CircuitBreaker:
    """
    ה-breaker המשותף של ה-push gateway (שליחה + health check).

    נספרים רק כשלונות של ה-gateway עצמו: 5xx (PushGatewayError) ושגיאות רשת/timeout
    של httpx. תשובת 4xx היא דחייה של הודעה ספציפית ולא מגיעה לכאן כ-exception.
    """
    from app.core.config import settings

    return CircuitBreaker.get_instance(
        "push",
        CircuitBreakerConfig(
            failure_threshold=settings.PUSH_CIRCUIT_FAILURE_THRESHOLD,
            success_threshold=2,
            timeout_seconds=settings.PUSH_CIRCUIT_TIMEOUT_SECONDS,
            counted_exceptions=(PushGatewayError, httpx.HTTPError),
        )
    )
