"""Circuit breaker guarding the mail API.

Purpose: Stop hammering the mail provider while it is down; dispatches fail
fast and are recorded as failed, and callers may retry later.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Provider failing, requests fail immediately
- HALF_OPEN: After the timeout, one trial request is let through; other callers
  fail fast until it resolves
"""
import threading
import time
from enum import Enum
from typing import Any, Callable

from telehealth.logging_config import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when circuit breaker is open (fail fast)."""

    def __init__(self, name: str, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' is OPEN. Retry after {retry_after:.1f}s")


class CircuitBreaker:
    """Thread-safe circuit breaker for one external dependency."""

    def __init__(
        self,
        name: str = "mail",
        failure_threshold: int = 5,
        timeout: float = 60,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            name: Dependency name used in logs and errors
            failure_threshold: Consecutive failures before opening
            timeout: Seconds to stay open before a half-open trial
            clock: Monotonic seconds source
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.clock = clock
        self.failure_count = 0
        self.last_failure_time = None
        self._state = CircuitState.CLOSED
        self._lock = threading.Lock()
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        return self._state.value

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute func with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If circuit is open
            Exception: Whatever func raises
        """
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._trial_in_flight:
                raise CircuitBreakerOpen(self.name, 0)
            if self._state == CircuitState.OPEN:
                remaining = self._time_until_retry()
                if remaining > 0:
                    raise CircuitBreakerOpen(self.name, remaining)
                self._state = CircuitState.HALF_OPEN
                logger.info("circuit_half_open", circuit=self.name)
            if self._state == CircuitState.HALF_OPEN:
                self._trial_in_flight = True

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _time_until_retry(self) -> float:
        if self.last_failure_time is None:
            return 0
        return max(0, self.timeout - (self.clock() - self.last_failure_time))

    def _on_success(self):
        with self._lock:
            self._trial_in_flight = False
            self.failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("circuit_closed", circuit=self.name)

    def _on_failure(self):
        with self._lock:
            self._trial_in_flight = False
            self.failure_count += 1
            self.last_failure_time = self.clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning("circuit_reopened", circuit=self.name)
            elif self.failure_count >= self.failure_threshold and self._state == CircuitState.CLOSED:
                self._state = CircuitState.OPEN
                logger.error(
                    "circuit_opened",
                    circuit=self.name,
                    failures=self.failure_count,
                    timeout=self.timeout,
                )
