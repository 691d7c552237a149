"""
Circuit breaker pattern implementation for resilient service calls.
"""

import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from storefront_shared.errors import CircuitOpenError
from storefront_shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # Single trial request allowed


class CircuitBreaker:
    """Consecutive-failure circuit breaker with a single half-open trial.

    One instance is shared by every request of the process; it is created
    explicitly and handed to the pipeline so tests can use isolated instances.
    """

    def __init__(self,
                 failure_threshold: int = 10,
                 reset_timeout: float = 30.0,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.name = name
        self.logger = get_logger(f"circuit_breaker.{name}")
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _can_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt a reset."""
        if self._last_failure_time is None:
            return True
        return (self._clock() - self._last_failure_time) >= self.reset_timeout

    def allow_request(self) -> bool:
        """Decide whether a call may proceed; blocked calls change nothing."""
        with self._lock:
            if self._state == CircuitBreakerState.CLOSED:
                return True

            if self._state == CircuitBreakerState.OPEN:
                if not self._can_attempt_reset():
                    return False
                self._state = CircuitBreakerState.HALF_OPEN
                self._trial_in_flight = True
                self.logger.info("Circuit breaker transitioning to half-open", circuit=self.name)
                return True

            # HALF_OPEN: only the trial request may pass
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            previous = self._state
            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False

        if previous != CircuitBreakerState.CLOSED:
            self.logger.info("Circuit breaker reset to CLOSED after successful call", circuit=self.name)

    def record_failure(self) -> None:
        """Record a failure and update state."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            self._trial_in_flight = False

            if self._state == CircuitBreakerState.HALF_OPEN:
                self._state = CircuitBreakerState.OPEN
                opened = True
            elif self._state == CircuitBreakerState.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitBreakerState.OPEN
                opened = True
            else:
                opened = False

        if opened:
            self.logger.warning(
                "Circuit breaker opened due to failures",
                circuit=self.name,
                failure_count=self._failure_count,
                threshold=self.failure_threshold
            )

    def release_trial(self) -> None:
        """Free a half-open trial slot whose outcome was never recorded."""
        with self._lock:
            self._trial_in_flight = False

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute function with circuit breaker protection."""
        if not self.allow_request():
            raise CircuitOpenError(self.name, self._state.value)

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        finally:
            self.release_trial()

        self.record_success()
        return result

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        with self._lock:
            can_execute = (
                self._state == CircuitBreakerState.CLOSED
                or (self._state == CircuitBreakerState.OPEN and self._can_attempt_reset())
                or (self._state == CircuitBreakerState.HALF_OPEN and not self._trial_in_flight)
            )
            return {
                "name": self.name,
                "state": self._state.value,
                "can_execute": can_execute,
                "failure_count": self._failure_count,
                "last_failure_time": self._last_failure_time,
                "failure_threshold": self.failure_threshold,
                "reset_timeout": self.reset_timeout,
            }

    def is_open(self) -> bool:
        """Check if circuit breaker is in OPEN state."""
        return self._state == CircuitBreakerState.OPEN

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False
