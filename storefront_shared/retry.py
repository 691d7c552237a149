"""
Retry mechanism for resilient operations.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, TypeVar

from storefront_shared.logging import get_logger

T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_retries: int = 2,
                 base_delay: float = 0.3,
                 max_delay: float = 2.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay after the given (1-based) failed attempt."""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))

    # Apply max delay cap
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


async def call_with_retry(func: Callable[[], Awaitable[T]],
                          config: RetryConfig,
                          retry_if: Callable[[BaseException], bool],
                          sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                          name: str = "operation") -> T:
    """Run func, retrying failures accepted by retry_if.

    The last exception propagates unchanged once attempts are exhausted or a
    non-retryable failure occurs.
    """
    logger = get_logger(f"retry.{name}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()
        except Exception as e:
            if not retry_if(e):
                raise

            if attempt == config.max_attempts:
                logger.warning(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    error_type=type(e).__name__
                )
                raise

            delay = calculate_delay(attempt, config)
            logger.info(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                delay=round(delay, 3),
                error_type=type(e).__name__
            )
            await sleep(delay)
            continue

        if attempt > 1:
            logger.info("Retry succeeded", attempt=attempt)
        return result

    # max_attempts is always >= 1, so the loop either returns or raises
    raise RuntimeError(f"Retry loop for {name} exited without a result")
