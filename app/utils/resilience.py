"""
Resilience utilities for outbound integrations.

This module provides:
- retry_with_backoff decorator for PR source calls
- CircuitBreaker class that lets a failing notification sink fail fast
"""

import asyncio
import time
import logging
from typing import Awaitable, Callable, Optional, TypeVar, ParamSpec
from functools import wraps
from enum import Enum

logger = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open."""
    pass


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Decorator for retrying async functions with exponential backoff.

    Used for reads from the PR source. Notification sinks are deliberately
    not wrapped: delivery there is best-effort with no retry.

    Args:
        max_retries: Maximum number of attempts (default: 3)
        base_delay: Initial delay in seconds between attempts (default: 1.0)
        max_delay: Maximum delay in seconds between attempts (default: 30.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)
        exceptions: Tuple of exception types to catch and retry

    Example:
        @retry_with_backoff(max_retries=3, base_delay=1.0)
        async def list_pull_requests():
            return await client.fetch()
    """
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_retries):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(
                            f"{func.__name__} succeeded on attempt {attempt + 1}/{max_retries}"
                        )

                    return result

                except exceptions as e:
                    if attempt == max_retries - 1:
                        logger.error(
                            f"{func.__name__} failed after {max_retries} attempts: {e}"
                        )
                        raise

                    delay = min(base_delay * (exponential_base ** attempt), max_delay)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}/{max_retries}: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )

                    await asyncio.sleep(delay)

            raise RuntimeError(f"{func.__name__} called with max_retries={max_retries}")

        return wrapper

    return decorator


class CircuitBreaker:
    """
    Circuit breaker for external service calls.

    - CLOSED: requests pass through; consecutive failures are counted
    - OPEN: requests are rejected immediately until ``timeout`` elapses
    - HALF_OPEN: a limited number of trial requests decide whether to close

    Args:
        failure_threshold: Consecutive failures before opening (default: 5)
        timeout: Seconds to wait before attempting recovery (default: 60)
        half_open_max_calls: Trial calls allowed in half-open state (default: 1)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self.half_open_calls = 0

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerOpenError: If circuit is open
            Exception: Any exception raised by the function
        """
        if self.state == CircuitState.OPEN:
            if self.last_failure_time is not None and (self._clock() - self.last_failure_time) >= self.timeout:
                logger.info("Circuit breaker transitioning to HALF_OPEN state")
                self.state = CircuitState.HALF_OPEN
                self.half_open_calls = 0
                self.success_count = 0
            else:
                raise CircuitBreakerOpenError(
                    f"Circuit breaker is OPEN. Will retry after {self.timeout}s timeout."
                )

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_calls >= self.half_open_max_calls:
                raise CircuitBreakerOpenError(
                    "Circuit breaker is HALF_OPEN and max test calls reached"
                )
            self.half_open_calls += 1

        try:
            result = await func()
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        self.success_count += 1

        if self.state == CircuitState.HALF_OPEN:
            if self.success_count >= self.half_open_max_calls:
                logger.info("Circuit breaker transitioning to CLOSED state (service recovered)")
                self.reset()
        else:
            self.failure_count = 0

    def _record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            logger.warning("Circuit breaker transitioning to OPEN state (service still failing)")
            self.state = CircuitState.OPEN
            self.success_count = 0
            self.half_open_calls = 0
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                f"Circuit breaker transitioning to OPEN state "
                f"(failure threshold {self.failure_threshold} exceeded)"
            )
            self.state = CircuitState.OPEN
            self.success_count = 0

    def get_state(self) -> CircuitState:
        return self.state

    def reset(self) -> None:
        """Return to the closed state and clear counters."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.last_failure_time = None


def create_azure_devops_circuit_breaker() -> CircuitBreaker:
    """Create circuit breaker configured for Azure DevOps API calls."""
    return CircuitBreaker(failure_threshold=5, timeout=60, half_open_max_calls=3)


def create_webhook_circuit_breaker() -> CircuitBreaker:
    """Create circuit breaker configured for chat webhook deliveries."""
    return CircuitBreaker(failure_threshold=3, timeout=300, half_open_max_calls=1)
