"""
Retry utility module with exponential backoff and circuit breaker patterns.

Only used while bootstrapping connections to external services. Registry
operations themselves never retry; their failures reach the caller.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitOpenError(RuntimeError):
    """Raised when every attempt was skipped because the circuit was open."""

    pass


class CircuitBreaker:
    """Circuit breaker guarding a single external dependency."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time: float = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF-OPEN
        self._clock = clock

    def record_failure(self) -> None:
        """Record a failure and potentially open the circuit."""
        self.failures += 1
        self.last_failure_time = self._clock()
        if self.state == "HALF-OPEN" or self.failures >= self.failure_threshold:
            self.state = "OPEN"
            logger.warning(
                f"Circuit breaker for {self.name} opened after "
                f"{self.failures} failures"
            )

    def record_success(self) -> None:
        """Record a success and reset the circuit."""
        if self.state != "CLOSED":
            logger.info(f"Circuit breaker for {self.name} closed after success")
        self.failures = 0
        self.state = "CLOSED"

    def is_open(self) -> bool:
        """Check if circuit is open, moving to half-open once the timeout passes."""
        if self.state == "OPEN":
            if self._clock() - self.last_failure_time >= self.reset_timeout:
                self.state = "HALF-OPEN"
                logger.info(
                    f"Circuit breaker for {self.name} entering half-open state"
                )
                return False
            return True
        return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 5,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: float = 0.1,
    circuit_breaker: Optional[CircuitBreaker] = None,
) -> Any:
    """
    Execute an async operation with exponential backoff retry logic.

    Args:
        operation: Zero-argument coroutine function to execute
        max_attempts: Maximum number of attempts
        initial_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound for any single delay, in seconds
        exponential_base: Multiplier applied to the delay after each failure
        jitter: Fraction of the delay added or removed at random
        circuit_breaker: Optional circuit breaker consulted before each attempt

    Returns:
        The result of the operation if successful

    Raises:
        The last exception raised by the operation, or CircuitOpenError when
        every attempt was skipped by an open circuit
    """
    delay = initial_delay
    last_exception: Optional[BaseException] = None

    for attempt in range(max_attempts):
        if circuit_breaker and circuit_breaker.is_open():
            logger.warning(
                f"Circuit breaker for {circuit_breaker.name} is open, "
                "skipping attempt"
            )
        else:
            try:
                result = await operation()
            except Exception as e:
                last_exception = e
                if circuit_breaker:
                    circuit_breaker.record_failure()

                if attempt == max_attempts - 1:
                    logger.error(
                        f"Operation failed after {max_attempts} attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"Operation failed (attempt {attempt + 1}/{max_attempts}): {e}"
                )
            else:
                if circuit_breaker:
                    circuit_breaker.record_success()
                return result

        if attempt < max_attempts - 1:
            actual_delay = min(
                delay + delay * jitter * random.uniform(-1.0, 1.0), max_delay
            )
            logger.debug(f"Retrying in {actual_delay:.2f}s")
            await asyncio.sleep(max(actual_delay, 0.0))
            delay = min(delay * exponential_base, max_delay)

    if last_exception is not None:
        raise last_exception
    raise CircuitOpenError(
        f"Circuit breaker for {circuit_breaker.name} stayed open"
        if circuit_breaker else "No attempts were made"
    )
