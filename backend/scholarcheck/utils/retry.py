"""
Retry helper for model calls whose output can be structurally valid but incomplete.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when every attempt produced a result the predicate rejected."""

    def __init__(self, message: str, last_result: object = None) -> None:
        super().__init__(message)
        self.last_result = last_result


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    should_retry: Optional[Callable[[T], bool]] = None,
    retry_on: Tuple[Type[BaseException], ...] = (),
    base_delay: float = 0.5,
    operation_name: str = "operation",
) -> T:
    """
    Run ``operation`` until it yields an acceptable result.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total number of attempts, including the first
        should_retry: Predicate on the result; True means try again
        retry_on: Exception types that count as a failed attempt. Any other
            exception propagates immediately.
        base_delay: Initial delay in seconds, doubled after every failed attempt
        operation_name: Label used in log events

    Returns:
        The first result the predicate accepts

    Raises:
        RetryExhaustedError: If the last attempt still produced a rejected result
        The last exception from ``retry_on`` if the last attempt raised one
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation()
        except retry_on as e:
            if attempt >= max_attempts:
                logger.error("Retries exhausted", operation=operation_name, attempts=attempt, error=str(e))
                raise
            logger.warning("Attempt failed, retrying",
                           operation=operation_name,
                           attempt=attempt,
                           max_attempts=max_attempts,
                           error=str(e))
        else:
            if should_retry is None or not should_retry(result):
                return result
            if attempt >= max_attempts:
                logger.error("Retries exhausted with incomplete result", operation=operation_name, attempts=attempt)
                raise RetryExhaustedError(
                    f"{operation_name} produced an incomplete result after {max_attempts} attempts",
                    last_result=result,
                )
            logger.warning("Incomplete result, retrying",
                           operation=operation_name,
                           attempt=attempt,
                           max_attempts=max_attempts)

        if delay > 0:
            await asyncio.sleep(delay)
        delay *= 2

    # Unreachable: the loop either returns or raises on its last attempt
    raise RetryExhaustedError(f"{operation_name} did not complete")
