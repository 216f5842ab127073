"""Retry utility for transient store failures.

Provides exponential backoff with jitter for retrying whole units of work.
Only ``TransientStoreError`` is retried; the failed unit has already been
rolled back by the store when the error reaches this layer.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from common.errors import TransientStoreError
from common.observability import forest_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (1-based), jitter included."""
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    jitter = random.uniform(0, delay * 0.5)
    return delay + jitter


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    max_attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    extra_context: Optional[dict] = None,
) -> T:
    """Retry an async operation with exponential backoff and jitter.

    Args:
        operation: Async callable running one complete unit of work
        operation_name: Name of operation for logging
        max_attempts: Maximum number of attempts (default: 3)
        base_delay: Initial delay in seconds (default: 0.05)
        max_delay: Maximum delay in seconds (default: 1.0)
        extra_context: Additional context for logging

    Returns:
        Result of the operation if successful

    Raises:
        TransientStoreError: The last transient error once attempts run out
        ForestError: Any non-transient error, immediately
    """
    extra_context = extra_context or {}

    attempt = 1
    while True:
        try:
            return await operation()
        except TransientStoreError as e:
            log_extra = {
                "operation": operation_name,
                "attempt": attempt,
                "max_attempts": max_attempts,
                "error_category": e.category,
                "exception_message": str(e),
                **extra_context,
            }

            if attempt >= max_attempts:
                logger.error(
                    f"All {max_attempts} attempts exhausted for {operation_name}",
                    extra=log_extra,
                )
                raise

            total_delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"Transient error in {operation_name}, retrying in {total_delay:.3f}s",
                extra={**log_extra, "delay_seconds": total_delay},
            )
            forest_metrics.add_counter(
                "forest.retries",
                description="Units of work retried after a transient store failure",
                attributes={"operation": operation_name, "category": e.category},
            )

            await asyncio.sleep(total_delay)
            attempt += 1
