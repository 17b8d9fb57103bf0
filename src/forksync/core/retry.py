"""Exponential backoff for retryable network operations."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from forksync.core.errors import NetworkError
from forksync.core.log import logger

T = TypeVar("T")


def backoff_delay(
    attempt: int, backoff_factor: float, max_backoff: float
) -> float:
    """Seconds to wait after the given 0-indexed failed attempt."""
    return min(backoff_factor ** attempt, max_backoff)


def retry_with_backoff(
    operation: Callable[[], T],
    attempts: int,
    backoff_factor: float = 2.0,
    max_backoff: float = 60.0,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> T:
    """Call ``operation`` until it succeeds or the budget is spent.

    Only NetworkError is retried. Anything else propagates from the
    first failure untouched.

    Args:
        operation: Zero-argument callable to invoke
        attempts: Total number of calls allowed (at least 1)
        backoff_factor: Base of the exponential delay
        max_backoff: Upper bound on a single delay in seconds
        sleep: Delay function (injected by tests)
        description: Name used in log messages

    Returns:
        The operation's return value

    Raises:
        NetworkError: The last failure once all attempts are used
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return operation()
        except NetworkError as e:
            if attempt + 1 >= attempts:
                logger.error(
                    f"{description} failed after {attempts} attempts",
                    error=str(e),
                )
                raise
            delay = backoff_delay(attempt, backoff_factor, max_backoff)
            logger.warn(
                f"{description} failed, retrying",
                attempt=attempt + 1,
                attempts=attempts,
                delay=delay,
                error=str(e),
            )
            sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
