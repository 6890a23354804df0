"""Retry decorator built on tenacity.

Works for both sync and async callables.
"""

import logging
from typing import Callable, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

F = TypeVar("F", bound=Callable)

_stdlib_logger = logging.getLogger("libris.retry")


def retry_on_exception(
    exception_types: tuple[type[BaseException], ...],
    max_attempts: int = 3,
    min_wait_seconds: float = 1.0,
    max_wait_seconds: float = 10.0,
) -> Callable[[F], F]:
    """Retry a call on the given exception types with exponential backoff.

    The last exception is re-raised once attempts are exhausted.

    Args:
        exception_types: Exceptions that trigger a retry
        max_attempts: Total attempts including the first call
        min_wait_seconds: Lower bound of the backoff
        max_wait_seconds: Upper bound of the backoff

    Example:
        >>> @retry_on_exception((httpx.TransportError,), max_attempts=3)
        ... async def upload(...): ...
    """
    return retry(
        retry=retry_if_exception_type(exception_types),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait_seconds, min=min_wait_seconds, max=max_wait_seconds),
        before_sleep=before_sleep_log(_stdlib_logger, logging.WARNING),
        reraise=True,
    )
