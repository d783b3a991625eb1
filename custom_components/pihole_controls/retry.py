"""Bounded exponential-backoff retry for Pi-hole operations."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import TypeVar

from .api import PiHoleInvalidConfigurationError, PiHoleLegacyIncompatibleError
from .const import RETRY_BASE_DELAY, RETRY_MAX_ATTEMPTS

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

# Configuration and compatibility problems: retrying cannot fix them
NON_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    PiHoleInvalidConfigurationError,
    PiHoleLegacyIncompatibleError,
    asyncio.CancelledError,
)


def calculate_backoff_delay(attempt_index: int, base_delay: float = RETRY_BASE_DELAY) -> float:
    """Return the delay after a failed attempt (0-based): base * 2^index."""
    return base_delay * (2**attempt_index)


def is_retryable(err: BaseException) -> bool:
    """Return True if the error may be transient."""
    return not isinstance(err, NON_RETRYABLE_ERRORS)


async def async_call_with_retry(
    operation: Callable[[], Awaitable[_T]],
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
) -> _T:
    """Run an operation, retrying transient failures with backoff.

    Sleeps base_delay * 2^n between attempts (1s, 2s, ... by default). The
    last attempt's error is raised unchanged without a further delay.
    Cancellation propagates immediately, including during a backoff sleep.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        max_attempts: Total attempts, at least 1.
        base_delay: Delay after the first failure in seconds.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as err:
            attempt += 1
            if attempt >= max_attempts or not is_retryable(err):
                raise
            delay = calculate_backoff_delay(attempt - 1, base_delay)
            _LOGGER.debug(
                "Attempt %d/%d failed (%s), retrying in %.1f seconds",
                attempt,
                max_attempts,
                type(err).__name__,
                delay,
            )
            await asyncio.sleep(delay)
