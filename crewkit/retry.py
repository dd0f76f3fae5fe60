"""Exponential-backoff retry for model-service calls."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_PATTERNS = (
    "timeout",
    "timed out",
    "connection",
    "rate limit",
    "429",
    "500",
    "502",
    "503",
    "504",
    "overloaded",
    "temporarily",
    "unavailable",
    "broken pipe",
)


@dataclass
class RetryConfig:
    """Backoff settings for a retried call."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.2  # +/-20% of the computed delay

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retry number ``attempt`` (0-based)."""
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        jitter = delay * self.jitter_factor * (2 * random.random() - 1)
        return max(0.0, delay + jitter)


class TransientError(Exception):
    """Raise to force a retry regardless of the message."""


class PermanentError(Exception):
    """Raise to stop retrying immediately."""


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    config: Optional[RetryConfig] = None,
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Await ``func(*args, **kwargs)`` and retry transient failures.

    Args:
        func: Coroutine function to call
        config: Retry configuration (defaults to ``RetryConfig()``)
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        The first successful result

    Raises:
        Exception: The last error once attempts are exhausted, or the first
            non-transient error unchanged
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        try:
            result = await func(*args, **kwargs)
            if attempt > 0:
                logger.info(f"Call succeeded on attempt {attempt + 1}")
            return result
        except asyncio.CancelledError:
            raise
        except PermanentError:
            raise
        except Exception as e:
            if not is_transient_error(e):
                raise
            if attempt == attempts - 1:
                logger.error(f"All {attempts} attempts failed: {e}")
                raise

            delay = config.delay_for(attempt)
            logger.warning(f"Attempt {attempt + 1}/{attempts} failed: {e}. Retrying in {delay:.2f}s...")
            await asyncio.sleep(delay)

    raise RuntimeError("retry loop exited without a result")


def is_transient_error(error: Exception) -> bool:
    """Return True when ``error`` looks like a temporary service or network failure."""
    if isinstance(error, TransientError):
        return True
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    message = str(error).lower()
    return any(pattern in message for pattern in _TRANSIENT_PATTERNS)
