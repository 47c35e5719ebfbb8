"""Fixed-interval retry for flaky capture operations."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(RuntimeError):
    """Raised when no attempt produced an error to re-raise."""


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 5,
    delay_ms: int = 1000,
    label: str = "Screenshot",
) -> T:
    """Run ``operation`` up to ``max_attempts + 1`` times.

    Waits a fixed ``delay_ms`` between attempts; there is no backoff. The
    last failure is re-raised unchanged once every attempt has failed.
    """
    last_error: Exception | None = None

    for attempt in range(max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            logger.warning("%s attempt %d failed: %s", label, attempt, e)
            if attempt == max_attempts:
                break
            await asyncio.sleep(delay_ms / 1000)

    if last_error is not None:
        raise last_error
    raise RetryExhaustedError(f"{label} failed after {max_attempts} attempts")
