"""
Bounded retry with exponential backoff for store calls.

Only transient StoreErrors (dropped connection, timeout) are retried;
anything the store rejected deliberately is raised immediately.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from livestore.errors import StoreError

from .config import RETRY_ATTEMPTS, RETRY_BASE_DELAY

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int = RETRY_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    description: str = "store call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempts are used up.

    Args:
        operation: Zero-argument coroutine function to run
        attempts: Maximum number of attempts (at least one is made)
        base_delay: Delay before the second attempt; doubles after each
        description: What the operation does, for logs
        sleep: Sleep function (injectable for tests)

    Returns:
        The operation's result

    Raises:
        StoreError: The last error once attempts are exhausted, or the
            first non-transient one
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except StoreError as e:
            if not e.transient or attempt >= attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}): {e}; "
                f"retrying in {delay:.2f}s"
            )
            await sleep(delay)
            attempt += 1
