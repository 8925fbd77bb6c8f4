# src/api/retry.py
#
# Retry utilities with exponential backoff for outbound provider calls

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 1,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
    label: str = None
) -> T:
    """
    Await a zero-argument coroutine function, retrying it with exponential backoff.

    Args:
        func: Coroutine function to call
        max_retries: Retry attempts after the first call (default: 1)
        initial_delay: Delay before the first retry in seconds (default: 0.5)
        max_delay: Upper bound on any single delay in seconds (default: 10.0)
        exponential_base: Multiplier applied to the delay after each retry
        exceptions: Exception types that trigger a retry; others propagate at once
        should_retry: Optional predicate; a caught exception it rejects propagates at once
        label: Name used in log lines (defaults to the function name)

    Returns:
        Result of the first successful call

    Raises:
        The last exception once all attempts fail
    """
    name = label or getattr(func, "__name__", "call")
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            result = await func()
            if attempt > 0:
                logger.info(f"{name} succeeded on attempt {attempt + 1}")
            return result
        except exceptions as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt >= max_retries:
                logger.error(f"All {max_retries + 1} attempts failed for {name}. Last error: {e}")
                raise

            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed for {name}: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)
