"""Bounded retry for operations that are safe to repeat (keyed upserts)."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from mealbyme.errors import NON_RETRYABLE_ERRORS

T = TypeVar("T")


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run operation, retrying on failure with linear backoff.

    The wait after attempt N is N * base_delay. Never use this for plain
    inserts: a retried insert can create duplicate rows.
    """
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except NON_RETRYABLE_ERRORS:
            raise
        except Exception as e:
            last_error = e
            print(f"   {label} attempt {attempt}/{max_attempts} failed: {str(e)[:100]}")
            if attempt == max_attempts:
                break
            wait_time = base_delay * attempt
            print(f"🔄 Retrying {label} after {wait_time:g}s...")
            await sleep(wait_time)

    raise last_error
