import asyncio
from typing import Awaitable, Callable, TypeVar

from mytor.core.exceptions import TransientError
from mytor.core.logger import logger

T = TypeVar("T")


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay_seconds: float = 0.2,
    label: str = "operation",
) -> T:
    """
    Re-issues an idempotent call while it fails with TransientError.
    The last TransientError is re-raised once attempts are exhausted.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except TransientError as e:
            if attempt == attempts:
                logger.error(f"❌ {label} failed after {attempts} attempts: {e.reason}")
                raise
            logger.warning(f"⚠️ {label} attempt {attempt}/{attempts} failed ({e.reason}), retrying...")
            if delay_seconds:
                await asyncio.sleep(delay_seconds * attempt)
