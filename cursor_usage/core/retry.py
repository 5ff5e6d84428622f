"""
Bounded retry for volatile upstream calls.

Each attempt is raced against a per-attempt timeout; failed attempts are
retried after a fixed delay until the attempt budget is spent.

Worst-case latency is (retries + 1) * timeout + retries * delay, which is
30.2 seconds with the defaults.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 2
DEFAULT_DELAY_MS = 100
DEFAULT_TIMEOUT_MS = 10_000


class UpstreamTimeoutError(Exception):
    """Raised when a single attempt does not finish within its timeout."""
    def __init__(self, timeout_ms: int):
        super().__init__(f"Operation timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class RetryExhaustedError(Exception):
    """Raised when every attempt failed without leaving an error behind."""


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = DEFAULT_RETRIES,
    delay_ms: int = DEFAULT_DELAY_MS,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    label: str = "operation",
) -> T:
    """Run an async operation with bounded retries.

    The operation is a factory: it is called once per attempt so every
    attempt gets a fresh coroutine. An attempt that exceeds its timeout is
    cancelled and counted as failed.

    Args:
        operation: Zero-argument callable returning an awaitable
        retries: Retries after the first attempt (total attempts = retries + 1)
        delay_ms: Fixed pause between attempts
        timeout_ms: Per-attempt timeout
        label: Name used in log messages

    Returns:
        The first successful attempt's result

    Raises:
        Exception: The last attempt's error once all attempts failed
        RetryExhaustedError: If no attempt produced an error object
    """
    if retries < 0:
        raise ValueError("retries must be >= 0")

    total_attempts = retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(1, total_attempts + 1):
        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            try:
                return task.result()
            except Exception as e:
                last_error = e
        else:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            last_error = UpstreamTimeoutError(timeout_ms)

        logger.warning(
            f"{label} attempt {attempt}/{total_attempts} failed: {last_error}"
        )
        if attempt < total_attempts:
            await asyncio.sleep(delay_ms / 1000)

    if last_error is None:
        raise RetryExhaustedError(f"{label} failed after {total_attempts} attempts")
    raise last_error
