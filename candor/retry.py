"""
Retry with exponential backoff for transient failures.

Wraps every outbound platform-API and LLM-provider call. Client errors
(4xx, auth, validation) are surfaced immediately; everything else is
retried with jittered exponential backoff.
"""

import asyncio
import logging
import random
import re
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_TRANSIENT_MESSAGE = re.compile(
    r"unauthori[sz]ed|forbidden|invalid|not[ _]found|bad[ _]request",
    re.IGNORECASE,
)


def error_status(error: BaseException) -> Optional[int]:
    """Find an HTTP-style status on an exception, if it carries one."""
    for attr in ("status", "status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def is_transient(error: BaseException) -> bool:
    """Network errors, timeouts and 5xx are transient. Any 4xx, or an auth or validation message, is not."""
    status = error_status(error)
    if status is not None and 400 <= status < 500:
        return False
    if NON_TRANSIENT_MESSAGE.search(str(error)):
        return False
    return True


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay_ms: int = 500,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    jitter: Callable[[float, float], float] = random.uniform,
) -> T:
    """
    Run `operation` up to `attempts` times.

    Delay before retry i (0-based) is base_delay_ms * 2**i * uniform(0.5, 1.0),
    so concurrent conversations don't retry in lockstep. After the last
    attempt the last error is re-raised unchanged.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    last_error: Optional[BaseException] = None
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            if not is_transient(e):
                raise
            if attempt < attempts - 1:
                delay_ms = base_delay_ms * (2 ** attempt) * jitter(0.5, 1.0)
                logger.warning(
                    f"Transient failure (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay_ms:.0f}ms: {e}"
                )
                await sleep(delay_ms / 1000)
    raise last_error
