# src/archivemind/infrastructure/platform/retry.py
"""
Bounded exponential backoff for platform calls.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

import httpx

from archivemind.domain.errors import RateLimitedError
from archivemind.infrastructure.monitoring import metrics

log = logging.getLogger(__name__)

T = TypeVar("T")


class TransientPlatformError(Exception):
    """Server-side hiccup (5xx) worth retrying."""


RETRYABLE: Tuple[Type[BaseException], ...] = (RateLimitedError, TransientPlatformError, httpx.TransportError)


async def with_backoff(
    call: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    label: str = "platform call",
) -> T:
    """
    Runs `call` up to `attempts` times. Waits base_delay, 2*base_delay, ... between tries;
    a larger `retry_after` from a rate limit response wins. The last error is re-raised.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except RETRYABLE as e:
            if attempt == attempts:
                log.error(f"{label} failed after {attempts} attempts: {e}")
                raise
            delay = base_delay * (2 ** (attempt - 1))
            retry_after = getattr(e, "retry_after", None)
            if retry_after and retry_after > delay:
                delay = retry_after
            metrics.PLATFORM_RETRIES.inc()
            log.warning(f"{label} attempt {attempt}/{attempts} failed ({e}); retrying in {delay:.2f}s")
            await sleep(delay)
    raise RuntimeError("unreachable")
