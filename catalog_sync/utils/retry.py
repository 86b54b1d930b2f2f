"""Retry helpers for idempotent remote reads."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

RETRY_EXCEPTIONS = (httpx.TransportError, asyncio.TimeoutError)


def retry_async(
    func: Callable[..., Awaitable] | None = None,
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
):
    """Retry a coroutine on transport failures with jittered exponential backoff.

    Usable bare (``@retry_async``) or configured (``retry_async(attempts=5)``).
    """

    def decorate(inner: Callable[..., Awaitable]):
        @functools.wraps(inner)
        async def wrapper(*args, **kwargs):
            delay = base_delay
            for attempt in range(1, attempts + 1):
                try:
                    return await inner(*args, **kwargs)
                except RETRY_EXCEPTIONS as exc:
                    if attempt == attempts:
                        raise
                    logger.warning("Attempt %s/%s failed (%s); retrying", attempt, attempts, exc)
                    await asyncio.sleep(delay + random.random() * base_delay)
                    delay *= 2

        return wrapper

    if func is not None:
        return decorate(func)
    return decorate
