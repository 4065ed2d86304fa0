"""
Completion callbacks for store-facing coroutines.

Every adapter operation is a coroutine that returns its result or raises.
Callers that prefer a continuation may pass ``callback=fn``; ``fn(error,
result)`` is then scheduled with ``loop.call_soon`` so it never runs inside
the call that registered it.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, TypeVar

from redis_rooms.config.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Completion = Callable[[BaseException | None, Any], Any]


def schedule_completion(
    callback: Completion,
    error: BaseException | None,
    result: Any,
) -> None:
    """Deliver ``(error, result)`` to ``callback`` on the next loop iteration."""
    loop = asyncio.get_running_loop()
    loop.call_soon(callback, error, result)


def with_completion(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T | None]]:
    """
    Add an optional keyword-only ``callback`` to an async method.

    Without a callback the wrapped coroutine behaves as before. With one,
    the outcome goes to the callback and errors are not raised a second
    time.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, callback: Completion | None = None, **kwargs: Any) -> T | None:
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if callback is None:
                raise
            logger.debug(
                "Delivering store error to completion callback",
                operation=func.__name__,
                error=str(e),
            )
            schedule_completion(callback, e, None)
            return None

        if callback is not None:
            schedule_completion(callback, None, result)
        return result

    return wrapper
