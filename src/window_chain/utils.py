"""Window Chain - shared async helpers.

Timeout racing and cancellable sleeps used by the health monitor and the
fallback coordinator.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import Aborted, OperationTimeout
from .model_client import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # Abandoned attempts may still fail after losing the race
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Abandoned attempt finished with error: {task.exception()}")


async def race_with_timeout(
    factory: Callable[[], Awaitable[T]],
    timeout: float,
    cancellation: Optional[CancellationToken] = None,
    backend: Optional[str] = None
) -> T:
    """Run ``factory()`` against a timer and the cancellation token.

    Raises:
        OperationTimeout: the timer fired first
        Aborted: the token was cancelled before the call finished
    """
    if cancellation is not None:
        cancellation.raise_if_cancelled()

    task = asyncio.ensure_future(factory())
    waiters = {task}
    cancel_waiter = None
    if cancellation is not None:
        cancel_waiter = asyncio.ensure_future(cancellation.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.add_done_callback(_consume_result)
    task.cancel()

    if cancellation is not None and cancellation.cancelled:
        raise Aborted(cancellation.reason)
    raise OperationTimeout(timeout, backend=backend)


async def sleep_with_cancellation(delay: float,
                                  cancellation: Optional[CancellationToken] = None) -> None:
    """Sleep for ``delay`` seconds, waking early with ``Aborted`` on cancellation."""
    if cancellation is None:
        await asyncio.sleep(delay)
        return

    cancellation.raise_if_cancelled()
    try:
        await asyncio.wait_for(cancellation.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise Aborted(cancellation.reason)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay before retry ``attempt + 1`` (0-based), capped at ``max_delay``."""
    return min(base_delay * (2 ** attempt), max_delay)


def elapsed_ms(start: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - start) * 1000.0
