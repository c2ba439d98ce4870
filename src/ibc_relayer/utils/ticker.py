"""
Cancellable periodic execution.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


async def run_until_stopped(stop_event: asyncio.Event, awaitable: Awaitable[Any]) -> tuple[bool, Any]:
    """
    Await awaitable unless stop_event fires first.

    Returns:
        (True, result) when the awaitable finished, (False, None) when the
        stop event fired first. In that case the awaitable is cancelled.

    Raises:
        Whatever the awaitable raises.
    """
    if stop_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        return False, None

    work = asyncio.ensure_future(awaitable)
    stopper = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        if not stopper.done():
            stopper.cancel()

    if work.done():
        return True, work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass  # expected, the stop event won the race
    return False, None


async def do_now(
    stop_event: asyncio.Event,
    interval: float,
    fn: Callable[[], Awaitable[Any]],
) -> None:
    """
    Call fn immediately, then every interval seconds, until stop_event is set.

    A stop that happens while fn is running cancels it and returns without
    error. An exception raised by fn ends the loop and propagates.
    """
    while True:
        finished, _ = await run_until_stopped(stop_event, fn())
        if not finished:
            return

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
            return
        except asyncio.TimeoutError:
            pass  # next tick
