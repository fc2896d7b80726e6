"""
Execution modes for network-facing coinmux operations.

Every network operation is a coroutine. Callers either block on it with
run_blocking(), or start it with run_with_callback() and receive exactly one
Event once it completes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

from muxcore.errors import CoinmuxError, InternalError

T = TypeVar("T")

# Strong references to in-flight callback tasks; the loop only keeps weak ones
_pending_tasks: set[asyncio.Task[None]] = set()


@dataclass
class Event:
    """Completion of an asynchronous operation: either data or error is set."""

    data: Any = None
    error: CoinmuxError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def capture(coro: Coroutine[Any, Any, Any]) -> Event:
    """
    Await ``coro`` and turn its outcome into an Event.

    Domain errors are delivered as they are; anything else is wrapped in
    InternalError with the original message.
    """
    try:
        return Event(data=await coro)
    except CoinmuxError as e:
        return Event(error=e)
    except Exception as e:
        logger.exception(f"Unexpected error in network operation: {e}")
        return Event(error=InternalError(f"Unknown error: {e}"))


def run_with_callback(
    coro: Coroutine[Any, Any, Any],
    callback: Callable[[Event], None],
    name: str | None = None,
) -> asyncio.Task[None]:
    """
    Schedule ``coro`` on the running loop and deliver one Event to ``callback``.

    Must be called from inside a running event loop. Returns immediately.
    A callback that raises is logged and never invoked a second time.
    """
    loop = asyncio.get_running_loop()

    async def deliver() -> None:
        event = await capture(coro)
        try:
            callback(event)
        except Exception as e:
            logger.error(f"Completion callback for {name or 'operation'} failed: {e}")

    task = loop.create_task(deliver(), name=name)
    _pending_tasks.add(task)
    task.add_done_callback(_pending_tasks.discard)
    return task


def run_blocking(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run ``coro`` to completion on a fresh event loop.

    Returns the result or raises the domain error; unexpected exceptions are
    raised as InternalError.
    """
    event = asyncio.run(capture(coro))
    if event.error is not None:
        raise event.error
    return event.data  # type: ignore[no-any-return]
