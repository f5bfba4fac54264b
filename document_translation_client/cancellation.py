"""Cancellation helpers built around a caller-owned ``asyncio.Event``.

Setting the event asks every operation that received it to stop at its next
suspension point with ``OperationCancelledError``. Cancelling the task itself
still raises ``asyncio.CancelledError`` as usual.
"""
import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from document_translation_client.exceptions import OperationCancelledError

T = TypeVar("T")


def raise_if_cancelled(cancel: Optional[asyncio.Event], what: str = "Operation") -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(f"{what} cancelled")


async def sleep(delay: float, cancel: Optional[asyncio.Event] = None) -> None:
    """Sleeps for ``delay`` seconds, returning early by raising if cancelled"""
    if cancel is None:
        await asyncio.sleep(delay)
        return

    raise_if_cancelled(cancel, "Wait")
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise OperationCancelledError("Wait cancelled")


async def _abandon(task: "asyncio.Future[T]", on_discard: Optional[Callable[[T], None]]) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    # the task may have finished before it could be cancelled
    if on_discard is not None and not task.cancelled() and task.exception() is None:
        on_discard(task.result())


async def run(
    awaitable: Awaitable[T],
    cancel: Optional[asyncio.Event] = None,
    on_discard: Optional[Callable[[T], None]] = None,
) -> T:
    """Awaits ``awaitable`` unless ``cancel`` is set first, in which case it is abandoned.

    A result that arrives after cancellation is passed to ``on_discard``
    instead of being returned, so it can release its resources.
    """
    if cancel is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel.is_set():
        await _abandon(task, on_discard)
        raise OperationCancelledError("Request cancelled")

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise
    waiter.cancel()

    # the caller's signal wins over a result that arrived at the same time
    if cancel.is_set():
        await _abandon(task, on_discard)
        raise OperationCancelledError("Request cancelled")
    return task.result()
