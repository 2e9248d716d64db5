"""Cancellation token threaded through every remote call of a sync cycle."""

import asyncio
import inspect
from collections.abc import AsyncIterable, AsyncIterator, Awaitable

from librarysync.domain.exceptions import SyncAbortedError


async def _next_item[T](iterator: AsyncIterator[T]) -> tuple[bool, T | None]:
    # StopAsyncIteration must not escape a Task, so it gets folded into a flag here
    try:
        return True, await anext(iterator)
    except StopAsyncIteration:
        return False, None


class CancellationToken:
    """One-shot cancellation signal for a single sync cycle.

    Hey future me - a NEW token is created per explicit cycle (sync_now or cold start). stop()
    or a superseding cycle fires the old one. Every remote await goes through run() (or
    iterate() for streams), so a fired token interrupts the call that is in flight right now,
    not just the next one. The interruption surfaces as SyncAbortedError, which the engine
    swallows.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "Sync aborted") -> None:
        """Fire the token. Subsequent calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncAbortedError(self._reason or "Sync aborted")

    async def run[T](self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Returns:
            Whatever the awaitable returns

        Raises:
            SyncAbortedError: If the token was already fired or fires while waiting. The
                underlying call is cancelled and awaited before this is raised.
        """
        if self._event.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            elif isinstance(awaitable, asyncio.Future):
                awaitable.cancel()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.create_task(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task.done() and not task.cancelled():
            return task.result()

        # Let the cancelled call unwind (closing sockets etc.) before reporting the abort
        await asyncio.gather(task, return_exceptions=True)
        raise SyncAbortedError(self._reason or "Sync aborted")

    async def iterate[T](self, stream: AsyncIterable[T]) -> AsyncIterator[T]:
        """Yield from ``stream``, racing every step against the token.

        The source iterator is closed when iteration ends for any reason. Wrap the call in
        ``contextlib.aclosing`` if you may stop consuming early.
        """
        iterator = aiter(stream)
        try:
            while True:
                has_item, item = await self.run(_next_item(iterator))
                if not has_item:
                    return
                yield item  # type: ignore[misc]
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
