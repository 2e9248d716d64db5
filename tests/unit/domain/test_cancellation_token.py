"""Tests for CancellationToken."""

import asyncio
from collections.abc import AsyncIterator

import pytest

from librarysync.domain.exceptions import SyncAbortedError
from librarysync.domain.value_objects import CancellationToken


class TestCancellationToken:
    def test_first_reason_wins(self) -> None:
        token = CancellationToken()

        token.cancel("Engine stopped")
        token.cancel("Superseded")

        assert token.cancelled
        assert token.reason == "Engine stopped"

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.raise_if_cancelled()

        token.cancel("bye")
        with pytest.raises(SyncAbortedError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "bye"

    async def test_run_returns_result(self) -> None:
        token = CancellationToken()

        async def answer() -> int:
            await asyncio.sleep(0)
            return 42

        assert await token.run(answer()) == 42

    async def test_run_propagates_call_errors(self) -> None:
        token = CancellationToken()

        async def boom() -> None:
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await token.run(boom())

    async def test_run_on_fired_token_never_starts_the_call(self) -> None:
        token = CancellationToken()
        token.cancel()
        started = False

        async def call() -> None:
            nonlocal started
            started = True

        with pytest.raises(SyncAbortedError):
            await token.run(call())
        assert not started

    async def test_cancel_interrupts_call_in_flight(self) -> None:
        """The pending call is cancelled, not left running in the background."""
        token = CancellationToken()
        entered = asyncio.Event()
        was_cancelled = False

        async def slow() -> None:
            nonlocal was_cancelled
            entered.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                was_cancelled = True
                raise

        runner = asyncio.create_task(token.run(slow()))
        await entered.wait()
        token.cancel("Engine stopped")

        with pytest.raises(SyncAbortedError, match="Engine stopped"):
            await runner
        assert was_cancelled

    async def test_iterate_yields_all_items(self) -> None:
        token = CancellationToken()

        async def numbers() -> AsyncIterator[int]:
            for i in range(3):
                yield i

        assert [n async for n in token.iterate(numbers())] == [0, 1, 2]

    async def test_iterate_stops_and_closes_source_on_cancel(self) -> None:
        token = CancellationToken()
        closed = False

        async def endless() -> AsyncIterator[int]:
            nonlocal closed
            try:
                i = 0
                while True:
                    yield i
                    i += 1
                    await asyncio.sleep(0)
            finally:
                closed = True

        received = []
        with pytest.raises(SyncAbortedError):
            async for n in token.iterate(endless()):
                received.append(n)
                if n == 2:
                    token.cancel()

        assert received == [0, 1, 2]
        assert closed
