"""Tests for LibraryPollWorker."""

import asyncio

import pytest

from librarysync.application.workers import LibraryPollWorker


class TestLibraryPollWorker:
    async def test_runs_cycle_every_interval(self) -> None:
        calls = 0

        async def cycle() -> None:
            nonlocal calls
            calls += 1

        worker = LibraryPollWorker(cycle, interval_seconds=0.01)
        worker.start()
        await asyncio.sleep(0.08)
        worker.stop()
        await worker.join()

        assert calls >= 2
        assert worker.get_stats()["cycles_completed"] == calls

    async def test_first_cycle_waits_for_interval(self) -> None:
        calls = 0

        async def cycle() -> None:
            nonlocal calls
            calls += 1

        worker = LibraryPollWorker(cycle, interval_seconds=60)
        worker.start()
        await asyncio.sleep(0.01)
        worker.stop()
        await worker.join()

        assert calls == 0

    async def test_failing_cycle_does_not_kill_loop(self) -> None:
        async def cycle() -> None:
            raise RuntimeError("boom")

        worker = LibraryPollWorker(cycle, interval_seconds=0.01)
        worker.start()
        await asyncio.sleep(0.05)

        assert worker.is_running
        worker.stop()
        await worker.join()
        assert worker.get_stats()["errors_total"] >= 1

    async def test_stop_does_not_tear_running_cycle(self) -> None:
        """The timer is cancelled, but a cycle already running finishes on its own."""
        started = asyncio.Event()
        release = asyncio.Event()
        finished = False

        async def cycle() -> None:
            nonlocal finished
            started.set()
            await release.wait()
            finished = True

        worker = LibraryPollWorker(cycle, interval_seconds=0.01)
        worker.start()
        await started.wait()
        worker.stop()
        await worker.join()

        release.set()
        await asyncio.sleep(0.01)
        assert finished

    @pytest.mark.parametrize("calls", [1, 2])
    async def test_start_and_stop_are_idempotent(self, calls: int) -> None:
        async def cycle() -> None:
            pass

        worker = LibraryPollWorker(cycle, interval_seconds=60)
        for _ in range(calls):
            worker.start()
        assert worker.is_running

        for _ in range(calls):
            worker.stop()
        await worker.join()
        assert not worker.is_running
