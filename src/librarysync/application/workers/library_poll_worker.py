"""Recurring trigger for library sync cycles."""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable

from librarysync.infrastructure.observability import log_worker_health

logger = logging.getLogger(__name__)


class LibraryPollWorker:
    """Runs ``cycle`` every ``interval_seconds`` until stopped.

    Hey future me - stop() is SYNCHRONOUS on purpose: the engine calls it from stop() and from
    the foreground callback, neither of which can await. It cancels the loop task; join()
    waits for the cancellation to land. The cycle itself runs under asyncio.shield(), so
    pausing the timer never tears a sync apart halfway - in-flight work is aborted through the
    cycle's cancellation token instead.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[None]],
        interval_seconds: float,
        name: str = "library_poll",
    ) -> None:
        self._cycle = cycle
        self.interval_seconds = interval_seconds
        self.name = name
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._cycles_completed = 0
        self._errors_total = 0
        self._start_time = time.time()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the loop task. Idempotent."""
        if self._running:
            return
        self._running = True
        self._start_time = time.time()
        self._task = asyncio.create_task(self._run_loop(), name=f"{self.name}-worker")
        logger.info(
            "worker.started",
            extra={"worker": self.name, "interval_seconds": self.interval_seconds},
        )

    def stop(self) -> None:
        """Cancel the loop task. Idempotent."""
        if not self._running:
            return
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info(
            "worker.stopped",
            extra={
                "worker": self.name,
                "cycles_completed": self._cycles_completed,
                "errors_total": self._errors_total,
                "uptime_seconds": int(time.time() - self._start_time),
            },
        )

    async def join(self) -> None:
        """Wait until a stopped loop task has actually finished."""
        task = self._task
        if task is None or self._running:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task
        if self._task is task:
            self._task = None

    def get_stats(self) -> dict[str, int | float | bool]:
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "cycles_completed": self._cycles_completed,
            "errors_total": self._errors_total,
        }

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

            try:
                await asyncio.shield(self._cycle())
                self._cycles_completed += 1

                if self._cycles_completed % 10 == 0:
                    log_worker_health(
                        logger,
                        self.name,
                        self._cycles_completed,
                        self._errors_total,
                        time.time() - self._start_time,
                    )
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Do not crash the loop on errors - log and continue
                self._errors_total += 1
                logger.error(
                    f"{self.name}.cycle.failed",
                    extra={"error_type": type(e).__name__},
                    exc_info=True,
                )
