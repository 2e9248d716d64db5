"""Shared logger helpers.

USAGE:
    from librarysync.infrastructure.observability import log_operation, log_worker_health

    async with log_operation(logger, "library_reconcile", collection="albums"):
        await reconcile()

    log_worker_health(logger, "library_poll", cycles_completed=10, errors_total=2, uptime_seconds=900)
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from librarysync.domain.exceptions import SyncAbortedError


# Yo, this context manager logs start/end with automatic duration tracking. The **context args
# become extra fields in every line. Aborts are logged at INFO as ".aborted" - stop() firing
# mid-cycle is normal and must not look like a failure in the logs. Everything else is logged
# as ".failed" with the traceback and re-raised.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[None]:
    """Log ``{operation}.started/.completed/.failed`` around a block.

    Args:
        logger: Module logger
        operation: Operation name (e.g., "library_sync", "library_reconcile")
        **context: Additional fields to include in logs (e.g., collection="albums")
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)

    try:
        yield
    except SyncAbortedError as e:
        logger.info(
            f"{operation}.aborted",
            extra={
                **context,
                "duration_ms": int((time.monotonic() - start) * 1000),
                "reason": e.reason,
            },
        )
        raise
    except Exception as e:
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": int((time.monotonic() - start) * 1000),
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise
    logger.info(
        f"{operation}.completed",
        extra={**context, "duration_ms": int((time.monotonic() - start) * 1000)},
    )


def log_worker_health(
    logger: logging.Logger,
    worker_name: str,
    cycles_completed: int,
    errors_total: int,
    uptime_seconds: float,
    extra_stats: dict[str, Any] | None = None,
) -> None:
    """Log worker health status in consistent format.

    Call this every N cycles (e.g., every 10) for monitoring.

    Args:
        logger: Logger instance
        worker_name: Worker identifier (e.g., "library_poll")
        cycles_completed: Total cycles completed since start
        errors_total: Total errors encountered since start
        uptime_seconds: Seconds since worker started
        extra_stats: Optional dict of additional stats to include in log
    """
    log_data = {
        "worker": worker_name,
        "cycles_completed": cycles_completed,
        "errors_total": errors_total,
        "uptime_seconds": int(uptime_seconds),
    }
    if extra_stats:
        log_data.update(extra_stats)

    logger.info("worker.health", extra=log_data)
