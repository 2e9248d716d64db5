"""Observability infrastructure for structured logging."""

from librarysync.infrastructure.observability.logger_template import (
    log_operation,
    log_worker_health,
)
from librarysync.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "log_operation",
    "log_worker_health",
    "set_correlation_id",
]
