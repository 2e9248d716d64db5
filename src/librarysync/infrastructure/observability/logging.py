"""Root logger setup: one stdout handler, JSON or text, stamped with the sync cycle id."""

import contextvars
import logging
import sys
import uuid
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the engine calls set_correlation_id() once at the top of every cycle (sync_now
# and cold start). Tasks spawned inside the cycle copy the context, so the reconciler's
# concurrent jobs log under the same id. "" means "not inside a cycle".
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(correlation_id)s] %(message)s"
JSON_FIELDS = "%(levelname)s %(name)s %(message)s %(correlation_id)s"

# Loggers that drown the cycle logs at INFO: every cycle is three count requests plus pages
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine", "uvicorn.access")


def get_correlation_id() -> str:
    """Id of the sync cycle the current task belongs to ("" outside a cycle)."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Tag the current context with ``correlation_id`` (a fresh UUID when None).

    Returns:
        The id that was set
    """
    value = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(value)
    return value


class CycleIdFilter(logging.Filter):
    """Copies the current cycle id onto every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


class CycleJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """JSON lines; records logged outside a cycle carry no ``correlation_id`` key."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("correlation_id"):
            log_record.pop("correlation_id", None)


def build_json_formatter(app_name: str = "librarysync") -> CycleJsonFormatter:
    return CycleJsonFormatter(
        JSON_FIELDS,
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"app": app_name},
        timestamp=True,
    )


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "librarysync",
) -> None:
    """Replace the root handlers with a single stdout handler.

    Safe to call repeatedly (tests, reloads): existing root handlers are dropped first.
    """
    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CycleIdFilter())
    handler.setFormatter(
        build_json_formatter(app_name) if json_format else logging.Formatter(TEXT_FORMAT)
    )
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "logging.configured", extra={"app": app_name, "json_format": json_format}
    )
