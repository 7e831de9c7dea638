"""
Logging setup for the permission service.

Production writes one JSON object per line; development gets a colored
console line. Both carry the id of the HTTP request being served and the
decision fields that [RBAC] and [AUDIT] lines pass through ``extra=``:

    logger.warning(
        "[AUDIT] Denied u1 tasks.edit: No edit permission",
        extra={"user_id": "u1", "rbac_module": "tasks", "action": "edit",
               "reason": "No edit permission"},
    )

``module`` is a built-in LogRecord attribute, so the module key travels as
``rbac_module`` and is written out as ``module``.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

DECISION_FIELDS = {
    "user_id": "user_id",
    "role": "role",
    "rbac_module": "module",
    "action": "action",
    "reason": "reason",
}

# HTTP and PostgREST clients used by the Supabase source and the HTTP audit store
QUIET_LOGGERS = ("httpx", "httpcore", "postgrest")


def get_request_id() -> Optional[str]:
    """Request id bound to the current context, if any."""
    return _request_id_ctx.get()


@contextmanager
def request_context(request_id: str) -> Iterator[str]:
    """Bind a request id to every log line emitted inside the block."""
    token = _request_id_ctx.set(request_id)
    try:
        yield request_id
    finally:
        _request_id_ctx.reset(token)


def decision_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Decision fields attached to a record, under their output names."""
    fields = {}
    for attr, name in DECISION_FIELDS.items():
        value = getattr(record, attr, None)
        if value is not None:
            fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        log_data.update(decision_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        request_id = get_request_id()

        msg = f"{timestamp} {color}{record.levelname:8}{self.RESET} "
        if request_id:
            msg += f"[{request_id}] "
        msg += f"{record.name}: {record.getMessage()}"

        fields = decision_fields(record)
        if fields:
            msg += " (" + " ".join(f"{k}={v}" for k, v in fields.items()) + ")"

        if record.exc_info:
            msg += f"\n{self.formatException(record.exc_info)}"
        return msg


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure the root logger once at startup.

    Args:
        level: Log level for the service's own loggers
        json_format: JSON lines (production) instead of console lines
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
