"""Structured JSON logging with trace and error-signature context."""
from __future__ import annotations

import contextlib
import contextvars
import json
import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

# Set by the calling error-handling layer
trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "trace_id", default=""
)

# Set for the duration of a tracker operation
error_signature_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "error_signature", default=""
)


@contextlib.contextmanager
def signature_context(error_signature: str) -> Iterator[None]:
    """Tag every log entry emitted inside the block with *error_signature*."""
    token = error_signature_var.set(error_signature)
    try:
        yield
    finally:
        error_signature_var.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def __init__(self, service_name: str = "unknown") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "logger": record.name,
            "trace_id": trace_id_var.get(),
            "message": record.getMessage(),
        }
        signature = error_signature_var.get()
        if signature:
            log_entry["error_signature"] = signature
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def setup_logging(
    service_name: str,
    level: str = "INFO",
    logger_name: str = "src",
) -> logging.Logger:
    """Install the JSON formatter on the package's parent logger.

    Module loggers are created with ``logging.getLogger(__name__)``, so the
    default ``"src"`` covers every module.  Calling it again replaces the
    handler instead of adding a second one.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(service_name=service_name))
    logger.addHandler(handler)
    return logger
