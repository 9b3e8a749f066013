"""
Structured logging utilities.

Provides:
- Structured JSON logging
- Request ID tracking
- Per-request performance logging
"""

import json
import logging
import time
import uuid
from typing import Any
from contextvars import ContextVar

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
operation_var: ContextVar[str] = ContextVar("operation", default="")

# Attributes every LogRecord has; anything else came in through extra=
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per line with:
    - timestamp
    - level
    - logger
    - message
    - request_id and operation (if set)
    - fields passed through extra=
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        operation = operation_var.get()
        if operation:
            log_data["operation"] = operation

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class PerformanceLogger:
    """
    Performance logging context manager.

    Logs the duration and outcome of a request and binds a fresh request id
    for its duration.

    Example:
        async with PerformanceLogger("search", logger=logger, collection="users"):
            response = await http.get(...)
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        **context: Any
    ):
        self.operation = operation
        self.logger = logger
        self.context = context
        self.start_time = None
        self.duration_ms = 0.0
        self._tokens = ()

    async def __aenter__(self):
        self.start_time = time.perf_counter()
        self._tokens = (
            request_id_var.set(uuid.uuid4().hex),
            operation_var.set(self.operation),
        )

        self.logger.debug(
            f"Starting operation: {self.operation}",
            extra={"event": "operation_start", **self.context}
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type:
            self.logger.warning(
                f"Operation failed: {self.operation}",
                extra={
                    "event": "operation_failed",
                    "duration_ms": round(self.duration_ms, 2),
                    "error_type": exc_type.__name__,
                    "error": str(exc_val),
                    **self.context
                }
            )
        else:
            self.logger.info(
                f"Operation completed: {self.operation}",
                extra={
                    "event": "operation_completed",
                    "duration_ms": round(self.duration_ms, 2),
                    **self.context
                }
            )

        request_token, operation_token = self._tokens
        operation_var.reset(operation_token)
        request_id_var.reset(request_token)


def setup_logging(level: str = "INFO", format: str = "json", stream=None) -> logging.Handler:
    """Replace the root handlers with one stream handler, JSON or plain text."""
    handler = logging.StreamHandler(stream)
    if format.lower() == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level.upper())
    return handler
