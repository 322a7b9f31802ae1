"""
Structured logging for the event bus.

JSON log lines carrying the service name, the ambient correlation and tenant
ids and the active OpenTelemetry trace context. Library modules only ever call
``logging.getLogger(__name__)``; ``configure_logging`` is for the owning
service (or the CLI) to install the handler.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from opentelemetry import trace

from .context import get_correlation_id, get_tenant_id

LIBRARY_LOGGER_NAME = "marketplace_events"

DEFAULT_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(service_name)s] - "
    "[%(correlation_id)s] - [%(name)s] - %(message)s"
)

LOG_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

LOG_OFF_LEVEL = "OFF"

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "service_name",
        "trace_id",
        "span_id",
        "correlation_id",
        "tenant_id",
    }
)


class ServiceNameFilter(logging.Filter):
    """Inject the service name into log records."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name  # type: ignore[attr-defined]
        return True


class EventContextFilter(logging.Filter):
    """Inject the ambient correlation and tenant ids into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id() or "-"  # type: ignore[attr-defined]
        if not getattr(record, "tenant_id", None):
            record.tenant_id = get_tenant_id()  # type: ignore[attr-defined]
        return True


class TraceContextFilter(logging.Filter):
    """Inject trace_id and span_id from the current OpenTelemetry span."""

    def filter(self, record: logging.LogRecord) -> bool:
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            record.trace_id = format(span_context.trace_id, "032x")  # type: ignore[attr-defined]
            record.span_id = format(span_context.span_id, "016x")  # type: ignore[attr-defined]
        else:
            record.trace_id = None  # type: ignore[attr-defined]
            record.span_id = None  # type: ignore[attr-defined]
        return True


class EventBusJSONFormatter(logging.Formatter):
    """JSON formatter for event bus log records."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service_name", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id and correlation_id != "-":
            log_entry["correlation_id"] = correlation_id
        tenant_id = getattr(record, "tenant_id", None)
        if tenant_id:
            log_entry["tenant_id"] = tenant_id

        trace_id = getattr(record, "trace_id", None)
        span_id = getattr(record, "span_id", None)
        if trace_id and span_id:
            log_entry["trace_id"] = trace_id
            log_entry["span_id"] = span_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # extra={...} fields passed by callers
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def configure_logging(
    service_name: str,
    level: str = "INFO",
    json_logs: bool = True,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Install a stdout handler on the library logger.

    Calling it again replaces the previously installed handler.

    Args:
        service_name: Name stamped on every record
        level: Level name, or ``OFF`` to silence the library
        json_logs: JSON lines when true, plain text otherwise
        stream: Output stream (stdout by default)

    Returns:
        The configured library logger
    """
    logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    logger.handlers.clear()

    level_name = level.upper()
    if level_name == LOG_OFF_LEVEL:
        logger.setLevel(logging.CRITICAL + 1)
    else:
        logger.setLevel(LOG_LEVELS.get(level_name, logging.INFO))

    handler = logging.StreamHandler(stream or sys.stdout)
    if json_logs:
        handler.setFormatter(EventBusJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))

    handler.addFilter(ServiceNameFilter(service_name))
    handler.addFilter(EventContextFilter())
    handler.addFilter(TraceContextFilter())

    logger.addHandler(handler)
    logger.propagate = False
    return logger
