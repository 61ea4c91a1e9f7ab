"""
Structured logging configuration using structlog.

Standardized log format:
{
    "ts": "2026-10-19T04:30:00.123456Z",
    "level": "info",
    "service": "eventscheduler",
    "event": "scheduler.request",
    "operation": "add",
    ...additional context...
}
"""
import structlog
import logging
from typing import Any


def add_service_name(service_name: str):
    """Build a processor that stamps the service name on every entry."""
    def processor(logger: Any, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", service_name)
        return event_dict
    return processor


def setup_logging(json_output: bool = True, service_name: str = "eventscheduler", level: int = logging.INFO):
    """
    Configure structured logging with standardized fields.

    The library never calls this itself; applications embedding the client
    call it once at startup.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
        service_name: Name of the service doing the logging.
        level: Minimum log level.
    """
    shared_processors = [
        # Contextvars carry any ids the caller bound (e.g. a transaction id)
        structlog.contextvars.merge_contextvars,
        add_service_name(service_name),
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
    )

    # httpx logs every request at INFO; ours already does
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger():
    """Get a configured structlog logger."""
    return structlog.get_logger()
