"""Logging configuration using structlog.

Every event carries the service name; request handlers can bind per-upload
context (the original file name) that is merged into all events
logged while handling that upload.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog import contextvars as structlog_contextvars

SERVICE_NAME = "replay-registry"


def _add_service_name(_logger: Any, _method: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog for structured logging.

    :param log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    :param json_logs: Render JSON lines; otherwise a human readable console format
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog_contextvars.merge_contextvars,
            _add_service_name,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def upload_context(original_name: Optional[str]) -> Iterator[None]:
    """Bind the uploaded file name to every event logged inside the block."""
    with structlog_contextvars.bound_contextvars(original_name=original_name):
        yield


def get_logger(name: str) -> Any:
    """
    Get a configured structlog logger.

    :param name: Logger name (usually __name__)
    :returns: Configured logger instance
    """
    return structlog.get_logger(name)
