"""Structured logging configuration.

Purpose: JSON-formatted logs with correlation ids for observability.

Pattern: structlog with standard library integration.
"""
import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Iterator

import structlog

from telehealth import config


def setup_structured_logging(log_level: str = config.LOG_LEVEL):
    """
    Configure structured logging for the service.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper())
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get logger instance with structured logging.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """Generate unique request ID."""
    return f"req-{uuid.uuid4().hex[:12]}"


@contextmanager
def request_context(**values) -> Iterator[str]:
    """
    Bind a correlation id (and extra values) to log lines inside the block.

    A request id already bound by the host is reused. On exit the previous
    bindings are restored, so the host's own context survives.

    Yields:
        The request id in effect
    """
    request_id = (
        values.pop("request_id", None)
        or structlog.contextvars.get_contextvars().get("request_id")
        or generate_request_id()
    )
    with structlog.contextvars.bound_contextvars(request_id=request_id, **values):
        yield request_id
