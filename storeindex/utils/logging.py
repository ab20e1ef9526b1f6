"""
Structured logging configuration using structlog.
Provides request-scoped logging with automatic context injection, and a
compute context that tags every line of one snapshot computation with its
entity, period and configuration version.
"""

import logging
import sys
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, Processor

from storeindex import __version__
from storeindex.config import get_settings

SERVICE_NAME = "storeindex"


def add_severity(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add severity level for structured logging."""
    event_dict["severity"] = method_name.upper()
    return event_dict


def add_service(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the service name and package version on every line."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("service_version", __version__)
    return event_dict


@contextmanager
def compute_context(
    entity_id: str,
    period_end: date,
    granularity: str,
    config_version: str,
) -> Iterator[None]:
    """
    Bind the snapshot key to every log line emitted inside the block.

    Context variables are per thread, so batch workers each carry their own
    entity without leaking it into the next task.

    Example:
        >>> with compute_context("store-1", date(2026, 10, 11), "week", "store_index_v1"):
        ...     logger.info("history_loaded")  # carries entity_id, period_end, ...
    """
    with structlog.contextvars.bound_contextvars(
        entity_id=entity_id,
        period_end=period_end.isoformat(),
        granularity=granularity,
        config_version=config_version,
    ):
        yield


def configure_logging() -> None:
    """
    Configure structured logging for the application.
    Uses JSON format in production, console format in development.
    """
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    if settings.log_format == "json" and not settings.dev_mode:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=not settings.testing)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_severity,
            add_service,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
