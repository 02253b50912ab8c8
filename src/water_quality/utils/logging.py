"""
Structured logging for the water quality pipeline.

Wraps structlog so every component logs key/value events through the
standard library ``logging`` module, rendered either for a terminal or as
JSON lines for log shippers.

Example:
    >>> from water_quality.utils.logging import setup_logging, get_logger
    >>>
    >>> setup_logging(level="INFO", format="json")
    >>> logger = get_logger(__name__)
    >>> logger.info("entry_buffered", facility_id="plant-7", side="inlet")
"""

from __future__ import annotations

import logging
import sys
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from water_quality.config.settings import LoggingSettings


def setup_logging(
    level: str = "INFO",
    format: str = "console",
    *,
    include_timestamp: bool = True,
    include_location: bool = False,
    stream: IO[str] | None = None,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Output format ("console" or "json")
        include_timestamp: Add an ISO timestamp to each event
        include_location: Add source file and line number
        stream: Output stream (defaults to stderr)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=getattr(logging, level.upper()),
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_location:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )

    processors.extend(
        [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
    )

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream is None))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_settings(settings: LoggingSettings, *, verbose: bool = False) -> None:
    """Configure logging from the ``[logging]`` settings section.

    Args:
        settings: Logging settings
        verbose: Force DEBUG level regardless of settings
    """
    setup_logging(
        level="DEBUG" if verbose else settings.level,
        format=settings.format,
        include_timestamp=settings.include_timestamp,
        include_location=settings.include_location,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance (usually ``get_logger(__name__)``)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context variables for all subsequent log calls in this context.

    Example:
        >>> bind_context(facility_id="plant-7")
        >>> logger.info("merge_claimed")  # includes facility_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
