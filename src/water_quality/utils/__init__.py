"""Shared utilities: structured logging and UTC time helpers."""

from water_quality.utils.logging import bind_context, clear_context, get_logger, setup_logging
from water_quality.utils.time import from_db_timestamp, to_db_timestamp, utcnow

__all__ = [
    "bind_context",
    "clear_context",
    "from_db_timestamp",
    "get_logger",
    "setup_logging",
    "to_db_timestamp",
    "utcnow",
]
