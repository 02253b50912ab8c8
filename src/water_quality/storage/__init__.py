"""
Storage backends for the water quality pipeline.

This module provides implementations of the ReadingStore protocol:

- SQLiteStorage: Local SQLite database (default, durable)
- InMemoryStorage: Lock-guarded dictionaries (tests, embedding)

Example:
    >>> from water_quality.storage import SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/water_quality.db")
    >>> storage.initialize()  # Create tables
    >>> print(storage.buffer_status())

The schema is defined in `storage/schema.py` and includes:
- pending_entries: Buffered half-readings
- complete_readings: Reconciled observations (append-only)
- alerts: Threshold violations awaiting operator action
- sensor_index: (facility, side, parameter) -> sensor id
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from water_quality.storage.memory import InMemoryStorage
from water_quality.storage.protocol import ReadingStore
from water_quality.storage.schema import SCHEMA_VERSION, create_schema, get_schema_sql
from water_quality.storage.sqlite import SQLiteStorage

if TYPE_CHECKING:
    from water_quality.config.settings import Settings


def open_storage(settings: Settings) -> SQLiteStorage:
    """Open (and initialize) the SQLite store named by the settings."""
    storage = SQLiteStorage(
        settings.database_path,
        timeout=settings.database.timeout_seconds,
        wal_mode=settings.database.wal_mode,
    )
    storage.initialize()
    return storage


__all__ = [
    "InMemoryStorage",
    "ReadingStore",
    "SCHEMA_VERSION",
    "SQLiteStorage",
    "create_schema",
    "get_schema_sql",
    "open_storage",
]
