"""
Storage protocol for the water quality pipeline.

This module defines the interface every store backend implements. The
reconciler depends only on this narrow surface, never on in-process state,
so any number of pipeline instances can share one store.

Currently implemented:
- SQLiteStorage: Durable SQLite database (default)
- InMemoryStorage: Lock-guarded dictionaries (tests, embedding)

Example:
    >>> from water_quality.storage import SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/water_quality.db")
    >>> storage.initialize()
    >>> entry = storage.insert_pending(entry)
    >>> storage.conditional_update(
    ...     [entry.id], EntryState.unmerged(), EntryState.claimed("r-1")
    ... )
    True
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from water_quality.models import (
        Alert,
        AlertStatus,
        BufferStatus,
        CompleteReading,
        EntryState,
        PendingEntry,
        Side,
    )
    from water_quality.sensors.index import SensorBinding


@runtime_checkable
class ReadingStore(Protocol):
    """Interface for pending-entry, reading and alert storage.

    All implementations must support:
    - insert_pending(): Append a half-reading to the buffer
    - query_pending(): Unmerged entries for a facility inside a window
    - conditional_update(): All-or-nothing compare-and-swap of claim state
    - batch_delete(): Conditional bulk removal of buffer rows
    - insert_reading() / insert_alert(): Append-only pipeline output

    Every method raises StoreError when the backend itself fails.
    """

    def initialize(self) -> None:
        """Create tables/schema if needed. Idempotent."""
        ...

    def insert_pending(self, entry: PendingEntry) -> PendingEntry:
        """Write a new pending entry.

        The store assigns ``id`` (when absent) and the monotonic ``seq``.

        Args:
            entry: Entry to write (``merged`` must be False)

        Returns:
            The stored entry with ``id`` and ``seq`` populated
        """
        ...

    def get_pending(self, entry_id: str) -> PendingEntry | None:
        """Get one pending entry by id, or None if absent."""
        ...

    def query_pending(self, facility_id: str, *, since: datetime) -> list[PendingEntry]:
        """Get unmerged entries for a facility received strictly after ``since``.

        Args:
            facility_id: Facility to search
            since: Exclusive lower bound on ``received_at``

        Returns:
            Matching entries, oldest first
        """
        ...

    def find_stale(
        self,
        *,
        facility_id: str | None = None,
        received_before: datetime | None = None,
        expires_before: datetime | None = None,
    ) -> list[PendingEntry]:
        """Get unmerged entries older than the given bounds (both exclusive)."""
        ...

    def conditional_update(
        self,
        entry_ids: Sequence[str],
        expected: EntryState,
        new: EntryState,
    ) -> bool:
        """Atomically move every entry from ``expected`` to ``new``.

        This is the claim primitive. The update is applied only if *every*
        listed entry exists and is currently in ``expected``; otherwise
        nothing changes.

        Args:
            entry_ids: Entries to transition
            expected: Required current state of each entry
            new: State to write

        Returns:
            True if all entries were transitioned, False if none were
        """
        ...

    def batch_delete(self, entry_ids: Sequence[str], *, expected: EntryState) -> int:
        """Delete listed entries that are still in ``expected`` state.

        Returns:
            Number of rows deleted
        """
        ...

    def insert_reading(
        self,
        reading: CompleteReading,
        sensor_bindings: Sequence[SensorBinding] = (),
    ) -> None:
        """Persist a complete reading and refresh its sensor index rows atomically."""
        ...

    def get_reading(self, reading_id: str) -> CompleteReading | None:
        """Get one reading by id."""
        ...

    def list_readings(
        self,
        *,
        facility_id: str | None = None,
        limit: int = 20,
    ) -> list[CompleteReading]:
        """Get the most recent readings, newest first."""
        ...

    def insert_alert(self, alert: Alert) -> None:
        """Persist one alert."""
        ...

    def list_alerts(
        self,
        *,
        facility_id: str | None = None,
        reading_id: str | None = None,
        status: AlertStatus | None = None,
        limit: int = 100,
    ) -> list[Alert]:
        """Get alerts, newest first."""
        ...

    def get_sensor_binding(
        self, facility_id: str, side: Side, parameter: str
    ) -> SensorBinding | None:
        """Get the sensor bound to (facility, side, parameter)."""
        ...

    def find_sensor_binding(self, sensor_id: str) -> SensorBinding | None:
        """Get the most recently updated binding for a physical sensor."""
        ...

    def buffer_status(self, facility_id: str | None = None) -> BufferStatus:
        """Count buffered entries by claim state and side."""
        ...

    def get_stats(self) -> dict[str, Any]:
        """Get row counts and backend details for diagnostics."""
        ...

    def close(self) -> None:
        """Release resources."""
        ...
