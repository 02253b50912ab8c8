"""
In-memory storage backend.

Implements the ReadingStore protocol with plain dictionaries guarded by a
single lock. Every operation, including the compare-and-swap claim, runs
entirely under the lock, which gives the same atomicity the SQLite backend
gets from its write transaction.

Intended for tests and for embedding the pipeline where durability is not
needed.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from water_quality.exceptions import StoreError
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


class InMemoryStorage:
    """Thread-safe, non-durable ReadingStore."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._pending: dict[str, PendingEntry] = {}
        self._readings: dict[str, CompleteReading] = {}
        self._alerts: list[Alert] = []
        self._sensors: dict[tuple[str, Side, str], SensorBinding] = {}

    def initialize(self) -> None:
        pass

    def insert_pending(self, entry: PendingEntry) -> PendingEntry:
        with self._lock:
            entry_id = entry.id or uuid.uuid4().hex
            if entry_id in self._pending:
                raise StoreError(f"Duplicate pending entry {entry_id}", operation="insert_pending")
            stored = entry.model_copy(update={"id": entry_id, "seq": next(self._seq)})
            self._pending[entry_id] = stored
            return stored

    def get_pending(self, entry_id: str) -> PendingEntry | None:
        with self._lock:
            return self._pending.get(entry_id)

    def query_pending(self, facility_id: str, *, since: datetime) -> list[PendingEntry]:
        with self._lock:
            matches = [
                e
                for e in self._pending.values()
                if e.facility_id == facility_id and not e.merged and e.received_at > since
            ]
        return sorted(matches, key=lambda e: e.recency_key)

    def find_stale(
        self,
        *,
        facility_id: str | None = None,
        received_before: datetime | None = None,
        expires_before: datetime | None = None,
    ) -> list[PendingEntry]:
        with self._lock:
            matches = [
                e
                for e in self._pending.values()
                if not e.merged
                and (facility_id is None or e.facility_id == facility_id)
                and (received_before is None or e.received_at < received_before)
                and (expires_before is None or e.expires_at < expires_before)
            ]
        return sorted(matches, key=lambda e: e.recency_key)

    def conditional_update(
        self,
        entry_ids: Sequence[str],
        expected: EntryState,
        new: EntryState,
    ) -> bool:
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            return False

        with self._lock:
            current = [self._pending.get(entry_id) for entry_id in ids]
            if any(e is None or e.state != expected for e in current):
                return False

            for entry_id in ids:
                self._pending[entry_id] = self._pending[entry_id].model_copy(
                    update={"merged": new.merged, "reading_id": new.reading_id}
                )
        return True

    def batch_delete(self, entry_ids: Sequence[str], *, expected: EntryState) -> int:
        deleted = 0
        with self._lock:
            for entry_id in dict.fromkeys(entry_ids):
                entry = self._pending.get(entry_id)
                if entry is not None and entry.state == expected:
                    del self._pending[entry_id]
                    deleted += 1
        return deleted

    def insert_reading(
        self,
        reading: CompleteReading,
        sensor_bindings: Sequence[SensorBinding] = (),
    ) -> None:
        with self._lock:
            if reading.id in self._readings:
                raise StoreError(f"Duplicate reading {reading.id}", operation="insert_reading")
            used = {eid for r in self._readings.values() for eid in r.entry_ids}
            if used.intersection(reading.entry_ids):
                raise StoreError(
                    f"Entries {reading.entry_ids} already belong to a reading",
                    operation="insert_reading",
                )
            self._readings[reading.id] = reading
            for binding in sensor_bindings:
                self._sensors[binding.key] = binding

    def get_reading(self, reading_id: str) -> CompleteReading | None:
        with self._lock:
            return self._readings.get(reading_id)

    def list_readings(
        self,
        *,
        facility_id: str | None = None,
        limit: int = 20,
    ) -> list[CompleteReading]:
        with self._lock:
            readings = [
                r
                for r in self._readings.values()
                if facility_id is None or r.facility_id == facility_id
            ]
        readings.sort(key=lambda r: (r.observed_at, r.created_at), reverse=True)
        return readings[:limit]

    def insert_alert(self, alert: Alert) -> None:
        with self._lock:
            if alert.reading_id not in self._readings:
                raise StoreError(
                    f"Alert references unknown reading {alert.reading_id}",
                    operation="insert_alert",
                )
            self._alerts.append(alert)

    def list_alerts(
        self,
        *,
        facility_id: str | None = None,
        reading_id: str | None = None,
        status: AlertStatus | None = None,
        limit: int = 100,
    ) -> list[Alert]:
        with self._lock:
            alerts = [
                a
                for a in reversed(self._alerts)
                if (facility_id is None or a.facility_id == facility_id)
                and (reading_id is None or a.reading_id == reading_id)
                and (status is None or a.status == AlertStatus(status))
            ]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return alerts[:limit]

    def get_sensor_binding(
        self, facility_id: str, side: Side, parameter: str
    ) -> SensorBinding | None:
        with self._lock:
            return self._sensors.get((facility_id, Side(side), parameter))

    def find_sensor_binding(self, sensor_id: str) -> SensorBinding | None:
        with self._lock:
            matches = [b for b in self._sensors.values() if b.sensor_id == sensor_id]
        return max(matches, key=lambda b: b.updated_at, default=None)

    def buffer_status(self, facility_id: str | None = None) -> BufferStatus:
        with self._lock:
            entries = [
                e
                for e in self._pending.values()
                if facility_id is None or e.facility_id == facility_id
            ]

        merged = sum(1 for e in entries if e.merged)
        return BufferStatus(
            facility_id=facility_id,
            total=len(entries),
            merged=merged,
            unmerged=len(entries) - merged,
            by_side={
                side.value: sum(1 for e in entries if e.side is side) for side in Side
            },
        )

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "backend": "memory",
                "pending_entries_count": len(self._pending),
                "complete_readings_count": len(self._readings),
                "alerts_count": len(self._alerts),
                "sensor_index_count": len(self._sensors),
                "active_alerts": sum(1 for a in self._alerts if a.status is AlertStatus.ACTIVE),
            }

    def close(self) -> None:
        pass

    def __enter__(self) -> InMemoryStorage:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"InMemoryStorage(pending={len(self._pending)}, readings={len(self._readings)})"
