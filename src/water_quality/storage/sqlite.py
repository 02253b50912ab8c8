"""
SQLite storage backend for the water quality pipeline.

- WAL mode so readers never block the claim writer
- One connection per thread, created lazily
- Writes run inside ``BEGIN IMMEDIATE`` so a claim's check and update
  happen under the database write lock
- Automatic schema management

Example:
    >>> from water_quality.storage import SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/water_quality.db")
    >>> storage.initialize()
    >>> entry = storage.insert_pending(entry)
    >>> storage.buffer_status("plant-7").unmerged
    1
    >>> storage.close()
"""

from __future__ import annotations

import sqlite3
import threading
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
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
from water_quality.storage.schema import create_schema, get_schema_version, migrate
from water_quality.utils.time import to_db_timestamp

# Stay well under SQLITE_MAX_VARIABLE_NUMBER
_DELETE_CHUNK = 500


def _placeholders(count: int) -> str:
    return ", ".join(["?"] * count)


class SQLiteStorage:
    """SQLite implementation of the ReadingStore protocol.

    Attributes:
        db_path: Path to the SQLite database file

    Example:
        >>> with SQLiteStorage("data/water_quality.db") as storage:
        ...     storage.initialize()
        ...     status = storage.buffer_status()
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        timeout: float = 30.0,
        wal_mode: bool = True,
    ):
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file (``:memory:`` is not
                supported because each thread opens its own connection)
            timeout: Seconds to wait for the write lock
            wal_mode: Enable write-ahead logging
        """
        if str(db_path) == ":memory:":
            raise ValueError("SQLiteStorage needs a file path; use InMemoryStorage instead")

        self.db_path = Path(db_path)
        self._timeout = timeout
        self._wal_mode = wal_mode
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Get this thread's connection, creating it if needed."""
        conn: sqlite3.Connection | None = getattr(self._local, "connection", None)
        if conn is None:
            conn = self._connect()
            self._local.connection = conn
        return conn

    def _connect(self) -> sqlite3.Connection:
        """Open a connection for the current thread."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            # Autocommit; transactions are opened explicitly
            conn = sqlite3.connect(
                self.db_path,
                timeout=self._timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row

            if self._wal_mode:
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute(f"PRAGMA busy_timeout={int(self._timeout * 1000)}")
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open {self.db_path}: {e}", operation="connect") from e

        with self._lock:
            self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Cursor]:
        """Run a block inside ``BEGIN IMMEDIATE``; commit on success, roll back on error."""
        conn = self.connection
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreError(f"{operation} failed: {e}", operation=operation) from e

        try:
            yield conn.cursor()
        except sqlite3.Error as e:
            self._rollback(conn)
            raise StoreError(f"{operation} failed: {e}", operation=operation) from e
        except BaseException:
            self._rollback(conn)
            raise

        try:
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise StoreError(f"{operation} commit failed: {e}", operation=operation) from e

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        # SQLite may already have rolled back on its own (e.g. SQLITE_FULL)
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def initialize(self) -> None:
        """Create tables/schema if needed.

        This method is idempotent - safe to call multiple times.
        """
        try:
            version = get_schema_version(self.connection)
            if version is None:
                create_schema(self.connection)
            else:
                migrate(self.connection)
        except sqlite3.Error as e:
            raise StoreError(f"Schema setup failed: {e}", operation="initialize") from e

    def query(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Execute a query and return results as dictionaries.

        Args:
            sql: SQL query string (use ? for parameters)
            params: Query parameters

        Returns:
            List of dictionaries (column name -> value)
        """
        try:
            cursor = self.connection.execute(sql, params)
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StoreError(f"Query failed: {e}", operation="query") from e

    # ------------------------------------------------------------------
    # Pending entries
    # ------------------------------------------------------------------

    def insert_pending(self, entry: PendingEntry) -> PendingEntry:
        """Write a new pending entry and return it with id and seq assigned."""
        if entry.id is None:
            entry = entry.model_copy(update={"id": uuid.uuid4().hex})

        db_dict = entry.to_db_dict()
        columns = list(db_dict)
        sql = (
            f"INSERT INTO pending_entries ({', '.join(columns)}) "
            f"VALUES ({_placeholders(len(columns))})"
        )

        with self._transaction("insert_pending") as cursor:
            cursor.execute(sql, tuple(db_dict[c] for c in columns))
            seq = cursor.lastrowid

        return entry.model_copy(update={"seq": seq})

    def get_pending(self, entry_id: str) -> PendingEntry | None:
        rows = self.query("SELECT * FROM pending_entries WHERE id = ?", (entry_id,))
        return PendingEntry.from_db_row(rows[0]) if rows else None

    def query_pending(self, facility_id: str, *, since: datetime) -> list[PendingEntry]:
        """Get unmerged entries for a facility received strictly after ``since``."""
        rows = self.query(
            """
            SELECT * FROM pending_entries
            WHERE facility_id = ? AND merged = 0 AND received_at > ?
            ORDER BY received_at, seq
            """,
            (facility_id, to_db_timestamp(since)),
        )
        return [PendingEntry.from_db_row(row) for row in rows]

    def find_stale(
        self,
        *,
        facility_id: str | None = None,
        received_before: datetime | None = None,
        expires_before: datetime | None = None,
    ) -> list[PendingEntry]:
        """Get unmerged entries older than the given bounds."""
        clauses = ["merged = 0"]
        params: list[Any] = []

        if facility_id is not None:
            clauses.append("facility_id = ?")
            params.append(facility_id)
        if received_before is not None:
            clauses.append("received_at < ?")
            params.append(to_db_timestamp(received_before))
        if expires_before is not None:
            clauses.append("expires_at < ?")
            params.append(to_db_timestamp(expires_before))

        rows = self.query(
            f"SELECT * FROM pending_entries WHERE {' AND '.join(clauses)} "
            "ORDER BY received_at, seq",
            tuple(params),
        )
        return [PendingEntry.from_db_row(row) for row in rows]

    def conditional_update(
        self,
        entry_ids: Sequence[str],
        expected: EntryState,
        new: EntryState,
    ) -> bool:
        """All-or-nothing compare-and-swap of claim state.

        The count check and the update run under one write lock, so no
        other connection can change the rows in between.
        """
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            return False

        marks = _placeholders(len(ids))

        with self._transaction("conditional_update") as cursor:
            cursor.execute(
                f"""
                SELECT COUNT(*) FROM pending_entries
                WHERE id IN ({marks}) AND merged = ? AND reading_id IS ?
                """,
                (*ids, int(expected.merged), expected.reading_id),
            )
            if cursor.fetchone()[0] != len(ids):
                return False

            cursor.execute(
                f"UPDATE pending_entries SET merged = ?, reading_id = ? WHERE id IN ({marks})",
                (int(new.merged), new.reading_id, *ids),
            )

        return True

    def batch_delete(self, entry_ids: Sequence[str], *, expected: EntryState) -> int:
        """Delete listed entries that are still in ``expected`` state."""
        ids = list(dict.fromkeys(entry_ids))
        deleted = 0

        for start in range(0, len(ids), _DELETE_CHUNK):
            chunk = ids[start : start + _DELETE_CHUNK]
            with self._transaction("batch_delete") as cursor:
                cursor.execute(
                    f"""
                    DELETE FROM pending_entries
                    WHERE id IN ({_placeholders(len(chunk))})
                      AND merged = ? AND reading_id IS ?
                    """,
                    (*chunk, int(expected.merged), expected.reading_id),
                )
                deleted += cursor.rowcount

        return deleted

    # ------------------------------------------------------------------
    # Readings, alerts and sensor index
    # ------------------------------------------------------------------

    def insert_reading(
        self,
        reading: CompleteReading,
        sensor_bindings: Sequence[SensorBinding] = (),
    ) -> None:
        """Persist a reading and upsert its sensor index rows in one transaction."""
        db_dict = reading.to_db_dict()
        columns = list(db_dict)

        with self._transaction("insert_reading") as cursor:
            cursor.execute(
                f"INSERT INTO complete_readings ({', '.join(columns)}) "
                f"VALUES ({_placeholders(len(columns))})",
                tuple(db_dict[c] for c in columns),
            )
            cursor.executemany(
                """
                INSERT INTO sensor_index
                (facility_id, side, parameter, sensor_id, reading_id, updated_at)
                VALUES (:facility_id, :side, :parameter, :sensor_id, :reading_id, :updated_at)
                ON CONFLICT(facility_id, side, parameter) DO UPDATE SET
                    sensor_id = excluded.sensor_id,
                    reading_id = excluded.reading_id,
                    updated_at = excluded.updated_at
                """,
                [binding.to_db_dict() for binding in sensor_bindings],
            )

    def get_reading(self, reading_id: str) -> CompleteReading | None:
        rows = self.query("SELECT * FROM complete_readings WHERE id = ?", (reading_id,))
        return CompleteReading.from_db_row(rows[0]) if rows else None

    def list_readings(
        self,
        *,
        facility_id: str | None = None,
        limit: int = 20,
    ) -> list[CompleteReading]:
        sql = "SELECT * FROM complete_readings"
        params: tuple[Any, ...] = ()
        if facility_id is not None:
            sql += " WHERE facility_id = ?"
            params = (facility_id,)
        sql += " ORDER BY observed_at DESC, created_at DESC LIMIT ?"

        rows = self.query(sql, (*params, limit))
        return [CompleteReading.from_db_row(row) for row in rows]

    def insert_alert(self, alert: Alert) -> None:
        db_dict = alert.to_db_dict()
        columns = list(db_dict)

        with self._transaction("insert_alert") as cursor:
            cursor.execute(
                f"INSERT INTO alerts ({', '.join(columns)}) "
                f"VALUES ({_placeholders(len(columns))})",
                tuple(db_dict[c] for c in columns),
            )

    def list_alerts(
        self,
        *,
        facility_id: str | None = None,
        reading_id: str | None = None,
        status: AlertStatus | None = None,
        limit: int = 100,
    ) -> list[Alert]:
        clauses: list[str] = []
        params: list[Any] = []

        if facility_id is not None:
            clauses.append("facility_id = ?")
            params.append(facility_id)
        if reading_id is not None:
            clauses.append("reading_id = ?")
            params.append(reading_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(AlertStatus(status).value)

        sql = "SELECT * FROM alerts"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        return [Alert.from_db_row(row) for row in self.query(sql, tuple(params))]

    def get_sensor_binding(
        self, facility_id: str, side: Side, parameter: str
    ) -> SensorBinding | None:
        rows = self.query(
            """
            SELECT * FROM sensor_index
            WHERE facility_id = ? AND side = ? AND parameter = ?
            """,
            (facility_id, Side(side).value, parameter),
        )
        return SensorBinding.from_db_row(rows[0]) if rows else None

    def find_sensor_binding(self, sensor_id: str) -> SensorBinding | None:
        rows = self.query(
            """
            SELECT * FROM sensor_index
            WHERE sensor_id = ?
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            (sensor_id,),
        )
        return SensorBinding.from_db_row(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def buffer_status(self, facility_id: str | None = None) -> BufferStatus:
        """Count buffered entries by claim state and side."""
        sql = """
            SELECT
                COUNT(*) as total,
                COALESCE(SUM(merged), 0) as merged,
                COALESCE(SUM(CASE WHEN side = 'inlet' THEN 1 ELSE 0 END), 0) as inlet,
                COALESCE(SUM(CASE WHEN side = 'outlet' THEN 1 ELSE 0 END), 0) as outlet
            FROM pending_entries
        """
        params: tuple[Any, ...] = ()
        if facility_id is not None:
            sql += " WHERE facility_id = ?"
            params = (facility_id,)

        row = self.query(sql, params)[0]
        return BufferStatus(
            facility_id=facility_id,
            total=row["total"],
            merged=row["merged"],
            unmerged=row["total"] - row["merged"],
            by_side={Side.INLET.value: row["inlet"], Side.OUTLET.value: row["outlet"]},
        )

    def get_stats(self) -> dict[str, Any]:
        """Get storage statistics.

        Returns:
            Dictionary with row counts and file size
        """
        stats: dict[str, Any] = {"backend": "sqlite", "path": str(self.db_path)}

        for table in ["pending_entries", "complete_readings", "alerts", "sensor_index"]:
            result = self.query(f"SELECT COUNT(*) as count FROM {table}")
            stats[f"{table}_count"] = result[0]["count"] if result else 0

        result = self.query("SELECT COUNT(*) as count FROM alerts WHERE status = 'active'")
        stats["active_alerts"] = result[0]["count"] if result else 0

        stats["schema_version"] = get_schema_version(self.connection)

        if self.db_path.exists():
            stats["file_size_bytes"] = self.db_path.stat().st_size
            stats["file_size_mb"] = round(stats["file_size_bytes"] / (1024 * 1024), 2)

        return stats

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._lock:
            connections = self._connections
            self._connections = []
            self._local = threading.local()

        for conn in connections:
            conn.close()

    def __enter__(self) -> SQLiteStorage:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SQLiteStorage({self.db_path!r})"
