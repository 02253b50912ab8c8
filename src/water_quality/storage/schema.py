"""
Database schema for the water quality pipeline.

Schema Philosophy:
- pending_entries: Short-lived buffer of half-readings; mutated once (claim)
- complete_readings: Append-only reconciled observations
- alerts: Append-mostly, status changed only by operators
- sensor_index: One row per (facility, side, parameter)

Timestamps are stored as fixed-width UTC strings (see utils.time), so
string comparison in WHERE clauses is chronological.

Example:
    >>> from water_quality.storage.schema import create_schema
    >>>
    >>> create_schema(connection)
"""

from __future__ import annotations

import sqlite3

# Schema version for migration tracking
SCHEMA_VERSION = 1

# ============================================================================
# TABLE DEFINITIONS
# ============================================================================

TABLES_SQL = f"""
-- ============================================================================
-- PENDING_ENTRIES: Half-readings awaiting their counterpart
-- ============================================================================
CREATE TABLE IF NOT EXISTS pending_entries (
    -- Write sequence doubles as the latest-wins tie-break
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,

    facility_id TEXT NOT NULL,
    side TEXT NOT NULL CHECK (side IN ('inlet', 'outlet')),
    device_id TEXT NOT NULL,

    -- Measured values
    ph REAL NOT NULL,
    tds REAL NOT NULL,
    turbidity REAL NOT NULL,
    temperature REAL NOT NULL,

    sensor_mapping TEXT NOT NULL DEFAULT '{{}}',

    -- Temporal
    received_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,

    -- Claim state
    merged INTEGER NOT NULL DEFAULT 0 CHECK (merged IN (0, 1)),
    reading_id TEXT
);

-- ============================================================================
-- COMPLETE_READINGS: Reconciled, scored observations (append-only)
-- ============================================================================
CREATE TABLE IF NOT EXISTS complete_readings (
    id TEXT PRIMARY KEY,
    facility_id TEXT NOT NULL,

    -- Parameter sets (JSON)
    inlet TEXT NOT NULL,
    outlet TEXT NOT NULL,

    inlet_device_id TEXT NOT NULL,
    outlet_device_id TEXT NOT NULL,
    sensor_mapping TEXT NOT NULL DEFAULT '{{}}',

    observed_at TEXT NOT NULL,

    -- Quality analysis
    score INTEGER NOT NULL,
    status TEXT NOT NULL,
    quality_analysis TEXT NOT NULL,

    -- A pending entry feeds at most one reading
    inlet_entry_id TEXT NOT NULL UNIQUE,
    outlet_entry_id TEXT NOT NULL UNIQUE,

    created_at TEXT NOT NULL
);

-- ============================================================================
-- ALERTS: One row per violation
-- ============================================================================
CREATE TABLE IF NOT EXISTS alerts (
    id TEXT PRIMARY KEY,
    facility_id TEXT NOT NULL,
    reading_id TEXT NOT NULL,

    parameter TEXT NOT NULL,
    location TEXT NOT NULL,
    value REAL NOT NULL,
    threshold REAL NOT NULL,
    deviation REAL NOT NULL DEFAULT 0,

    severity TEXT NOT NULL CHECK (severity IN ('low', 'medium', 'high', 'critical')),
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'acknowledged', 'resolved')),
    rule TEXT NOT NULL,
    message TEXT NOT NULL DEFAULT '',

    created_at TEXT NOT NULL,

    FOREIGN KEY (reading_id) REFERENCES complete_readings(id)
);

-- ============================================================================
-- SENSOR_INDEX: (facility, side, parameter) -> physical sensor
-- ============================================================================
CREATE TABLE IF NOT EXISTS sensor_index (
    facility_id TEXT NOT NULL,
    side TEXT NOT NULL,
    parameter TEXT NOT NULL,
    sensor_id TEXT NOT NULL,
    reading_id TEXT NOT NULL,
    updated_at TEXT NOT NULL,

    PRIMARY KEY (facility_id, side, parameter)
);

-- ============================================================================
-- SCHEMA_INFO: Track schema version
-- ============================================================================
CREATE TABLE IF NOT EXISTS schema_info (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

INSERT OR REPLACE INTO schema_info (key, value) VALUES ('version', '{SCHEMA_VERSION}');
INSERT OR IGNORE INTO schema_info (key, value) VALUES ('created_at', datetime('now'));
"""

# ============================================================================
# INDEX DEFINITIONS
# ============================================================================

INDEXES_SQL = """
-- Reconciler window query
CREATE INDEX IF NOT EXISTS idx_pending_facility_window
    ON pending_entries(facility_id, merged, received_at);

-- Janitor sweep
CREATE INDEX IF NOT EXISTS idx_pending_expiry ON pending_entries(merged, expires_at);

CREATE INDEX IF NOT EXISTS idx_readings_facility_observed
    ON complete_readings(facility_id, observed_at);
CREATE INDEX IF NOT EXISTS idx_readings_created ON complete_readings(created_at);

CREATE INDEX IF NOT EXISTS idx_alerts_facility_status ON alerts(facility_id, status);
CREATE INDEX IF NOT EXISTS idx_alerts_reading ON alerts(reading_id);
CREATE INDEX IF NOT EXISTS idx_alerts_severity ON alerts(severity);

CREATE INDEX IF NOT EXISTS idx_sensor_index_sensor ON sensor_index(sensor_id, updated_at);
"""

# ============================================================================
# VIEW DEFINITIONS
# ============================================================================

VIEWS_SQL = """
-- Buffer occupancy per facility
CREATE VIEW IF NOT EXISTS v_buffer_summary AS
SELECT
    facility_id,
    COUNT(*) as total,
    SUM(merged) as merged,
    SUM(1 - merged) as unmerged,
    SUM(CASE WHEN side = 'inlet' THEN 1 ELSE 0 END) as inlet,
    SUM(CASE WHEN side = 'outlet' THEN 1 ELSE 0 END) as outlet
FROM pending_entries
GROUP BY facility_id;

-- Alerts awaiting operator action
CREATE VIEW IF NOT EXISTS v_active_alerts AS
SELECT * FROM alerts
WHERE status = 'active'
ORDER BY created_at DESC;

-- Readings with at least one alert
CREATE VIEW IF NOT EXISTS v_readings_with_alerts AS
SELECT
    r.id,
    r.facility_id,
    r.observed_at,
    r.score,
    r.status,
    COUNT(a.id) as alert_count
FROM complete_readings r
JOIN alerts a ON a.reading_id = r.id
GROUP BY r.id
ORDER BY r.observed_at DESC;
"""


def get_schema_sql() -> str:
    """Get complete schema SQL for inspection."""
    return "\n".join(
        [
            "-- Water Quality Pipeline Schema",
            f"-- Version: {SCHEMA_VERSION}",
            "",
            "-- TABLES",
            TABLES_SQL,
            "",
            "-- INDEXES",
            INDEXES_SQL,
            "",
            "-- VIEWS",
            VIEWS_SQL,
        ]
    )


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all database tables, indexes, and views.

    This function is idempotent - safe to call multiple times.

    Args:
        conn: SQLite connection
    """
    cursor = conn.cursor()
    cursor.executescript(TABLES_SQL)
    cursor.executescript(INDEXES_SQL)
    cursor.executescript(VIEWS_SQL)
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Get current schema version from database.

    Returns:
        Schema version number, or None if the schema was never created
    """
    try:
        row = conn.execute("SELECT value FROM schema_info WHERE key = 'version'").fetchone()
        return int(row[0]) if row else None
    except sqlite3.OperationalError:
        return None


def migrate(conn: sqlite3.Connection) -> None:
    """Bring an existing database up to SCHEMA_VERSION.

    Version 1 is the first release, so migrating re-runs the idempotent
    schema script, which also stamps the current version.
    """
    current_version = get_schema_version(conn)
    if current_version is None or current_version < SCHEMA_VERSION:
        create_schema(conn)
