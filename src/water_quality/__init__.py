"""
Water Quality Pipeline

Reconciles asynchronous inlet/outlet telemetry from treatment facilities
into complete readings, scores them against regulatory thresholds, and
raises alerts when thresholds are violated.

Features:
- Time-windowed buffer of half-readings with atomic claim-based pairing
- SQLite or in-memory storage behind one protocol
- Weighted quality score, violation detection and recommendations
- Persisted alerts with one aggregated notification per reading

Example:
    >>> from water_quality import ReadingPipeline, SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/water_quality.db")
    >>> storage.initialize()
    >>> with ReadingPipeline(storage) as pipeline:
    ...     pipeline.submit_reading("plant-7", "inlet", "dev-1", inlet_params)
    ...     result = pipeline.submit_reading("plant-7", "outlet", "dev-2", outlet_params)
    >>> result.quality_analysis.status
    <QualityStatus.EXCELLENT: 'excellent'>

For more information, see DESIGN.md or run:
    $ water-quality --help
"""

__version__ = "1.0.0"

from water_quality.config.settings import Settings, get_settings, load_settings
from water_quality.exceptions import (
    ClaimConflict,
    DownstreamWriteFailure,
    MergeRetryExhausted,
    NotificationFailure,
    StoreError,
    ValidationError,
    WaterQualityError,
)
from water_quality.ingest.pipeline import ReadingPipeline
from water_quality.models import (
    Alert,
    BufferStatus,
    CompleteReading,
    PendingEntry,
    QualityAnalysis,
    Side,
    SubmissionResult,
    WaterParameters,
)
from water_quality.quality.scorer import QualityScorer
from water_quality.storage import InMemoryStorage, ReadingStore, SQLiteStorage

__all__ = [
    "Alert",
    "BufferStatus",
    "ClaimConflict",
    "CompleteReading",
    "DownstreamWriteFailure",
    "InMemoryStorage",
    "MergeRetryExhausted",
    "NotificationFailure",
    "PendingEntry",
    "QualityAnalysis",
    "QualityScorer",
    "ReadingPipeline",
    "ReadingStore",
    "SQLiteStorage",
    "Settings",
    "Side",
    "StoreError",
    "SubmissionResult",
    "ValidationError",
    "WaterParameters",
    "WaterQualityError",
    "__version__",
    "get_settings",
    "load_settings",
]
