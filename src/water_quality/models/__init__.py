"""
Data models for the water quality pipeline.

This module provides Pydantic-based data models for:
- Submission / PendingEntry: Half-readings before and after buffering
- CompleteReading: A reconciled inlet/outlet pair
- QualityAnalysis, Violation, Recommendation: Scorer output
- Alert, NotificationJob: Dispatcher output
- SubmissionResult, SweepResult, BufferStatus, IncompleteReport: Operation results
"""

from water_quality.models.alerts import Alert, AlertStatus, GatewayResult, NotificationJob
from water_quality.models.quality import (
    QualityAnalysis,
    QualityStatus,
    Recommendation,
    RecommendationType,
    Severity,
    Violation,
    ViolationCondition,
    ViolationLocation,
)
from water_quality.models.readings import (
    PARAMETER_NAMES,
    CompleteReading,
    DeviceIds,
    EntryState,
    PendingEntry,
    Side,
    Submission,
    WaterParameters,
)
from water_quality.models.results import (
    BufferStatus,
    IncompleteReport,
    SubmissionResult,
    SweepResult,
)

__all__ = [
    "PARAMETER_NAMES",
    "Alert",
    "AlertStatus",
    "BufferStatus",
    "CompleteReading",
    "DeviceIds",
    "EntryState",
    "GatewayResult",
    "IncompleteReport",
    "NotificationJob",
    "PendingEntry",
    "QualityAnalysis",
    "QualityStatus",
    "Recommendation",
    "RecommendationType",
    "Severity",
    "Side",
    "Submission",
    "SubmissionResult",
    "SweepResult",
    "Violation",
    "ViolationCondition",
    "ViolationLocation",
    "WaterParameters",
]
