"""
Alert and notification models.

- Alert: A persisted, actionable record derived 1:1 from a Violation
- NotificationJob: One aggregated notification per reading
- GatewayResult: Outcome of handing a job to the notification gateway
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from water_quality.models.quality import Severity, Violation, ViolationLocation
from water_quality.utils.time import ensure_utc, from_db_timestamp, to_db_timestamp, utcnow


class AlertStatus(str, Enum):
    """Operator workflow state of an alert."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class Alert(BaseModel):
    """A persisted alert.

    Alerts are created ``active``; acknowledging and resolving them is an
    operator action outside the pipeline. They are never deleted automatically.

    Example:
        >>> alert = Alert.from_violation(violation, reading_id="r-1", facility_id="plant-7")
        >>> alert.rule
        'ph above_maximum'
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Alert identifier")
    facility_id: str = Field(..., min_length=1)
    reading_id: str = Field(..., min_length=1)
    parameter: str
    location: ViolationLocation
    value: float
    threshold: float
    deviation: float = Field(default=0.0, ge=0, description="|value - threshold|")
    severity: Severity
    status: AlertStatus = Field(default=AlertStatus.ACTIVE)
    rule: str = Field(..., description='e.g. "tds above_maximum"')
    message: str = Field(default="")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def validate_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def from_violation(
        cls,
        violation: Violation,
        *,
        reading_id: str,
        facility_id: str,
        created_at: datetime | None = None,
    ) -> Alert:
        """Build an active alert from a violation."""
        return cls(
            facility_id=facility_id,
            reading_id=reading_id,
            parameter=violation.parameter,
            location=violation.location,
            value=violation.value,
            threshold=violation.threshold,
            deviation=round(violation.deviation, 4),
            severity=violation.severity,
            rule=violation.rule,
            message=violation.message,
            created_at=created_at or utcnow(),
        )

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SQLite insertion."""
        data = self.model_dump(mode="json")
        data["created_at"] = to_db_timestamp(self.created_at)
        return data

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Alert:
        """Create Alert from a database row."""
        data = dict(row)
        if isinstance(data.get("created_at"), str):
            data["created_at"] = from_db_timestamp(data["created_at"])
        return cls(**data)


class NotificationJob(BaseModel):
    """One aggregated notification covering every alert of a reading."""

    model_config = ConfigDict(extra="ignore")

    reading_id: str
    facility_id: str
    severity: Severity = Field(..., description="Highest severity across alerts")
    title: str
    message: str
    alerts: list[Alert] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[misc]
    @property
    def violation_count(self) -> int:
        """Number of alerts in the job."""
        return len(self.alerts)

    @computed_field  # type: ignore[misc]
    @property
    def parameters_affected(self) -> list[str]:
        """Distinct parameters, in first-seen order."""
        return list(dict.fromkeys(a.parameter for a in self.alerts))

    @classmethod
    def aggregate(cls, alerts: list[Alert]) -> NotificationJob:
        """Build one job from the alerts of a single reading.

        Raises:
            ValueError: If ``alerts`` is empty
        """
        if not alerts:
            raise ValueError("cannot aggregate an empty alert list")

        first = alerts[0]
        severity = Severity.highest(a.severity for a in alerts)
        assert severity is not None
        parameters = ", ".join(dict.fromkeys(a.parameter for a in alerts))

        return cls(
            reading_id=first.reading_id,
            facility_id=first.facility_id,
            severity=severity,
            title=f"{severity.value.upper()}: water quality violation at {first.facility_id}",
            message=f"{len(alerts)} violation(s) detected ({parameters})",
            alerts=list(alerts),
        )


class GatewayResult(BaseModel):
    """Outcome of one ``send_aggregated`` call."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    per_channel: dict[str, bool] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
