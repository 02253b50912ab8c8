"""
Reading models for the water quality pipeline.

This module defines Pydantic models for:
- Submission: A half-reading as sent by a device, validated at the boundary
- PendingEntry: A buffered half-reading awaiting its counterpart
- CompleteReading: A reconciled inlet/outlet pair with its quality analysis

All models support database-ready dictionary conversion via
``to_db_dict()`` / ``from_db_row()``.

Example:
    >>> from water_quality.models import Submission
    >>>
    >>> submission = Submission(
    ...     facility_id="plant-7",
    ...     side="inlet",
    ...     device_id="dev-1",
    ...     parameters={"ph": 7.2, "tds": 450, "turbidity": 25, "temperature": 28},
    ... )
    >>> submission.side.opposite
    <Side.OUTLET: 'outlet'>
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from water_quality.models.quality import QualityAnalysis
from water_quality.utils.time import ensure_utc, from_db_timestamp, to_db_timestamp, utcnow

PARAMETER_NAMES = ("ph", "tds", "turbidity", "temperature")


class Side(str, Enum):
    """Which half of a paired observation a reading represents."""

    INLET = "inlet"
    OUTLET = "outlet"

    @property
    def opposite(self) -> Side:
        """The other side."""
        return Side.OUTLET if self is Side.INLET else Side.INLET


class WaterParameters(BaseModel):
    """The four measured parameters, range-checked against sensor limits.

    The bounds here are physical sensor ranges, not regulatory thresholds:
    a value outside them is a malformed submission, not a violation.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    ph: float = Field(..., ge=0, le=14, allow_inf_nan=False, description="pH")
    tds: float = Field(..., ge=0, le=2000, allow_inf_nan=False, description="Total dissolved solids (ppm)")
    turbidity: float = Field(..., ge=0, le=4000, allow_inf_nan=False, description="Turbidity (NTU)")
    temperature: float = Field(
        ..., ge=-10, le=60, allow_inf_nan=False, description="Temperature (Celsius)"
    )

    def value(self, parameter: str) -> float:
        """Get a parameter by name.

        Raises:
            KeyError: If the name is not one of PARAMETER_NAMES
        """
        if parameter not in PARAMETER_NAMES:
            raise KeyError(parameter)
        return float(getattr(self, parameter))


@dataclass(frozen=True)
class EntryState:
    """Claim state of a pending entry, used as the compare-and-swap operand."""

    merged: bool
    reading_id: str | None = None

    @classmethod
    def unmerged(cls) -> EntryState:
        return cls(merged=False, reading_id=None)

    @classmethod
    def claimed(cls, reading_id: str) -> EntryState:
        return cls(merged=True, reading_id=reading_id)


def _clean_mapping(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("sensor_mapping must be an object of parameter -> sensor id")
    cleaned: dict[str, str] = {}
    for key, sensor in value.items():
        if not isinstance(key, str) or not key.strip():
            raise ValueError("sensor_mapping keys must be non-empty strings")
        if not isinstance(sensor, str | int) or isinstance(sensor, bool):
            raise ValueError(f"sensor_mapping[{key!r}] must be a string sensor id")
        cleaned[key.strip()] = str(sensor).strip()
    return cleaned


class Submission(BaseModel):
    """A half-reading as submitted by a device."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    facility_id: str = Field(..., min_length=1, description="Facility identifier")
    side: Side = Field(..., description="inlet or outlet")
    device_id: str = Field(..., min_length=1, description="Submitting device")
    parameters: WaterParameters
    sensor_mapping: dict[str, str] = Field(default_factory=dict)

    @field_validator("sensor_mapping", mode="before")
    @classmethod
    def validate_sensor_mapping(cls, v: Any) -> dict[str, str]:
        return _clean_mapping(v)


class PendingEntry(BaseModel):
    """One buffered half-reading awaiting its pair.

    Attributes:
        id: Store-assigned identifier
        seq: Store-assigned write sequence (tie-break for equal timestamps)
        facility_id: Facility identifier
        side: inlet or outlet
        device_id: Submitting device
        parameters: Measured values
        sensor_mapping: Parameter -> physical sensor id
        received_at: When the submission was accepted
        expires_at: received_at + merge window
        merged: Whether a merge has claimed this entry
        reading_id: The reading that claimed it
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(default=None, description="Store-assigned identifier")
    seq: int | None = Field(default=None, description="Store-assigned write sequence")
    facility_id: str = Field(..., min_length=1)
    side: Side
    device_id: str = Field(..., min_length=1)
    parameters: WaterParameters
    sensor_mapping: dict[str, str] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    merged: bool = Field(default=False)
    reading_id: str | None = Field(default=None)

    @field_validator("received_at", "expires_at")
    @classmethod
    def validate_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def state(self) -> EntryState:
        """Current claim state."""
        return EntryState(merged=self.merged, reading_id=self.reading_id)

    @property
    def recency_key(self) -> tuple[datetime, int]:
        """Sort key for latest-wins selection."""
        return (self.received_at, self.seq or 0)

    def is_expired(self, now: datetime) -> bool:
        """Whether the entry's expiry has passed."""
        return self.expires_at < ensure_utc(now)

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SQLite insertion."""
        return {
            "id": self.id,
            "facility_id": self.facility_id,
            "side": self.side.value,
            "device_id": self.device_id,
            "ph": self.parameters.ph,
            "tds": self.parameters.tds,
            "turbidity": self.parameters.turbidity,
            "temperature": self.parameters.temperature,
            "sensor_mapping": json.dumps(self.sensor_mapping, sort_keys=True),
            "received_at": to_db_timestamp(self.received_at),
            "expires_at": to_db_timestamp(self.expires_at),
            "merged": int(self.merged),
            "reading_id": self.reading_id,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> PendingEntry:
        """Create PendingEntry from a database row."""
        data = dict(row)
        data["parameters"] = {name: data.pop(name) for name in PARAMETER_NAMES}
        if isinstance(data.get("sensor_mapping"), str):
            data["sensor_mapping"] = json.loads(data["sensor_mapping"])
        for key in ("received_at", "expires_at"):
            if isinstance(data.get(key), str):
                data[key] = from_db_timestamp(data[key])
        data["merged"] = bool(data.get("merged"))
        return cls(**data)


class DeviceIds(BaseModel):
    """Devices that produced each side of a reading."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    inlet: str
    outlet: str


class CompleteReading(BaseModel):
    """A reconciled, scored inlet/outlet observation. Append-only."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Reading identifier")
    facility_id: str = Field(..., min_length=1)
    inlet: WaterParameters
    outlet: WaterParameters
    device_ids: DeviceIds
    sensor_mapping: dict[str, str] = Field(default_factory=dict)
    observed_at: datetime = Field(..., description="Outlet entry receipt time")
    quality_analysis: QualityAnalysis
    entry_ids: tuple[str, str] = Field(..., description="(inlet entry id, outlet entry id)")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("observed_at", "created_at")
    @classmethod
    def validate_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SQLite insertion."""
        return {
            "id": self.id,
            "facility_id": self.facility_id,
            "inlet": json.dumps(self.inlet.model_dump(mode="json")),
            "outlet": json.dumps(self.outlet.model_dump(mode="json")),
            "inlet_device_id": self.device_ids.inlet,
            "outlet_device_id": self.device_ids.outlet,
            "sensor_mapping": json.dumps(self.sensor_mapping, sort_keys=True),
            "observed_at": to_db_timestamp(self.observed_at),
            "score": self.quality_analysis.score,
            "status": self.quality_analysis.status.value,
            "quality_analysis": json.dumps(self.quality_analysis.model_dump(mode="json")),
            "inlet_entry_id": self.entry_ids[0],
            "outlet_entry_id": self.entry_ids[1],
            "created_at": to_db_timestamp(self.created_at),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> CompleteReading:
        """Create CompleteReading from a database row."""
        data = dict(row)
        for key in ("inlet", "outlet", "sensor_mapping", "quality_analysis"):
            if isinstance(data.get(key), str):
                data[key] = json.loads(data[key])
        data["device_ids"] = {
            "inlet": data.pop("inlet_device_id"),
            "outlet": data.pop("outlet_device_id"),
        }
        data["entry_ids"] = (data.pop("inlet_entry_id"), data.pop("outlet_entry_id"))
        for key in ("observed_at", "created_at"):
            if isinstance(data.get(key), str):
                data[key] = from_db_timestamp(data[key])
        return cls(**data)
