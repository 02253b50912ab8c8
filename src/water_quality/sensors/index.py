"""
Sensor index: one keyed lookup from (facility, side, parameter) to a sensor.

Devices describe which physical sensor produced each value through a
``sensor_mapping``. Keys are either a bare parameter name (``"ph"``), which
belongs to the side of the submitting entry, or a side-qualified name
(``"outlet_tds"``). When a reading is persisted its mappings are expanded
into SensorBinding rows, so later lookups are a single indexed query
instead of a scan over every possible mapping key.

Example:
    >>> bindings = derive_bindings(inlet_entry, outlet_entry, reading_id="r-1")
    >>> [(b.side.value, b.parameter, b.sensor_id) for b in bindings]
    [('inlet', 'ph', 'S-101'), ('outlet', 'ph', 'S-201')]
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from water_quality.models.readings import PARAMETER_NAMES, CompleteReading, PendingEntry, Side
from water_quality.utils.time import ensure_utc, from_db_timestamp, to_db_timestamp, utcnow

if TYPE_CHECKING:
    from water_quality.storage.protocol import ReadingStore


class SensorBinding(BaseModel):
    """The sensor currently reporting one parameter on one side of a facility."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    facility_id: str
    side: Side
    parameter: str
    sensor_id: str
    reading_id: str
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("updated_at")
    @classmethod
    def validate_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def key(self) -> tuple[str, Side, str]:
        return (self.facility_id, self.side, self.parameter)

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SQLite insertion."""
        return {
            "facility_id": self.facility_id,
            "side": self.side.value,
            "parameter": self.parameter,
            "sensor_id": self.sensor_id,
            "reading_id": self.reading_id,
            "updated_at": to_db_timestamp(self.updated_at),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> SensorBinding:
        """Create SensorBinding from a database row."""
        data = dict(row)
        if isinstance(data.get("updated_at"), str):
            data["updated_at"] = from_db_timestamp(data["updated_at"])
        return cls(**data)


class SensorValue(BaseModel):
    """The latest value reported by one physical sensor."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    sensor_id: str
    facility_id: str
    side: Side
    parameter: str
    value: float
    reading_id: str
    observed_at: datetime


def parse_mapping_key(key: str, default_side: Side) -> tuple[Side, str] | None:
    """Resolve a sensor mapping key to (side, parameter).

    Args:
        key: ``"ph"`` or ``"<side>_<parameter>"``
        default_side: Side used for bare parameter keys

    Returns:
        (side, parameter), or None if the key names no known parameter
    """
    normalized = key.strip().lower()
    if normalized in PARAMETER_NAMES:
        return default_side, normalized

    prefix, sep, parameter = normalized.partition("_")
    if sep and parameter in PARAMETER_NAMES:
        try:
            return Side(prefix), parameter
        except ValueError:
            return None
    return None


def derive_bindings(
    inlet: PendingEntry,
    outlet: PendingEntry,
    *,
    reading_id: str,
    updated_at: datetime | None = None,
) -> list[SensorBinding]:
    """Expand both entries' sensor mappings into index rows.

    The outlet entry is applied last, so it wins when both entries bind the
    same (side, parameter).
    """
    stamp = updated_at or utcnow()
    bindings: dict[tuple[Side, str], SensorBinding] = {}

    for entry in (inlet, outlet):
        for key, sensor_id in entry.sensor_mapping.items():
            resolved = parse_mapping_key(key, entry.side)
            if resolved is None or not sensor_id:
                continue
            side, parameter = resolved
            bindings[(side, parameter)] = SensorBinding(
                facility_id=entry.facility_id,
                side=side,
                parameter=parameter,
                sensor_id=sensor_id,
                reading_id=reading_id,
                updated_at=stamp,
            )

    return list(bindings.values())


def merge_sensor_mappings(inlet: dict[str, str], outlet: dict[str, str]) -> dict[str, str]:
    """Merge two raw mappings; outlet keys overwrite inlet keys."""
    merged = dict(inlet)
    merged.update(outlet)
    return merged


class SensorIndex:
    """Read-side helper over the store's sensor index."""

    def __init__(self, store: ReadingStore):
        self.store = store

    def lookup(self, facility_id: str, side: Side | str, parameter: str) -> str | None:
        """Get the sensor id bound to (facility, side, parameter)."""
        binding = self.store.get_sensor_binding(facility_id, Side(side), parameter)
        return binding.sensor_id if binding else None

    def latest_value(self, sensor_id: str) -> SensorValue | None:
        """Get the newest value a physical sensor contributed to a reading."""
        binding = self.store.find_sensor_binding(sensor_id)
        if binding is None:
            return None

        reading: CompleteReading | None = self.store.get_reading(binding.reading_id)
        if reading is None:
            return None

        params = reading.inlet if binding.side is Side.INLET else reading.outlet
        return SensorValue(
            sensor_id=sensor_id,
            facility_id=binding.facility_id,
            side=binding.side,
            parameter=binding.parameter,
            value=params.value(binding.parameter),
            reading_id=reading.id,
            observed_at=reading.observed_at,
        )
