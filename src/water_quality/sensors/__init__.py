"""Sensor metadata: mapping keys resolved to an indexed (facility, side, parameter) lookup."""

from water_quality.sensors.index import (
    SensorBinding,
    SensorIndex,
    SensorValue,
    derive_bindings,
    merge_sensor_mappings,
    parse_mapping_key,
)

__all__ = [
    "SensorBinding",
    "SensorIndex",
    "SensorValue",
    "derive_bindings",
    "merge_sensor_mappings",
    "parse_mapping_key",
]
