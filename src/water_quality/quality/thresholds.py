"""
Scoring curves, weights and severity cutoffs.

Per-parameter scores are piecewise linear:

- Band parameters (pH, temperature): 100 inside [optimal_min, optimal_max],
  falling linearly to 0 at the hard min/max, 0 at or beyond them.
- Ceiling parameters (TDS, turbidity): 100 at or below optimal_max, falling
  linearly to 0 at the hard max, 0 at or above it.

Severity cutoffs are fixed per parameter and compare with strict ``>``:
pH and temperature use the absolute distance past the breached bound,
TDS and turbidity use the ratio ``value / max``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from water_quality.config.settings import BandThreshold, CeilingThreshold
from water_quality.models.quality import QualityStatus, Severity

PARAMETER_WEIGHTS: dict[str, float] = {
    "ph": 0.25,
    "tds": 0.25,
    "turbidity": 0.30,
    "temperature": 0.20,
}

BAND_PARAMETERS = ("ph", "temperature")
CEILING_PARAMETERS = ("tds", "turbidity")

# Inclusive lower bounds, checked in order
STATUS_BUCKETS: tuple[tuple[int, QualityStatus], ...] = (
    (85, QualityStatus.EXCELLENT),
    (70, QualityStatus.GOOD),
    (50, QualityStatus.FAIR),
    (30, QualityStatus.POOR),
)

PARAMETER_LABELS = {
    "ph": "pH",
    "tds": "TDS",
    "turbidity": "Turbidity",
    "temperature": "Temperature",
}

PARAMETER_UNITS = {
    "ph": "",
    "tds": " ppm",
    "turbidity": " NTU",
    "temperature": " C",
}


@dataclass(frozen=True)
class SeverityCutoffs:
    """Magnitudes strictly above which a breach escalates."""

    critical: float
    high: float
    medium: float

    def classify(self, magnitude: float) -> Severity:
        if magnitude > self.critical:
            return Severity.CRITICAL
        if magnitude > self.high:
            return Severity.HIGH
        if magnitude > self.medium:
            return Severity.MEDIUM
        return Severity.LOW


# Absolute deviation past the bound
PH_CUTOFFS = SeverityCutoffs(critical=2.0, high=1.0, medium=0.5)
TEMPERATURE_CUTOFFS = SeverityCutoffs(critical=10.0, high=5.0, medium=3.0)

# Ratio of value to maximum
RATIO_CUTOFFS = SeverityCutoffs(critical=2.0, high=1.5, medium=1.2)

SEVERITY_CUTOFFS: dict[str, SeverityCutoffs] = {
    "ph": PH_CUTOFFS,
    "temperature": TEMPERATURE_CUTOFFS,
    "tds": RATIO_CUTOFFS,
    "turbidity": RATIO_CUTOFFS,
}


def band_score(value: float, threshold: BandThreshold) -> float:
    """Score a band parameter (pH, temperature) from 0 to 100."""
    if value <= threshold.min or value >= threshold.max:
        return 0.0
    if threshold.optimal_min <= value <= threshold.optimal_max:
        return 100.0
    if value < threshold.optimal_min:
        return 100.0 * (value - threshold.min) / (threshold.optimal_min - threshold.min)
    return 100.0 * (threshold.max - value) / (threshold.max - threshold.optimal_max)


def ceiling_score(value: float, threshold: CeilingThreshold) -> float:
    """Score a ceiling parameter (TDS, turbidity) from 0 to 100."""
    if value <= threshold.optimal_max:
        return 100.0
    if value >= threshold.max:
        return 0.0
    return 100.0 * (threshold.max - value) / (threshold.max - threshold.optimal_max)


def weighted_score(scores: dict[str, float]) -> int:
    """Combine per-parameter scores into the overall 0-100 integer score.

    ``100 - sum(w * (100 - s))``, clipped to [0, 100], rounded half up.
    """
    penalty = sum(PARAMETER_WEIGHTS[name] * (100.0 - score) for name, score in scores.items())
    overall = min(100.0, max(0.0, 100.0 - penalty))
    return int(math.floor(overall + 0.5))


def status_for_score(score: int) -> QualityStatus:
    """Map an overall score to its status bucket."""
    for lower_bound, status in STATUS_BUCKETS:
        if score >= lower_bound:
            return status
    return QualityStatus.CRITICAL


def reduction_percent(inlet: float, outlet: float) -> float | None:
    """Percentage reduction from inlet to outlet, or None when inlet is 0."""
    if inlet <= 0:
        return None
    return (inlet - outlet) / inlet * 100.0
