"""Quality scoring: weighted score, status bucket, violations and recommendations."""

from water_quality.quality.scorer import QualityScorer
from water_quality.quality.thresholds import (
    PARAMETER_WEIGHTS,
    band_score,
    ceiling_score,
    status_for_score,
    weighted_score,
)

__all__ = [
    "PARAMETER_WEIGHTS",
    "QualityScorer",
    "band_score",
    "ceiling_score",
    "status_for_score",
    "weighted_score",
]
