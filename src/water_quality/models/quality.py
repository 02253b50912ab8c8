"""
Quality analysis models.

This module defines the output of the quality scorer:
- Violation: One hard-threshold breach
- Recommendation: One templated operator action
- QualityAnalysis: Score, status bucket, violations and recommendations

Example:
    >>> from water_quality.models import QualityAnalysis, QualityStatus
    >>>
    >>> analysis = QualityAnalysis(score=93, status=QualityStatus.EXCELLENT)
    >>> analysis.has_violations
    False
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Severity(str, Enum):
    """Severity of a violation or alert, ordered low to critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank (low=0 ... critical=3) for ordering."""
        return _SEVERITY_RANK[self]

    @property
    def is_urgent(self) -> bool:
        """High and critical severities trigger notifications."""
        return self.rank >= _SEVERITY_RANK[Severity.HIGH]

    @classmethod
    def highest(cls, severities: Iterable[Severity]) -> Severity | None:
        """Return the most severe value, or None for an empty iterable."""
        return max(severities, key=lambda s: s.rank, default=None)


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ViolationCondition(str, Enum):
    """Kind of threshold breach."""

    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"
    INSUFFICIENT_REDUCTION = "insufficient_reduction"


class ViolationLocation(str, Enum):
    """Where a violation was measured."""

    INLET = "inlet"
    OUTLET = "outlet"
    COMPARISON = "comparison"


class QualityStatus(str, Enum):
    """Status bucket derived from the overall score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"


class RecommendationType(str, Enum):
    """Category of recommended operator action."""

    TREATMENT = "treatment"
    MAINTENANCE = "maintenance"
    MONITORING = "monitoring"


class Violation(BaseModel):
    """One hard-threshold breach.

    Attributes:
        parameter: Parameter name (ph, tds, turbidity, temperature)
        location: Where it was measured (inlet, outlet, comparison)
        value: Measured value (reduction percentage for comparisons)
        threshold: The bound that was breached
        condition: Kind of breach
        severity: Magnitude bucket
        message: Human-readable description
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    parameter: str = Field(..., description="Parameter name")
    location: ViolationLocation = Field(..., description="Measurement location")
    value: float = Field(..., description="Observed value")
    threshold: float = Field(..., description="Breached threshold")
    condition: ViolationCondition = Field(..., description="Kind of breach")
    severity: Severity = Field(..., description="Severity bucket")
    message: str = Field(default="", description="Human-readable description")

    @property
    def rule(self) -> str:
        """Rule label used on alerts, e.g. ``"ph above_maximum"``."""
        return f"{self.parameter} {self.condition.value}"

    @property
    def deviation(self) -> float:
        """Absolute distance between value and threshold."""
        return abs(self.value - self.threshold)


class Recommendation(BaseModel):
    """A templated operator action."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    type: RecommendationType
    priority: Severity
    message: str


class QualityAnalysis(BaseModel):
    """Result of scoring one complete reading."""

    model_config = ConfigDict(extra="ignore")

    score: int = Field(..., ge=0, le=100, description="Overall score 0-100")
    status: QualityStatus = Field(..., description="Status bucket")
    violations: list[Violation] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    parameter_scores: dict[str, float] = Field(
        default_factory=dict,
        description="Unrounded per-parameter scores",
    )

    @computed_field  # type: ignore[misc]
    @property
    def has_violations(self) -> bool:
        """Whether any violation was detected."""
        return bool(self.violations)

    @property
    def highest_severity(self) -> Severity | None:
        """Most severe violation, or None when clean."""
        return Severity.highest(v.severity for v in self.violations)
