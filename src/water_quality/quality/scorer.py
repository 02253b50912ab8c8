"""
Quality scorer: turns an inlet/outlet pair into score, status, violations
and recommendations.

The weighted score and the violation list come from different rule sets.
The score uses the optimal bands to grade how good the outlet water is;
violations check the outlet against the hard regulatory thresholds only,
plus a treatment-effectiveness comparison between inlet and outlet. A
reading can therefore carry a violation and still score above zero.

Example:
    >>> from water_quality.quality import QualityScorer
    >>>
    >>> scorer = QualityScorer()
    >>> analysis = scorer.analyze(inlet, outlet)
    >>> analysis.score, analysis.status.value
    (93, 'excellent')
"""

from __future__ import annotations

from water_quality.config.settings import ThresholdSettings
from water_quality.models import (
    QualityAnalysis,
    Recommendation,
    RecommendationType,
    Severity,
    Violation,
    ViolationCondition,
    ViolationLocation,
    WaterParameters,
)
from water_quality.quality.thresholds import (
    BAND_PARAMETERS,
    CEILING_PARAMETERS,
    PARAMETER_LABELS,
    PARAMETER_UNITS,
    SEVERITY_CUTOFFS,
    band_score,
    ceiling_score,
    reduction_percent,
    status_for_score,
    weighted_score,
)

_TREATMENT_TEMPLATES: dict[tuple[str, ViolationCondition], tuple[RecommendationType, str]] = {
    ("ph", ViolationCondition.BELOW_MINIMUM): (
        RecommendationType.TREATMENT,
        "pH is below the permitted range: dose an alkaline reagent (lime or caustic) "
        "to raise pH",
    ),
    ("ph", ViolationCondition.ABOVE_MAXIMUM): (
        RecommendationType.TREATMENT,
        "pH is above the permitted range: dose acid to lower pH",
    ),
    ("tds", ViolationCondition.ABOVE_MAXIMUM): (
        RecommendationType.TREATMENT,
        "TDS is above the permitted maximum: check the filtration system and clean or "
        "replace filter media",
    ),
    ("turbidity", ViolationCondition.ABOVE_MAXIMUM): (
        RecommendationType.TREATMENT,
        "Turbidity is above the permitted maximum: inspect sedimentation and filtration "
        "stages",
    ),
    ("temperature", ViolationCondition.BELOW_MINIMUM): (
        RecommendationType.MONITORING,
        "Temperature is below the permitted range: check process heating and verify "
        "sensor calibration",
    ),
    ("temperature", ViolationCondition.ABOVE_MAXIMUM): (
        RecommendationType.MONITORING,
        "Temperature is above the permitted range: check cooling and verify sensor "
        "calibration",
    ),
}

MAINTAIN_MESSAGE = "Water quality is within limits: maintain current operation"


def _fmt(parameter: str, value: float) -> str:
    return f"{value:g}{PARAMETER_UNITS[parameter]}"


class QualityScorer:
    """Scores readings against configurable thresholds.

    Attributes:
        thresholds: Regulatory thresholds and minimum reductions
    """

    def __init__(self, thresholds: ThresholdSettings | None = None):
        self.thresholds = thresholds or ThresholdSettings()

    def analyze(self, inlet: WaterParameters, outlet: WaterParameters) -> QualityAnalysis:
        """Score a reconciled pair.

        Args:
            inlet: Pre-treatment values
            outlet: Post-treatment values (scored and checked)

        Returns:
            QualityAnalysis with score, status, violations and recommendations
        """
        scores = self.parameter_scores(outlet)
        score = weighted_score(scores)

        threshold_violations = self.detect_violations(outlet)
        comparison_violations = self.check_effectiveness(inlet, outlet)
        violations = threshold_violations + comparison_violations

        return QualityAnalysis(
            score=score,
            status=status_for_score(score),
            violations=violations,
            recommendations=self.recommend(violations),
            parameter_scores=scores,
        )

    def parameter_scores(self, params: WaterParameters) -> dict[str, float]:
        """Unrounded 0-100 score per parameter."""
        t = self.thresholds
        return {
            "ph": band_score(params.ph, t.ph),
            "tds": ceiling_score(params.tds, t.tds),
            "turbidity": ceiling_score(params.turbidity, t.turbidity),
            "temperature": band_score(params.temperature, t.temperature),
        }

    def detect_violations(self, outlet: WaterParameters) -> list[Violation]:
        """Check outlet values against hard thresholds."""
        violations: list[Violation] = []

        for parameter in BAND_PARAMETERS:
            band = getattr(self.thresholds, parameter)
            value = outlet.value(parameter)
            if value < band.min:
                violations.append(
                    self._band_violation(parameter, value, band.min, ViolationCondition.BELOW_MINIMUM)
                )
            elif value > band.max:
                violations.append(
                    self._band_violation(parameter, value, band.max, ViolationCondition.ABOVE_MAXIMUM)
                )

        for parameter in CEILING_PARAMETERS:
            ceiling = getattr(self.thresholds, parameter)
            value = outlet.value(parameter)
            if value > ceiling.max:
                ratio = value / ceiling.max
                label = PARAMETER_LABELS[parameter]
                violations.append(
                    Violation(
                        parameter=parameter,
                        location=ViolationLocation.OUTLET,
                        value=value,
                        threshold=ceiling.max,
                        condition=ViolationCondition.ABOVE_MAXIMUM,
                        severity=SEVERITY_CUTOFFS[parameter].classify(ratio),
                        message=(
                            f"{label} {_fmt(parameter, value)} exceeds maximum "
                            f"{_fmt(parameter, ceiling.max)} ({ratio:.2f}x)"
                        ),
                    )
                )

        return violations

    def _band_violation(
        self,
        parameter: str,
        value: float,
        bound: float,
        condition: ViolationCondition,
    ) -> Violation:
        deviation = abs(value - bound)
        label = PARAMETER_LABELS[parameter]
        relation = "below minimum" if condition is ViolationCondition.BELOW_MINIMUM else "above maximum"
        return Violation(
            parameter=parameter,
            location=ViolationLocation.OUTLET,
            value=value,
            threshold=bound,
            condition=condition,
            severity=SEVERITY_CUTOFFS[parameter].classify(deviation),
            message=f"{label} {_fmt(parameter, value)} {relation} {_fmt(parameter, bound)}",
        )

    def check_effectiveness(
        self, inlet: WaterParameters, outlet: WaterParameters
    ) -> list[Violation]:
        """Flag TDS/turbidity reductions below their minimum percentage."""
        violations: list[Violation] = []

        for parameter in CEILING_PARAMETERS:
            minimum = getattr(self.thresholds, parameter).min_reduction_percent
            reduction = reduction_percent(inlet.value(parameter), outlet.value(parameter))
            if reduction is None or reduction >= minimum:
                continue

            label = PARAMETER_LABELS[parameter]
            violations.append(
                Violation(
                    parameter=parameter,
                    location=ViolationLocation.COMPARISON,
                    value=round(reduction, 2),
                    threshold=minimum,
                    condition=ViolationCondition.INSUFFICIENT_REDUCTION,
                    # Outlet worse than inlet
                    severity=Severity.HIGH if reduction < 0 else Severity.MEDIUM,
                    message=(
                        f"{label} reduction {reduction:.1f}% is below the "
                        f"{minimum:g}% minimum"
                    ),
                )
            )

        return violations

    def recommend(self, violations: list[Violation]) -> list[Recommendation]:
        """Build deterministic recommendations from a violation list."""
        if not violations:
            return [
                Recommendation(
                    type=RecommendationType.MONITORING,
                    priority=Severity.LOW,
                    message=MAINTAIN_MESSAGE,
                )
            ]

        recommendations: list[Recommendation] = []
        seen: set[str] = set()

        for violation in violations:
            if violation.location is ViolationLocation.COMPARISON or violation.parameter in seen:
                continue
            seen.add(violation.parameter)
            rec_type, message = _TREATMENT_TEMPLATES[(violation.parameter, violation.condition)]
            recommendations.append(
                Recommendation(type=rec_type, priority=violation.severity, message=message)
            )

        ineffective = [v for v in violations if v.location is ViolationLocation.COMPARISON]
        if ineffective:
            details = ", ".join(
                f"{PARAMETER_LABELS[v.parameter]} {v.value:.1f}% (min {v.threshold:g}%)"
                for v in ineffective
            )
            recommendations.append(
                Recommendation(
                    type=RecommendationType.MAINTENANCE,
                    priority=Severity.HIGH,
                    message=(
                        f"Treatment effectiveness below target: {details}. Schedule "
                        "maintenance of the treatment units"
                    ),
                )
            )

        return recommendations
