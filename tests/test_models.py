"""
Tests for data models.

Tests the Pydantic models for:
- Submission and WaterParameters validation
- PendingEntry claim state and database conversion
- CompleteReading database conversion
- Severity ordering, alerts and notification aggregation
"""

from datetime import UTC, datetime, timedelta

import pytest

from water_quality.models import (
    Alert,
    CompleteReading,
    EntryState,
    IncompleteReport,
    NotificationJob,
    PendingEntry,
    QualityAnalysis,
    QualityStatus,
    Severity,
    Side,
    Submission,
    Violation,
    ViolationCondition,
    ViolationLocation,
    WaterParameters,
)

from tests.fixtures.factories import EPOCH


class TestWaterParameters:
    """Tests for WaterParameters."""

    def test_create(self):
        """Test creating parameters with all four values."""
        params = WaterParameters(ph=7.2, tds=450, turbidity=25, temperature=28)

        assert params.ph == 7.2
        assert params.value("tds") == 450.0

    def test_missing_value_rejected(self):
        """Test every parameter is required."""
        with pytest.raises(ValueError):
            WaterParameters(ph=7.2, tds=450, turbidity=25)

    def test_out_of_sensor_range_rejected(self):
        """Test pH must be 0-14."""
        with pytest.raises(ValueError):
            WaterParameters(ph=15.0, tds=450, turbidity=25, temperature=28)

    def test_nan_rejected(self):
        """Test non-finite values are rejected."""
        with pytest.raises(ValueError):
            WaterParameters(ph=float("nan"), tds=450, turbidity=25, temperature=28)

    def test_unknown_parameter_lookup(self):
        """Test value() only accepts known parameter names."""
        params = WaterParameters(ph=7.2, tds=450, turbidity=25, temperature=28)

        with pytest.raises(KeyError):
            params.value("chlorine")


class TestSubmission:
    """Tests for Submission validation."""

    def test_side_opposite(self):
        """Test each side knows its counterpart."""
        assert Side.INLET.opposite is Side.OUTLET
        assert Side.OUTLET.opposite is Side.INLET

    def test_strips_whitespace(self, reading_factory):
        """Test identifiers are stripped."""
        payload = reading_factory.submission("inlet")
        payload["facility_id"] = "  plant-7  "

        submission = Submission.model_validate(payload)

        assert submission.facility_id == "plant-7"

    def test_blank_facility_rejected(self, reading_factory):
        """Test an empty facility id is rejected."""
        payload = reading_factory.submission("inlet")
        payload["facility_id"] = "   "

        with pytest.raises(ValueError):
            Submission.model_validate(payload)

    def test_invalid_side_rejected(self, reading_factory):
        """Test side must be inlet or outlet."""
        payload = reading_factory.submission("inlet")
        payload["side"] = "middle"

        with pytest.raises(ValueError):
            Submission.model_validate(payload)

    def test_sensor_mapping_defaults_empty(self, reading_factory):
        """Test a missing or null sensor mapping becomes {}."""
        payload = reading_factory.submission("inlet")
        payload["sensor_mapping"] = None

        assert Submission.model_validate(payload).sensor_mapping == {}

    def test_sensor_mapping_numeric_ids(self, reading_factory):
        """Test numeric sensor ids are normalized to strings."""
        payload = reading_factory.submission("inlet", sensor_mapping={"ph": 101})  # type: ignore[dict-item]

        assert Submission.model_validate(payload).sensor_mapping == {"ph": "101"}

    def test_sensor_mapping_must_be_object(self, reading_factory):
        """Test a non-object sensor mapping is rejected."""
        payload = reading_factory.submission("inlet")
        payload["sensor_mapping"] = ["S-1"]

        with pytest.raises(ValueError):
            Submission.model_validate(payload)


class TestPendingEntry:
    """Tests for PendingEntry."""

    def test_state(self, reading_factory):
        """Test state mirrors merged/reading_id."""
        entry = reading_factory.pending("inlet")

        assert entry.state == EntryState.unmerged()

        claimed = entry.model_copy(update={"merged": True, "reading_id": "r-1"})
        assert claimed.state == EntryState.claimed("r-1")

    def test_naive_timestamps_become_utc(self, reading_factory):
        """Test naive datetimes are treated as UTC."""
        naive = datetime(2026, 10, 17, 12, 0, 0)

        entry = reading_factory.pending("inlet", received_at=naive)

        assert entry.received_at.tzinfo is not None
        assert entry.received_at == EPOCH

    def test_is_expired(self, reading_factory):
        """Test expiry is strictly after expires_at."""
        entry = reading_factory.pending("inlet")

        assert not entry.is_expired(EPOCH + timedelta(minutes=5))
        assert entry.is_expired(EPOCH + timedelta(minutes=5, microseconds=1))

    def test_recency_key_breaks_ties_by_seq(self, reading_factory):
        """Test equal timestamps are ordered by write sequence."""
        first = reading_factory.pending("inlet").model_copy(update={"seq": 1})
        second = reading_factory.pending("inlet").model_copy(update={"seq": 2})

        assert max([second, first], key=lambda e: e.recency_key) is second

    def test_db_round_trip(self, reading_factory):
        """Test to_db_dict() and from_db_row() preserve the entry."""
        entry = reading_factory.pending(
            "outlet", sensor_mapping={"ph": "S-201"}, id="e-1", seq=4
        )

        row = entry.to_db_dict()
        row["seq"] = 4
        restored = PendingEntry.from_db_row(row)

        assert row["merged"] == 0
        assert row["received_at"] == "2026-10-17T12:00:00.000000Z"
        assert restored == entry


class TestCompleteReading:
    """Tests for CompleteReading."""

    def test_db_round_trip(self, reading_factory):
        """Test readings survive database conversion."""
        reading = reading_factory.reading(sensor_mapping={"ph": "S-1"})

        row = reading.to_db_dict()
        restored = CompleteReading.from_db_row(row)

        assert row["score"] == 93
        assert row["status"] == "excellent"
        assert restored.entry_ids == reading.entry_ids
        assert restored.outlet == reading.outlet
        assert restored.quality_analysis == reading.quality_analysis


class TestSeverity:
    """Tests for Severity ordering."""

    def test_rank_order(self):
        """Test severities are ordered low to critical."""
        ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]

        assert ranks == sorted(ranks)

    def test_is_urgent(self):
        """Test only high and critical are urgent."""
        assert not Severity.LOW.is_urgent
        assert not Severity.MEDIUM.is_urgent
        assert Severity.HIGH.is_urgent
        assert Severity.CRITICAL.is_urgent

    def test_highest(self):
        """Test highest() picks the most severe value."""
        assert Severity.highest([Severity.MEDIUM, Severity.CRITICAL, Severity.LOW]) is Severity.CRITICAL
        assert Severity.highest([]) is None


class TestQualityAnalysis:
    """Tests for QualityAnalysis."""

    def test_score_bounds(self):
        """Test score must be 0-100."""
        with pytest.raises(ValueError):
            QualityAnalysis(score=101, status=QualityStatus.EXCELLENT)

    def test_highest_severity(self):
        """Test highest_severity over violations."""
        violation = Violation(
            parameter="ph",
            location=ViolationLocation.OUTLET,
            value=9.5,
            threshold=9.0,
            condition=ViolationCondition.ABOVE_MAXIMUM,
            severity=Severity.LOW,
        )
        analysis = QualityAnalysis(score=80, status=QualityStatus.GOOD, violations=[violation])

        assert analysis.has_violations is True
        assert analysis.highest_severity is Severity.LOW
        assert violation.rule == "ph above_maximum"
        assert violation.deviation == pytest.approx(0.5)


class TestAlerts:
    """Tests for Alert and NotificationJob."""

    def test_from_violation(self):
        """Test alerts copy the violation and start active."""
        violation = Violation(
            parameter="tds",
            location=ViolationLocation.OUTLET,
            value=900.0,
            threshold=500.0,
            condition=ViolationCondition.ABOVE_MAXIMUM,
            severity=Severity.HIGH,
            message="TDS too high",
        )

        alert = Alert.from_violation(violation, reading_id="r-1", facility_id="plant-7")

        assert alert.status.value == "active"
        assert alert.rule == "tds above_maximum"
        assert alert.deviation == 400.0
        assert alert.severity is Severity.HIGH

    def test_db_round_trip(self, reading_factory):
        """Test alerts survive database conversion."""
        alert = reading_factory.alert(reading_factory.reading())

        restored = Alert.from_db_row(alert.to_db_dict())

        assert restored == alert

    def test_aggregate(self, reading_factory):
        """Test one job carries every alert and the highest severity."""
        reading = reading_factory.reading()
        alerts = [
            reading_factory.alert(reading, severity=Severity.MEDIUM),
            reading_factory.alert(
                reading, parameter="tds", rule="tds above_maximum", severity=Severity.CRITICAL
            ),
            reading_factory.alert(reading, severity=Severity.HIGH),
        ]

        job = NotificationJob.aggregate(alerts)

        assert job.severity is Severity.CRITICAL
        assert job.violation_count == 3
        assert job.parameters_affected == ["ph", "tds"]
        assert job.reading_id == reading.id
        assert "plant-7" in job.title

    def test_aggregate_empty(self):
        """Test aggregating nothing is an error."""
        with pytest.raises(ValueError):
            NotificationJob.aggregate([])


class TestIncompleteReport:
    """Tests for IncompleteReport."""

    def test_counts(self, reading_factory):
        """Test computed count fields."""
        report = IncompleteReport(
            cutoff=datetime(2026, 1, 1, tzinfo=UTC),
            entries=[reading_factory.pending("inlet")],
        )

        assert report.count == 1
        assert report.has_incomplete is True
        assert IncompleteReport(cutoff=EPOCH).has_incomplete is False
