"""
Tests for utility modules.
"""

from __future__ import annotations

import io
import json
from datetime import UTC, datetime, timedelta, timezone

import pytest

from water_quality.config.settings import LoggingSettings
from water_quality.utils.logging import (
    bind_context,
    clear_context,
    configure_from_settings,
    get_logger,
    setup_logging,
)
from water_quality.utils.time import (
    ensure_utc,
    from_db_timestamp,
    to_db_timestamp,
    utcnow,
)


class TestTimestamps:
    """Tests for timestamp helpers."""

    def test_utcnow_is_aware(self):
        """Test utcnow() returns an aware UTC datetime."""
        now = utcnow()

        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_ensure_utc_naive(self):
        """Test naive datetimes are assumed to be UTC."""
        dt = ensure_utc(datetime(2026, 1, 1, 12, 0))

        assert dt == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def test_ensure_utc_converts(self):
        """Test other offsets are converted to UTC."""
        plus_two = timezone(timedelta(hours=2))

        dt = ensure_utc(datetime(2026, 1, 1, 14, 0, tzinfo=plus_two))

        assert dt.hour == 12
        assert dt.utcoffset() == timedelta(0)

    def test_db_format_fixed_width(self):
        """Test stored timestamps have a fixed width."""
        a = to_db_timestamp(datetime(2026, 1, 1, tzinfo=UTC))
        b = to_db_timestamp(datetime(2026, 12, 31, 23, 59, 59, 999999, tzinfo=UTC))

        assert a == "2026-01-01T00:00:00.000000Z"
        assert len(a) == len(b)

    def test_db_order_matches_time_order(self):
        """Test lexical order of stored timestamps is chronological."""
        base = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)
        times = [base + timedelta(microseconds=n) for n in (0, 1, 999_999, 1_000_000)]

        stored = [to_db_timestamp(t) for t in times]

        assert stored == sorted(stored)

    def test_round_trip(self):
        """Test a timestamp survives storage."""
        dt = datetime(2026, 10, 17, 12, 34, 56, 789, tzinfo=UTC)

        assert from_db_timestamp(to_db_timestamp(dt)) == dt


class TestLogging:
    """Tests for logging setup."""

    def test_json_output(self):
        """Test JSON lines carry the event and bound keys."""
        stream = io.StringIO()
        setup_logging(level="INFO", format="json", stream=stream)

        get_logger("tests.json").info("entry_buffered", facility_id="plant-7")

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["event"] == "entry_buffered"
        assert record["facility_id"] == "plant-7"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filtering(self):
        """Test events below the configured level are dropped."""
        stream = io.StringIO()
        setup_logging(level="WARNING", format="json", stream=stream)

        get_logger("tests.level").info("quiet")

        assert stream.getvalue() == ""

    def test_context_binding(self):
        """Test bound context variables are merged into events."""
        stream = io.StringIO()
        setup_logging(level="INFO", format="json", include_timestamp=False, stream=stream)

        bind_context(facility_id="plant-9")
        get_logger("tests.context").info("merge_claimed")
        clear_context()
        get_logger("tests.context").info("after_clear")

        lines = [json.loads(line) for line in stream.getvalue().strip().splitlines()]
        assert lines[0]["facility_id"] == "plant-9"
        assert "facility_id" not in lines[1]
        assert "timestamp" not in lines[0]

    def test_console_format(self):
        """Test the console renderer writes plain text to the stream."""
        stream = io.StringIO()
        setup_logging(level="INFO", format="console", stream=stream)

        get_logger("tests.console").info("sweep_done", deleted=3)

        assert "sweep_done" in stream.getvalue()
        assert "deleted" in stream.getvalue()

    @pytest.mark.parametrize("verbose,level", [(False, "WARNING"), (True, "DEBUG")])
    def test_configure_from_settings(self, verbose, level):
        """Test --verbose forces DEBUG."""
        import logging

        configure_from_settings(LoggingSettings(level="WARNING"), verbose=verbose)

        assert logging.getLogger().level == getattr(logging, level)
