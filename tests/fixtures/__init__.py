"""
Test fixtures for the water quality pipeline.

This module provides:
- ReadingFactory: Create submissions, entries and readings with sensible defaults
- Test doubles: FakeClock, recording gateway/channel, failing stores
"""

from tests.fixtures.doubles import (
    FailingReadingStore,
    FakeClock,
    FlakyAlertStore,
    HoldingGateway,
    LosingClaimStore,
    RacingClaimStore,
    RecordingChannel,
    RecordingGateway,
)
from tests.fixtures.factories import EPOCH, INLET_PARAMS, OUTLET_PARAMS, ReadingFactory

__all__ = [
    "EPOCH",
    "INLET_PARAMS",
    "OUTLET_PARAMS",
    "FailingReadingStore",
    "FakeClock",
    "FlakyAlertStore",
    "HoldingGateway",
    "LosingClaimStore",
    "RacingClaimStore",
    "ReadingFactory",
    "RecordingChannel",
    "RecordingGateway",
]
