"""
Pytest configuration and shared fixtures for the water quality pipeline.

This module provides:
- Reading factories for generating test data
- A controllable clock
- Temporary database and in-memory store fixtures
- A fully wired pipeline with a recording notification gateway

Example usage in tests:
    def test_something(pipeline, reading_factory):
        pipeline.submit_reading(**reading_factory.submission("inlet"))
        assert pipeline.get_buffer_status("plant-7").unmerged == 1
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from water_quality.config import Settings
from water_quality.ingest import ReadingPipeline
from water_quality.storage import InMemoryStorage, SQLiteStorage

from tests.fixtures.doubles import FakeClock, RecordingGateway
from tests.fixtures.factories import ReadingFactory

# ============================================================================
# FACTORY FIXTURES
# ============================================================================


@pytest.fixture
def reading_factory() -> type[ReadingFactory]:
    """Provide a fresh ReadingFactory with counter reset.

    Returns:
        ReadingFactory class with counter at 0
    """
    ReadingFactory.reset()
    return ReadingFactory


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock frozen at the factory epoch."""
    return FakeClock()


# ============================================================================
# STORAGE FIXTURES
# ============================================================================


@pytest.fixture
def temp_db() -> Iterator[SQLiteStorage]:
    """Provide a temporary SQLite database.

    Creates a fresh database in a temp directory, initializes schema,
    and cleans up after test.

    Yields:
        Initialized SQLiteStorage instance
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = Path(temp_dir) / "test.db"
        storage = SQLiteStorage(db_path)
        storage.initialize()
        yield storage
        storage.close()


@pytest.fixture
def memory_store() -> InMemoryStorage:
    """Provide an empty in-memory store."""
    return InMemoryStorage()


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest) -> Iterator[InMemoryStorage | SQLiteStorage]:
    """Run a test once against each storage backend."""
    if request.param == "memory":
        yield InMemoryStorage()
        return

    with tempfile.TemporaryDirectory() as temp_dir:
        storage = SQLiteStorage(Path(temp_dir) / "test.db")
        storage.initialize()
        yield storage
        storage.close()


# ============================================================================
# PIPELINE FIXTURES
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Provide default settings."""
    return Settings()


@pytest.fixture
def gateway() -> RecordingGateway:
    """Provide a notification gateway that records every job."""
    return RecordingGateway()


@pytest.fixture
def pipeline(
    store: InMemoryStorage | SQLiteStorage,
    settings: Settings,
    gateway: RecordingGateway,
    clock: FakeClock,
) -> Iterator[ReadingPipeline]:
    """Provide a started pipeline over each storage backend.

    Yields:
        ReadingPipeline with the recording gateway and fake clock
    """
    with ReadingPipeline(store, settings=settings, gateway=gateway, clock=clock) as p:
        yield p


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture
def temp_config_dir() -> Iterator[Path]:
    """Provide a temporary configuration directory.

    Yields:
        Path to temporary config directory
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        config_dir = Path(temp_dir) / "config"
        config_dir.mkdir()
        yield config_dir


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo logging configuration made by a test (CLI tests configure it)."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: mark test as slow")
    config.addinivalue_line("markers", "concurrency: mark as concurrent-claim test")
