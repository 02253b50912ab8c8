"""
Test doubles: a controllable clock, recording gateway and channel, and
stores that fail on demand.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import datetime, timedelta

from water_quality.exceptions import StoreError
from water_quality.models import EntryState, GatewayResult, NotificationJob, PendingEntry, Side
from water_quality.storage import InMemoryStorage

from tests.fixtures.factories import EPOCH


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingGateway:
    """Gateway that keeps every job it is asked to send."""

    name = "recording"

    def __init__(self, *, fail: bool = False):
        self.jobs: list[NotificationJob] = []
        self.fail = fail
        self._lock = threading.Lock()

    def send_aggregated(self, job: NotificationJob) -> GatewayResult:
        with self._lock:
            self.jobs.append(job)
        if self.fail:
            raise RuntimeError("gateway down")
        return GatewayResult(success=True, per_channel={self.name: True})


class HoldingGateway(RecordingGateway):
    """Recording gateway whose sends block until released."""

    name = "holding"

    def __init__(self) -> None:
        super().__init__()
        self.received = threading.Event()
        self.release = threading.Event()

    def send_aggregated(self, job: NotificationJob) -> GatewayResult:
        self.received.set()
        self.release.wait(timeout=5.0)
        return super().send_aggregated(job)


class RecordingChannel:
    """Synchronous notification channel for dispatcher tests."""

    def __init__(self, *, accept: bool = True, error: Exception | None = None):
        self.jobs: list[NotificationJob] = []
        self.accept = accept
        self.error = error

    def enqueue(self, job: NotificationJob) -> bool:
        if self.error is not None:
            raise self.error
        self.jobs.append(job)
        return self.accept


class LosingClaimStore(InMemoryStorage):
    """Every claim attempt loses, as if a concurrent merge always won."""

    def __init__(self) -> None:
        super().__init__()
        self.claim_attempts = 0

    def conditional_update(
        self,
        entry_ids: Sequence[str],
        expected: EntryState,
        new: EntryState,
    ) -> bool:
        if new.merged:
            self.claim_attempts += 1
            return False
        return super().conditional_update(entry_ids, expected, new)


class RacingClaimStore(InMemoryStorage):
    """Another submission claims the pair as soon as an outlet half lands.

    The claiming reading is never persisted, as if that submission were
    still scoring when this one looks at its entry.
    """

    def __init__(self, reading_id: str = "concurrent-reading"):
        super().__init__()
        self.reading_id = reading_id

    def insert_pending(self, entry: PendingEntry) -> PendingEntry:
        stored = super().insert_pending(entry)
        if stored.side is Side.OUTLET:
            since = stored.received_at - timedelta(days=1)
            ids = [e.id or "" for e in self.query_pending(stored.facility_id, since=since)]
            self.conditional_update(ids, EntryState.unmerged(), EntryState.claimed(self.reading_id))
        return stored


class FailingReadingStore(InMemoryStorage):
    """insert_reading always fails."""

    def insert_reading(self, reading, sensor_bindings=()):  # type: ignore[no-untyped-def]
        raise StoreError("disk full", operation="insert_reading")


class FlakyAlertStore(InMemoryStorage):
    """insert_alert fails for the listed parameters."""

    def __init__(self, failing_parameters: set[str]):
        super().__init__()
        self.failing_parameters = failing_parameters

    def insert_alert(self, alert):  # type: ignore[no-untyped-def]
        if alert.parameter in self.failing_parameters:
            raise StoreError(f"cannot write {alert.parameter} alert", operation="insert_alert")
        super().insert_alert(alert)
