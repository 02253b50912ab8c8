"""
Buffer maintenance.

- BufferJanitor: Deletes expired, never-matched entries
- IncompleteReadingMonitor: Reports old unmatched entries without touching them
"""

from __future__ import annotations

import threading
from datetime import timedelta

import structlog

from water_quality.models import EntryState, IncompleteReport
from water_quality.storage.protocol import ReadingStore
from water_quality.utils.time import Clock, utcnow

logger = structlog.get_logger(__name__)


class BufferJanitor:
    """Removes pending entries whose expiry has passed and that were never merged.

    Deletion is conditional on the entry still being unmerged, so a sweep
    running alongside the reconciler can never remove a claimed entry.
    """

    def __init__(self, store: ReadingStore, *, clock: Clock = utcnow):
        self.store = store
        self._clock = clock

    def sweep(self) -> int:
        """Delete expired unmerged entries.

        Returns:
            Number of entries deleted
        """
        now = self._clock()
        expired = [e for e in self.store.find_stale(expires_before=now) if e.is_expired(now)]
        if not expired:
            logger.debug("buffer_sweep_noop")
            return 0

        deleted = self.store.batch_delete(
            [e.id for e in expired if e.id],
            expected=EntryState.unmerged(),
        )
        logger.info("buffer_swept", candidates=len(expired), deleted=deleted)
        return deleted

    def run_periodic(self, interval_seconds: float, stop_event: threading.Event) -> int:
        """Sweep every ``interval_seconds`` until ``stop_event`` is set.

        Returns:
            Total entries deleted
        """
        total = 0
        while not stop_event.is_set():
            total += self.sweep()
            stop_event.wait(interval_seconds)
        return total


class IncompleteReadingMonitor:
    """Reports unmatched entries older than a reporting window.

    This is reporting-only and independent of the janitor. Entries already
    swept are simply absent from the report.
    """

    def __init__(
        self,
        store: ReadingStore,
        *,
        incomplete_after: timedelta = timedelta(minutes=10),
        clock: Clock = utcnow,
    ):
        self.store = store
        self.incomplete_after = incomplete_after
        self._clock = clock

    def check(self, facility_id: str | None = None) -> IncompleteReport:
        cutoff = self._clock() - self.incomplete_after
        entries = self.store.find_stale(facility_id=facility_id, received_before=cutoff)

        report = IncompleteReport(cutoff=cutoff, entries=entries)
        if report.has_incomplete:
            logger.warning(
                "incomplete_readings_detected",
                facility_id=facility_id,
                count=report.count,
                facilities=sorted({e.facility_id for e in entries}),
            )
        return report
