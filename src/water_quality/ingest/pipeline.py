"""
Reading pipeline: the operations exposed to the surrounding system.

Coordinates the flow of one submission:

1. Validate and buffer the half-reading
2. Immediately attempt to reconcile the facility
3. If paired: score, persist, create alerts, enqueue one notification

plus the maintenance and diagnostic calls (sweep, buffer status,
incomplete-reading report).

Example:
    >>> from water_quality.ingest import ReadingPipeline
    >>> from water_quality.storage import SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/water_quality.db")
    >>> with ReadingPipeline(storage) as pipeline:
    ...     result = pipeline.submit_reading(
    ...         "plant-7", "inlet", "dev-1",
    ...         {"ph": 7.2, "tds": 450, "turbidity": 25, "temperature": 28},
    ...     )
    ...     print(result.waiting_for.value)
    outlet
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

import structlog

from water_quality.alerts.dispatcher import AlertDispatcher
from water_quality.alerts.gateway import NotificationGateway, build_gateway
from water_quality.alerts.queue import NotificationQueue
from water_quality.config.settings import Settings
from water_quality.exceptions import DownstreamWriteFailure, MergeRetryExhausted, ValidationError
from water_quality.ingest.buffer import IngestBuffer
from water_quality.ingest.janitor import BufferJanitor, IncompleteReadingMonitor
from water_quality.ingest.reconciler import Reconciler
from water_quality.models import (
    BufferStatus,
    IncompleteReport,
    PendingEntry,
    Side,
    SubmissionResult,
    SweepResult,
    WaterParameters,
)
from water_quality.quality.scorer import QualityScorer
from water_quality.sensors.index import SensorIndex, SensorValue
from water_quality.storage import open_storage
from water_quality.storage.protocol import ReadingStore
from water_quality.utils.time import Clock, utcnow

logger = structlog.get_logger(__name__)


@dataclass
class PipelineStats:
    """Counters since the pipeline was created."""

    submissions: int = 0
    rejected: int = 0
    buffered: int = 0
    merged: int = 0
    alerts_created: int = 0
    notifications_enqueued: int = 0
    retries_exhausted: int = 0
    downstream_failures: int = 0

    @property
    def merge_rate(self) -> float:
        """Percentage of accepted submissions that completed a reading."""
        accepted = self.submissions - self.rejected
        return (self.merged / accepted * 100) if accepted > 0 else 0.0


class ReadingPipeline:
    """Facade over buffer, reconciler, scorer, dispatcher and janitor.

    Args:
        store: Shared store (the pipeline does not own it unless built
            with from_settings())
        settings: Settings (defaults when omitted)
        gateway: Notification gateway (built from settings when omitted)
        clock: Time source shared by every component

    Notification workers start with start() (or ``with``) or with the first
    queued job; close() delivers whatever is still queued.
    """

    def __init__(
        self,
        store: ReadingStore,
        *,
        settings: Settings | None = None,
        gateway: NotificationGateway | None = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings or Settings()
        self.store = store
        self._clock = clock
        self._owns_store = False
        self._stats = PipelineStats()
        self._stats_lock = threading.Lock()

        buffer_cfg = self.settings.buffer
        notify_cfg = self.settings.notifications

        self.notifications: NotificationQueue | None = None
        if notify_cfg.enabled:
            self.notifications = NotificationQueue(
                gateway or build_gateway(notify_cfg),
                max_queue_size=notify_cfg.queue_size,
                num_workers=notify_cfg.workers,
            )

        self.buffer = IngestBuffer(store, merge_window=buffer_cfg.merge_window, clock=clock)
        self.scorer = QualityScorer(self.settings.thresholds)
        self.dispatcher = AlertDispatcher(store, self.notifications, clock=clock)
        self.reconciler = Reconciler(
            store,
            self.scorer,
            self.dispatcher,
            merge_window=buffer_cfg.merge_window,
            max_attempts=buffer_cfg.max_claim_attempts,
            clock=clock,
        )
        self.janitor = BufferJanitor(store, clock=clock)
        self.monitor = IncompleteReadingMonitor(
            store, incomplete_after=buffer_cfg.incomplete_after, clock=clock
        )
        self.sensors = SensorIndex(store)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> ReadingPipeline:
        """Build a pipeline over the SQLite database named in the settings."""
        pipeline = cls(open_storage(settings), settings=settings, **kwargs)
        pipeline._owns_store = True
        return pipeline

    def start(self) -> None:
        """Start notification delivery workers."""
        if self.notifications is not None:
            self.notifications.start()

    def close(self) -> None:
        """Drain notifications and release owned resources."""
        if self.notifications is not None:
            self.notifications.stop(drain=True)
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> ReadingPipeline:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def stats(self) -> PipelineStats:
        with self._stats_lock:
            return PipelineStats(**asdict(self._stats))

    def _count(self, **increments: int) -> None:
        with self._stats_lock:
            for name, value in increments.items():
                setattr(self._stats, name, getattr(self._stats, name) + value)

    # ------------------------------------------------------------------
    # External operations
    # ------------------------------------------------------------------

    def submit_reading(
        self,
        facility_id: str,
        side: Side | str,
        device_id: str,
        parameters: WaterParameters | Mapping[str, Any],
        sensor_mapping: Mapping[str, str] | None = None,
    ) -> SubmissionResult:
        """Buffer a half-reading and try to pair it.

        Returns:
            SubmissionResult: ``merged=True`` with the reading and its
            analysis, or ``merged=False`` with ``waiting_for`` naming the
            missing side

        Raises:
            ValidationError: Malformed submission (nothing was buffered)
            MergeRetryExhausted: Claim retries ran out (entry stays buffered)
            DownstreamWriteFailure: Reading could not be persisted (entries
                stay buffered and unclaimed)
        """
        self._count(submissions=1)
        payload = {
            "facility_id": facility_id,
            "side": side,
            "device_id": device_id,
            "parameters": parameters,
            "sensor_mapping": dict(sensor_mapping) if sensor_mapping else None,
        }

        try:
            entry = self.buffer.store_entry(payload)
        except ValidationError:
            self._count(rejected=1)
            raise

        try:
            outcome = self.reconciler.reconcile(entry.facility_id)
        except MergeRetryExhausted:
            self._count(buffered=1, retries_exhausted=1)
            raise
        except DownstreamWriteFailure:
            self._count(buffered=1, downstream_failures=1)
            raise

        if outcome is not None:
            self._count(
                merged=1,
                alerts_created=len(outcome.alerts),
                notifications_enqueued=int(outcome.notified),
            )
            # A tie can pair other entries; this one then stays buffered
            if entry.id in outcome.reading.entry_ids:
                analysis = outcome.reading.quality_analysis
                return SubmissionResult(
                    merged=True,
                    entry_id=entry.id or "",
                    reading_id=outcome.reading.id,
                    quality_analysis=analysis,
                    alerts_created=len(outcome.alerts),
                    message=f"Reading complete: score {analysis.score} ({analysis.status.value})",
                )

        return self._buffered_result(entry)

    def _buffered_result(self, entry: PendingEntry) -> SubmissionResult:
        """Describe an entry this call did not merge itself.

        A concurrent submission may already have claimed it, in which case
        the result points at that reading. The claimer may not have
        persisted the reading yet; the analysis is then left empty.
        """
        current = self.store.get_pending(entry.id or "")
        if current is not None and current.merged and current.reading_id:
            reading = self.store.get_reading(current.reading_id)
            return SubmissionResult(
                merged=True,
                entry_id=entry.id or "",
                reading_id=current.reading_id,
                quality_analysis=reading.quality_analysis if reading is not None else None,
                message="Reading completed by a concurrent submission",
            )

        self._count(buffered=1)
        waiting_for = entry.side.opposite
        return SubmissionResult(
            merged=False,
            entry_id=entry.id or "",
            waiting_for=waiting_for,
            message=f"Buffered, waiting for {waiting_for.value} reading",
        )

    def sweep_expired_buffer(self) -> SweepResult:
        """Delete expired, never-merged entries. Idempotent."""
        return SweepResult(deleted=self.janitor.sweep())

    def get_buffer_status(self, facility_id: str | None = None) -> BufferStatus:
        """Read-only buffer counts, optionally for one facility."""
        return self.store.buffer_status(facility_id)

    def check_incomplete_readings(self, facility_id: str | None = None) -> IncompleteReport:
        """Report unmatched entries older than the incomplete-reading window."""
        return self.monitor.check(facility_id)

    def latest_sensor_value(self, sensor_id: str) -> SensorValue | None:
        """Newest value a physical sensor contributed to a reading."""
        return self.sensors.latest_value(sensor_id)
