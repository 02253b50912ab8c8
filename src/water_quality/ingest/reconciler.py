"""
Reconciler: pairs the latest inlet and outlet entries of a facility.

One merge attempt is a match-and-claim cycle:

1. Query unmerged entries received strictly inside the merge window
2. Pick the latest entry per side (receipt time, then write sequence)
3. Claim both with a single all-or-nothing compare-and-swap

A lost claim means a concurrent caller took at least one of the entries,
so the whole cycle is repeated against fresh data. The claimed pair is then
scored, persisted and handed to the alert dispatcher.

If persisting the reading fails, the claim is released so that the entries
can be paired again by a later submission or a retry.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta

import structlog

from water_quality.alerts.dispatcher import AlertDispatcher
from water_quality.exceptions import (
    ClaimConflict,
    DownstreamWriteFailure,
    MergeRetryExhausted,
    StoreError,
)
from water_quality.models import Alert, CompleteReading, DeviceIds, EntryState, PendingEntry, Side
from water_quality.quality.scorer import QualityScorer
from water_quality.sensors.index import derive_bindings, merge_sensor_mappings
from water_quality.storage.protocol import ReadingStore
from water_quality.utils.time import Clock, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


def _new_reading_id() -> str:
    return uuid.uuid4().hex


@dataclass
class MergeCandidates:
    """The latest unmerged entry on each side of a facility."""

    inlet: PendingEntry
    outlet: PendingEntry

    @property
    def entry_ids(self) -> tuple[str, str]:
        return (self.inlet.id or "", self.outlet.id or "")


@dataclass
class MergeOutcome:
    """A persisted reading and the alerts created for it."""

    reading: CompleteReading
    alerts: list[Alert] = field(default_factory=list)
    notified: bool = False
    attempts: int = 1


class Reconciler:
    """Stateless pairing of pending entries into complete readings.

    All shared state lives in the store, so any number of reconcilers may
    run against the same store concurrently.

    Args:
        store: Shared buffer and output store
        scorer: Quality scorer
        dispatcher: Alert dispatcher
        merge_window: Maximum entry age eligible for pairing
        max_attempts: Match-and-claim cycles before MergeRetryExhausted
        clock: Time source
        id_factory: Reading id generator
    """

    def __init__(
        self,
        store: ReadingStore,
        scorer: QualityScorer,
        dispatcher: AlertDispatcher,
        *,
        merge_window: timedelta = timedelta(minutes=5),
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Clock = utcnow,
        id_factory: Callable[[], str] = _new_reading_id,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.store = store
        self.scorer = scorer
        self.dispatcher = dispatcher
        self.merge_window = merge_window
        self.max_attempts = max_attempts
        self._clock = clock
        self._id_factory = id_factory

    def try_merge(self, facility_id: str) -> CompleteReading | None:
        """Pair and persist one reading for a facility.

        Returns:
            The new CompleteReading, or None if either side has no candidate

        Raises:
            MergeRetryExhausted: Every claim attempt lost to a concurrent merge
            DownstreamWriteFailure: The reading could not be persisted
        """
        outcome = self.reconcile(facility_id)
        return outcome.reading if outcome else None

    def reconcile(self, facility_id: str) -> MergeOutcome | None:
        """Like try_merge(), but also report the alerts that were created."""
        log = logger.bind(facility_id=facility_id)

        for attempt in range(1, self.max_attempts + 1):
            candidates = self.find_candidates(facility_id)
            if candidates is None:
                log.debug("no_match_yet", attempt=attempt)
                return None

            reading_id = self._id_factory()
            try:
                self._claim(candidates, reading_id)
            except ClaimConflict as e:
                log.info("claim_conflict", attempt=attempt, entry_ids=list(e.entry_ids))
                continue

            log.info(
                "merge_claimed",
                attempt=attempt,
                reading_id=reading_id,
                inlet_entry_id=candidates.inlet.id,
                outlet_entry_id=candidates.outlet.id,
            )
            outcome = self._complete(candidates, reading_id)
            outcome.attempts = attempt
            return outcome

        log.warning("merge_retry_exhausted", attempts=self.max_attempts)
        raise MergeRetryExhausted(
            f"Could not claim a pair for {facility_id} after {self.max_attempts} attempts",
            facility_id=facility_id,
            attempts=self.max_attempts,
        )

    def find_candidates(self, facility_id: str) -> MergeCandidates | None:
        """Select the latest unmerged inlet and outlet inside the merge window."""
        since = self._clock() - self.merge_window
        entries = self.store.query_pending(facility_id, since=since)

        inlets = [e for e in entries if e.side is Side.INLET]
        outlets = [e for e in entries if e.side is Side.OUTLET]
        if not inlets or not outlets:
            return None

        return MergeCandidates(
            inlet=max(inlets, key=lambda e: e.recency_key),
            outlet=max(outlets, key=lambda e: e.recency_key),
        )

    def _claim(self, candidates: MergeCandidates, reading_id: str) -> None:
        claimed = self.store.conditional_update(
            candidates.entry_ids,
            EntryState.unmerged(),
            EntryState.claimed(reading_id),
        )
        if not claimed:
            raise ClaimConflict(
                "Entries were claimed by a concurrent merge",
                entry_ids=candidates.entry_ids,
            )

    def _release(self, candidates: MergeCandidates, reading_id: str) -> None:
        try:
            released = self.store.conditional_update(
                candidates.entry_ids,
                EntryState.claimed(reading_id),
                EntryState.unmerged(),
            )
        except StoreError as e:
            logger.error(
                "claim_release_failed",
                reading_id=reading_id,
                entry_ids=list(candidates.entry_ids),
                error=str(e),
            )
            return

        logger.info(
            "claim_released",
            reading_id=reading_id,
            entry_ids=list(candidates.entry_ids),
            released=released,
        )

    def _complete(self, candidates: MergeCandidates, reading_id: str) -> MergeOutcome:
        inlet, outlet = candidates.inlet, candidates.outlet
        analysis = self.scorer.analyze(inlet.parameters, outlet.parameters)

        reading = CompleteReading(
            id=reading_id,
            facility_id=outlet.facility_id,
            inlet=inlet.parameters,
            outlet=outlet.parameters,
            device_ids=DeviceIds(inlet=inlet.device_id, outlet=outlet.device_id),
            sensor_mapping=merge_sensor_mappings(inlet.sensor_mapping, outlet.sensor_mapping),
            observed_at=outlet.received_at,
            quality_analysis=analysis,
            entry_ids=candidates.entry_ids,
            created_at=self._clock(),
        )
        bindings = derive_bindings(
            inlet, outlet, reading_id=reading_id, updated_at=reading.observed_at
        )

        try:
            self.store.insert_reading(reading, bindings)
        except StoreError as e:
            self._release(candidates, reading_id)
            raise DownstreamWriteFailure(
                f"Could not persist reading for {reading.facility_id}: {e}",
                facility_id=reading.facility_id,
                entry_ids=candidates.entry_ids,
            ) from e

        worst = analysis.highest_severity
        logger.info(
            "reading_merged",
            facility_id=reading.facility_id,
            reading_id=reading.id,
            score=analysis.score,
            status=analysis.status.value,
            violations=len(analysis.violations),
            highest_severity=worst.value if worst is not None else None,
        )

        alerts = self.dispatcher.process(reading.id, reading.facility_id, analysis.violations)
        notified = self.dispatcher.notify(alerts)

        return MergeOutcome(reading=reading, alerts=alerts, notified=notified)
