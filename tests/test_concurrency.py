"""
Concurrent merge tests.

Many threads race to reconcile the same facility. Whatever the
interleaving, each pending entry may end up in at most one reading.
"""

import threading
from collections import Counter
from datetime import timedelta

import pytest

from water_quality.alerts import AlertDispatcher
from water_quality.exceptions import MergeRetryExhausted
from water_quality.ingest import IngestBuffer, ReadingPipeline, Reconciler
from water_quality.quality import QualityScorer

from tests.fixtures.doubles import RecordingGateway

pytestmark = pytest.mark.concurrency

THREADS = 8


def run_threads(target, count=THREADS):
    barrier = threading.Barrier(count)
    errors = []

    def worker(i):
        barrier.wait()
        try:
            target(i)
        except MergeRetryExhausted:
            pass
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return errors


class TestConcurrentClaims:
    """Tests for racing reconcilers on one store."""

    def test_one_pair_one_reading(self, store, clock, reading_factory):
        """Test N reconcilers racing over one pair produce exactly one reading."""
        buffer = IngestBuffer(store, clock=clock)
        buffer.store(reading_factory.submission("inlet"))
        buffer.store(reading_factory.submission("outlet"))

        results = []

        def merge(_):
            reconciler = Reconciler(
                store,
                QualityScorer(),
                AlertDispatcher(store, clock=clock),
                merge_window=timedelta(minutes=5),
                max_attempts=THREADS,
                clock=clock,
            )
            results.append(reconciler.try_merge("plant-7"))

        errors = run_threads(merge)

        assert errors == []
        readings = [r for r in results if r is not None]
        assert len(readings) == 1
        assert len(store.list_readings()) == 1

    def test_entries_claimed_at_most_once(self, store, clock, reading_factory):
        """Test no entry id appears in two readings under contention."""
        buffer = IngestBuffer(store, clock=clock)
        for _ in range(5):
            buffer.store(reading_factory.submission("inlet"))
            buffer.store(reading_factory.submission("outlet"))

        reconciler = Reconciler(
            store,
            QualityScorer(),
            AlertDispatcher(store, clock=clock),
            max_attempts=THREADS * 2,
            clock=clock,
        )

        def merge(_):
            while reconciler.try_merge("plant-7") is not None:
                pass

        errors = run_threads(merge)

        assert errors == []
        readings = store.list_readings(limit=100)
        used = Counter(eid for r in readings for eid in r.entry_ids)
        assert len(readings) == 5
        assert all(count == 1 for count in used.values())
        assert store.buffer_status("plant-7").unmerged == 0


class TestConcurrentSubmissions:
    """Tests for concurrent submit_reading calls."""

    def test_simultaneous_halves(self, store, clock, reading_factory):
        """Test an inlet and outlet submitted at once produce one reading."""
        gateway = RecordingGateway()
        payloads = [reading_factory.submission("inlet"), reading_factory.submission("outlet")]
        results = []

        with ReadingPipeline(store, gateway=gateway, clock=clock) as pipeline:

            def submit(i):
                results.append(pipeline.submit_reading(**payloads[i]))

            errors = run_threads(submit, count=2)

        assert errors == []
        readings = store.list_readings()
        assert len(readings) == 1
        assert any(r.merged for r in results)
        assert {r.entry_id for r in results} == set(readings[0].entry_ids)
        for result in results:
            # A call returning before its partner arrived reports waiting
            if result.merged:
                assert result.reading_id == readings[0].id
            else:
                assert result.waiting_for is not None
