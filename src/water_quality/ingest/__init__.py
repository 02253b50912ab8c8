"""
Ingestion and reconciliation for the water quality pipeline.

1. IngestBuffer validates and buffers half-readings
2. Reconciler pairs the latest inlet/outlet and claims them atomically
3. QualityScorer and AlertDispatcher run on each claimed pair
4. BufferJanitor removes expired, unmatched entries out-of-band

Example:
    >>> from water_quality.ingest import ReadingPipeline
    >>> from water_quality.storage import InMemoryStorage
    >>>
    >>> pipeline = ReadingPipeline(InMemoryStorage())
    >>> pipeline.submit_reading("plant-7", "inlet", "dev-1", params).merged
    False
"""

from water_quality.ingest.buffer import IngestBuffer, validate_submission
from water_quality.ingest.janitor import BufferJanitor, IncompleteReadingMonitor
from water_quality.ingest.pipeline import PipelineStats, ReadingPipeline
from water_quality.ingest.reconciler import MergeCandidates, MergeOutcome, Reconciler

__all__ = [
    "BufferJanitor",
    "IncompleteReadingMonitor",
    "IngestBuffer",
    "MergeCandidates",
    "MergeOutcome",
    "PipelineStats",
    "ReadingPipeline",
    "Reconciler",
    "validate_submission",
]
