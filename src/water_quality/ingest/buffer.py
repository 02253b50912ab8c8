"""
Ingest buffer: validates half-readings and writes them as pending entries.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any

import pydantic
import structlog

from water_quality.exceptions import ValidationError
from water_quality.models import PendingEntry, Submission
from water_quality.storage.protocol import ReadingStore
from water_quality.utils.time import Clock, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_MERGE_WINDOW = timedelta(minutes=5)


def validate_submission(payload: Submission | Mapping[str, Any]) -> Submission:
    """Validate a raw payload.

    Raises:
        ValidationError: With one message per offending field
    """
    if isinstance(payload, Submission):
        return payload

    try:
        return Submission.model_validate(payload)
    except pydantic.ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            f"Invalid submission: {'; '.join(errors)}",
            errors=errors,
        ) from e


class IngestBuffer:
    """Writes validated half-readings to the store.

    Example:
        >>> buffer = IngestBuffer(store)
        >>> entry_id = buffer.store({
        ...     "facility_id": "plant-7",
        ...     "side": "outlet",
        ...     "device_id": "dev-2",
        ...     "parameters": {"ph": 7.8, "tds": 320, "turbidity": 8, "temperature": 29},
        ... })
    """

    def __init__(
        self,
        store: ReadingStore,
        *,
        merge_window: timedelta = DEFAULT_MERGE_WINDOW,
        clock: Clock = utcnow,
    ):
        self._store = store
        self.merge_window = merge_window
        self._clock = clock

    def store(self, payload: Submission | Mapping[str, Any]) -> str:
        """Validate and buffer one half-reading.

        Args:
            payload: Submission model or equivalent mapping

        Returns:
            The new entry's id

        Raises:
            ValidationError: If required fields are missing or malformed
        """
        return self.store_entry(payload).id or ""

    def store_entry(self, payload: Submission | Mapping[str, Any]) -> PendingEntry:
        """Like store(), but return the stored PendingEntry."""
        submission = validate_submission(payload)
        received_at = self._clock()

        entry = self._store.insert_pending(
            PendingEntry(
                facility_id=submission.facility_id,
                side=submission.side,
                device_id=submission.device_id,
                parameters=submission.parameters,
                sensor_mapping=submission.sensor_mapping,
                received_at=received_at,
                expires_at=received_at + self.merge_window,
            )
        )

        logger.info(
            "entry_buffered",
            facility_id=entry.facility_id,
            side=entry.side.value,
            device_id=entry.device_id,
            entry_id=entry.id,
        )
        return entry
