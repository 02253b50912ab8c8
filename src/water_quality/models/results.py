"""Return types of the pipeline's external operations."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from water_quality.models.quality import QualityAnalysis
from water_quality.models.readings import PendingEntry, Side


class SubmissionResult(BaseModel):
    """Outcome of ``submit_reading``.

    Either the submission was paired and scored (``merged=True``) or it is
    buffered and ``waiting_for`` names the missing side.
    """

    model_config = ConfigDict(extra="ignore")

    merged: bool
    entry_id: str
    reading_id: str | None = None
    quality_analysis: QualityAnalysis | None = None
    alerts_created: int = 0
    waiting_for: Side | None = None
    message: str = ""


class SweepResult(BaseModel):
    """Outcome of a buffer sweep."""

    model_config = ConfigDict(extra="ignore")

    deleted: int = Field(default=0, ge=0)


class BufferStatus(BaseModel):
    """Read-only snapshot of the pending-entry buffer."""

    model_config = ConfigDict(extra="ignore")

    facility_id: str | None = None
    total: int = 0
    merged: int = 0
    unmerged: int = 0
    by_side: dict[str, int] = Field(
        default_factory=lambda: {Side.INLET.value: 0, Side.OUTLET.value: 0}
    )


class IncompleteReport(BaseModel):
    """Unmatched entries older than the reporting window."""

    model_config = ConfigDict(extra="ignore")

    cutoff: datetime
    entries: list[PendingEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def count(self) -> int:
        return len(self.entries)

    @computed_field  # type: ignore[misc]
    @property
    def has_incomplete(self) -> bool:
        return bool(self.entries)
