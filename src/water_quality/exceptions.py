"""Exception hierarchy for the water quality pipeline."""

from __future__ import annotations


class WaterQualityError(Exception):
    """Base exception for all pipeline errors."""


class ConfigurationError(WaterQualityError):
    """Invalid or unreadable configuration."""


class ValidationError(WaterQualityError):
    """Submission rejected before buffering.

    The caller must fix the payload and resubmit.
    """

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class StoreError(WaterQualityError):
    """The backing store failed to complete an operation."""

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class ReconciliationError(WaterQualityError):
    """Base class for failures while pairing inlet and outlet entries."""


class ClaimConflict(ReconciliationError):
    """Another caller claimed one of the selected entries first."""

    def __init__(self, message: str, *, entry_ids: tuple[str, ...] = ()) -> None:
        self.entry_ids = entry_ids
        super().__init__(message)


class MergeRetryExhausted(ReconciliationError):
    """Every claim attempt for a facility lost to a concurrent merge."""

    def __init__(self, message: str, *, facility_id: str = "", attempts: int = 0) -> None:
        self.facility_id = facility_id
        self.attempts = attempts
        super().__init__(message)


class DownstreamWriteFailure(WaterQualityError):
    """Persisting a complete reading failed.

    The claimed entries are released, so resubmitting is safe.
    """

    def __init__(
        self,
        message: str,
        *,
        facility_id: str = "",
        entry_ids: tuple[str, ...] = (),
    ) -> None:
        self.facility_id = facility_id
        self.entry_ids = entry_ids
        super().__init__(message)


class NotificationFailure(WaterQualityError):
    """A notification could not be delivered. Never fatal."""

    def __init__(self, message: str, *, channel: str = "") -> None:
        self.channel = channel
        super().__init__(message)
