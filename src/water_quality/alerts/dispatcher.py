"""
Alert dispatcher: violations -> persisted alerts -> one aggregated notification.

Neither step can fail the pipeline. A store error on one alert is logged
and the remaining alerts are still written; notification problems are
logged and reported through the return value only.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import structlog

from water_quality.exceptions import NotificationFailure, StoreError
from water_quality.models import Alert, NotificationJob, Violation
from water_quality.storage.protocol import ReadingStore
from water_quality.utils.time import Clock, utcnow

logger = structlog.get_logger(__name__)


class NotificationChannel(Protocol):
    """Anything that accepts notification jobs without blocking."""

    def enqueue(self, job: NotificationJob) -> bool: ...


class AlertDispatcher:
    """Creates alerts for a reading and triggers its notification.

    Args:
        store: Where alerts are persisted
        channel: Notification channel (None disables notifications)
        clock: Time source for ``created_at``
    """

    def __init__(
        self,
        store: ReadingStore,
        channel: NotificationChannel | None = None,
        *,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.channel = channel
        self._clock = clock

    def process(
        self,
        reading_id: str,
        facility_id: str,
        violations: Sequence[Violation],
    ) -> list[Alert]:
        """Persist one active alert per violation.

        Returns:
            The alerts that were persisted
        """
        created: list[Alert] = []

        for violation in violations:
            alert = Alert.from_violation(
                violation,
                reading_id=reading_id,
                facility_id=facility_id,
                created_at=self._clock(),
            )
            try:
                self.store.insert_alert(alert)
            except StoreError as e:
                logger.error(
                    "alert_persist_failed",
                    facility_id=facility_id,
                    reading_id=reading_id,
                    rule=alert.rule,
                    error=str(e),
                )
                continue
            created.append(alert)

        if created:
            logger.info(
                "alerts_created",
                facility_id=facility_id,
                reading_id=reading_id,
                count=len(created),
                failed=len(violations) - len(created),
            )
        return created

    def notify(self, alerts: Sequence[Alert]) -> bool:
        """Enqueue one aggregated job if any alert is high or critical.

        Returns:
            True if a job was handed to the channel
        """
        if not any(alert.severity.is_urgent for alert in alerts):
            return False

        job = NotificationJob.aggregate(list(alerts))

        if self.channel is None:
            logger.debug("notification_skipped", reason="disabled", reading_id=job.reading_id)
            return False

        try:
            accepted = self.channel.enqueue(job)
        except NotificationFailure as e:
            logger.warning(
                "notification_enqueue_failed",
                reading_id=job.reading_id,
                facility_id=job.facility_id,
                channel=e.channel,
                error=str(e),
            )
            return False
        except Exception as e:
            logger.error(
                "notification_enqueue_failed",
                reading_id=job.reading_id,
                facility_id=job.facility_id,
                error=str(e),
            )
            return False

        if accepted:
            logger.info(
                "notification_enqueued",
                reading_id=job.reading_id,
                facility_id=job.facility_id,
                severity=job.severity.value,
                violation_count=job.violation_count,
            )
        return accepted
