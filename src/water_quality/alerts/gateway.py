"""
Notification gateways.

A gateway delivers one aggregated NotificationJob to its channels and
reports the outcome per channel. Gateways never raise for delivery
problems; they return a GatewayResult with ``success=False`` instead.

- LoggingGateway: Writes the job to the structured log (default)
- WebhookGateway: POSTs the job as JSON to one URL per channel

Example:
    >>> gateway = WebhookGateway(
    ...     {"email": "http://backend:3000/internal/notify/email"},
    ...     api_key="secret",
    ... )
    >>> result = gateway.send_aggregated(job)
    >>> result.per_channel
    {'email': True}
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import requests
import structlog

from water_quality.config.settings import NotificationSettings
from water_quality.models import GatewayResult, NotificationJob

logger = structlog.get_logger(__name__)


@runtime_checkable
class NotificationGateway(Protocol):
    """Delivers aggregated notification jobs."""

    name: str

    def send_aggregated(self, job: NotificationJob) -> GatewayResult:
        """Deliver one job to every configured channel."""
        ...


class LoggingGateway:
    """Delivers notifications to the log only."""

    name = "log"

    def send_aggregated(self, job: NotificationJob) -> GatewayResult:
        logger.warning(
            "notification_sent",
            channel=self.name,
            facility_id=job.facility_id,
            reading_id=job.reading_id,
            severity=job.severity.value,
            violation_count=job.violation_count,
            parameters_affected=job.parameters_affected,
            title=job.title,
        )
        return GatewayResult(success=True, per_channel={self.name: True})


class WebhookGateway:
    """POSTs notification jobs to internal HTTP endpoints.

    Each configured channel (e.g. ``email``, ``push``) maps to one URL. The
    job is sent as JSON with an ``X-Internal-Key`` header when an API key
    is configured.
    """

    name = "webhook"

    def __init__(
        self,
        urls: dict[str, str],
        *,
        api_key: str | None = None,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ):
        if not urls:
            raise ValueError("WebhookGateway needs at least one channel URL")
        self.urls = dict(urls)
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Internal-Key"] = self.api_key
        return headers

    def send_aggregated(self, job: NotificationJob) -> GatewayResult:
        payload = job.model_dump(mode="json")
        per_channel: dict[str, bool] = {}
        errors: dict[str, str] = {}

        for channel, url in self.urls.items():
            try:
                response = self._session.post(
                    url,
                    json=payload,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                response.raise_for_status()
                per_channel[channel] = True
            except requests.RequestException as e:
                per_channel[channel] = False
                errors[channel] = str(e)
                logger.warning(
                    "notification_channel_failed",
                    channel=channel,
                    url=url,
                    reading_id=job.reading_id,
                    error=str(e),
                )

        return GatewayResult(
            success=all(per_channel.values()),
            per_channel=per_channel,
            errors=errors,
        )

    def close(self) -> None:
        self._session.close()


def build_gateway(settings: NotificationSettings) -> NotificationGateway:
    """Create the gateway named by ``settings.gateway``."""
    if settings.gateway == "webhook":
        return WebhookGateway(
            settings.webhook_urls,
            api_key=settings.api_key,
            timeout=settings.timeout_seconds,
        )
    return LoggingGateway()
