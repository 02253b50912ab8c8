"""
Alerting for the water quality pipeline.

- AlertDispatcher: Persists alerts and triggers one notification per reading
- NotificationQueue: Bounded, worker-drained queue in front of a gateway
- LoggingGateway / WebhookGateway: Delivery backends
"""

from water_quality.alerts.dispatcher import AlertDispatcher, NotificationChannel
from water_quality.alerts.gateway import (
    LoggingGateway,
    NotificationGateway,
    WebhookGateway,
    build_gateway,
)
from water_quality.alerts.queue import NotificationQueue

__all__ = [
    "AlertDispatcher",
    "LoggingGateway",
    "NotificationChannel",
    "NotificationGateway",
    "NotificationQueue",
    "WebhookGateway",
    "build_gateway",
]
