"""
Notification queue: hands jobs to the gateway off the request path.

``enqueue()`` returns immediately; worker threads drain a bounded queue and
call the gateway. Workers start on the first ``enqueue()`` if ``start()`` was
not called. A full queue drops the job (and counts it) rather than blocking
reconciliation.
"""

from __future__ import annotations

import queue
import threading
from typing import Any

import structlog

from water_quality.alerts.gateway import NotificationGateway
from water_quality.exceptions import NotificationFailure
from water_quality.models import NotificationJob

logger = structlog.get_logger(__name__)

DEFAULT_QUEUE_SIZE = 100
DEFAULT_NUM_WORKERS = 1


class NotificationQueue:
    """Bounded queue plus worker threads in front of a NotificationGateway."""

    def __init__(
        self,
        gateway: NotificationGateway,
        *,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ):
        self.gateway = gateway
        self._queue: queue.Queue[NotificationJob] = queue.Queue(maxsize=max_queue_size)
        self._num_workers = num_workers
        self._stop_event = threading.Event()
        self._workers: list[threading.Thread] = []
        self._start_lock = threading.Lock()

        # Metrics
        self._enqueued = 0
        self._dropped = 0
        self._delivered = 0
        self._failed = 0
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Start worker threads. No-op if already running."""
        with self._start_lock:
            if self._workers:
                return
            self._stop_event.clear()
            for i in range(self._num_workers):
                worker = threading.Thread(
                    target=self._worker_loop,
                    args=(i,),
                    daemon=True,
                    name=f"notification-worker-{i}",
                )
                worker.start()
                self._workers.append(worker)
        logger.info(
            "notification_queue_started",
            workers=self._num_workers,
            queue_max=self._queue.maxsize,
            gateway=self.gateway.name,
        )

    def stop(self, drain: bool = True) -> None:
        """Stop workers. If drain=True, deliver queued jobs first.

        Jobs still queued once the workers are gone are delivered in the
        calling thread when draining, otherwise counted as dropped.
        """
        if drain and self._workers:
            self._queue.join()
        self._stop_event.set()
        for worker in self._workers:
            worker.join(timeout=5.0)
        self._workers.clear()
        self._flush(deliver=drain)
        logger.info("notification_queue_stopped", **self.metrics)

    def join(self) -> None:
        """Block until every queued job has been handled."""
        self._queue.join()

    def enqueue(self, job: NotificationJob) -> bool:
        """Queue a job for delivery. Returns False if it was dropped.

        Raises:
            NotificationFailure: If the queue has been stopped
        """
        if self._stop_event.is_set():
            raise NotificationFailure("Notification queue is stopped", channel="queue")
        if not self._workers:
            self.start()

        try:
            self._queue.put_nowait(job)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning(
                "notification_dropped",
                reason="queue_full",
                reading_id=job.reading_id,
                facility_id=job.facility_id,
            )
            return False

        with self._lock:
            self._enqueued += 1
        return True

    def _worker_loop(self, worker_id: int) -> None:
        while not self._stop_event.is_set():
            try:
                job = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue

            try:
                self._deliver(job, worker_id)
            finally:
                self._queue.task_done()

    def _flush(self, *, deliver: bool) -> None:
        while True:
            try:
                job = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                if deliver:
                    self._deliver(job, "stop")
                else:
                    with self._lock:
                        self._dropped += 1
                    logger.warning(
                        "notification_dropped",
                        reason="queue_stopped",
                        reading_id=job.reading_id,
                        facility_id=job.facility_id,
                    )
            finally:
                self._queue.task_done()

    def _deliver(self, job: NotificationJob, worker_id: int | str) -> None:
        try:
            result = self.gateway.send_aggregated(job)
        except Exception as e:
            # Delivery is best-effort; a broken gateway must not kill the worker
            with self._lock:
                self._failed += 1
            logger.error(
                "notification_failed",
                worker=worker_id,
                reading_id=job.reading_id,
                error=str(e),
                exc_info=True,
            )
            return

        with self._lock:
            if result.success:
                self._delivered += 1
            else:
                self._failed += 1

        log = logger.info if result.success else logger.warning
        log(
            "notification_delivered" if result.success else "notification_failed",
            worker=worker_id,
            reading_id=job.reading_id,
            severity=job.severity.value,
            per_channel=result.per_channel,
        )

    @property
    def metrics(self) -> dict[str, Any]:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "delivered": self._delivered,
                "failed": self._failed,
            }

    def __enter__(self) -> NotificationQueue:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop(drain=True)
