"""
Single-consumer notification queue.

Renewal failures are told to subscribers through direct messages, which are
rate sensitive upstream. Jobs are delivered one at a time by a single worker
with a fixed pause between deliveries. Delivery is best-effort: failures are
logged and never retried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from cardpay.modules.entitlements.domain.sink import EntitlementGateway

logger = structlog.get_logger()


@dataclass(frozen=True)
class NotificationJob:
    recipient_id: str
    message: str
    log_channel_id: Optional[str] = None


class NotificationQueue:
    def __init__(self, gateway: EntitlementGateway, *, delay_seconds: float = 2.0) -> None:
        self.gateway = gateway
        self.delay_seconds = delay_seconds
        self._queue: asyncio.Queue[NotificationJob] = asyncio.Queue()
        self._worker: Optional[asyncio.Task[None]] = None
        self.delivered = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(
        self, recipient_id: str, message: str, log_channel_id: Optional[str] = None
    ) -> NotificationJob:
        """Queue a notice without waiting; starts the worker if none is running."""
        job = NotificationJob(recipient_id, message, log_channel_id)
        self._queue.put_nowait(job)
        logger.info(
            "notification_enqueued", recipient_id=recipient_id, pending=self.pending
        )
        if not self.is_running:
            self.start()
        return job

    def start(self) -> None:
        if self.is_running:
            return
        self._worker = asyncio.get_running_loop().create_task(
            self._drain(), name="notification-queue-worker"
        )
        logger.info("notification_worker_started")

    async def stop(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is None or worker.done():
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        logger.info("notification_worker_stopped", pending=self.pending)

    async def join(self) -> None:
        """Wait until every queued job has been handled."""
        await self._queue.join()

    async def _deliver(self, job: NotificationJob) -> bool:
        """DM the recipient, then post to the log channel whether or not the DM landed."""
        sent = await self.gateway.send_direct_message(job.recipient_id, job.message)
        prefix = "Notified" if sent else "Could not DM"
        await self.gateway.post_log(
            job.log_channel_id,
            "User Notified",
            f"{prefix} <@{job.recipient_id}>: {job.message}",
        )
        return sent

    async def _drain(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if await self._deliver(job):
                    self.delivered += 1
            except Exception as exc:
                logger.warning(
                    "notification_delivery_failed",
                    recipient_id=job.recipient_id,
                    error=str(exc),
                )
            finally:
                self._queue.task_done()
            await asyncio.sleep(self.delay_seconds)
