"""NotificationWorker: queue producer and consumer for outbound messages."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog

from claimassist.core.config import NotificationQueueConfig
from claimassist.core.exceptions import JobNotFoundError, NotificationError, QueueError
from claimassist.models.jobs import NotificationJobData, NotificationJobType, QueueStats
from claimassist.models.notifications import NotificationResult
from claimassist.notifications.dispatcher import NotificationDispatcher
from claimassist.queue.job import Job, JobState
from claimassist.queue.rate_limit import TokenBucket
from claimassist.queue.redis_queue import RedisJobQueue
from claimassist.queue.worker import QueueWorker

logger = structlog.get_logger(__name__)

PRIORITY_SCORES = {"urgent": 100, "high": 75, "medium": 50, "low": 25}
TYPE_PRIORITY_FLOOR = {
    NotificationJobType.FRAUD_ALERT: 90,
    NotificationJobType.ESCALATION_ALERT: 80,
}
COMPLETED_GRACE = timedelta(hours=24)
FAILED_GRACE = timedelta(days=7)


def notification_priority(job_data: NotificationJobData) -> int:
    score = PRIORITY_SCORES.get(job_data.priority, 50)
    return max(score, TYPE_PRIORITY_FLOOR.get(job_data.type, 0))


class NotificationWorker:
    """Enqueues notification jobs and delivers them through the dispatcher."""

    def __init__(
        self,
        *,
        queue: RedisJobQueue,
        dispatcher: NotificationDispatcher,
        config: NotificationQueueConfig | None = None,
        limiter: TokenBucket | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.config = config or NotificationQueueConfig()
        self.queue = queue
        self._dispatcher = dispatcher
        self.worker = QueueWorker(
            queue,
            self.process_job,
            concurrency=self.config.concurrency,
            limiter=limiter or TokenBucket(self.config.rate_limit_max, self.config.rate_limit_duration),
            poll_interval=poll_interval,
        )

    # ---- consumer ----

    async def process_job(self, job: Job) -> dict[str, Any]:
        job_data = NotificationJobData.model_validate(job.data)
        log = logger.bind(job_id=job.id, type=job_data.type.value, claim_id=job_data.claim_id)
        log.info("notification_processing", attempt=job.attempts_made + 1)

        result = await self._deliver(job_data)
        if not result.success:
            raise NotificationError(result.error or "Notification delivery failed")

        log.info("notification_delivered", message_id=result.message_id)
        return result.model_dump(mode="json")

    async def _deliver(self, job_data: NotificationJobData) -> NotificationResult:
        data = job_data.data
        match job_data.type:
            case NotificationJobType.CLAIM_CONFIRMATION:
                return await self._dispatcher.send_claim_confirmation(
                    job_data.recipient,
                    job_data.claim_id,
                    data.get("claim_type", "general"),
                    data.get("estimated_amount"),
                )
            case NotificationJobType.ESCALATION_ALERT:
                return await self._dispatcher.send_escalation_notification(
                    job_data.recipient,
                    job_data.claim_id,
                    int(data.get("escalation_level", 2)),
                    data.get("urgency", "medium"),
                    data.get("reason", "Escalation required"),
                )
            case NotificationJobType.FRAUD_ALERT:
                return await self._dispatcher.send_fraud_alert(
                    job_data.recipient,
                    job_data.claim_id,
                    data.get("fraud_score", 0),
                    data.get("risk_factors", []),
                )
            case NotificationJobType.STATUS_UPDATE:
                return await self._dispatcher.send_status_update(
                    job_data.recipient,
                    job_data.claim_id,
                    data.get("status", "processing"),
                    data.get("additional_info"),
                )
            case NotificationJobType.PAYOUT_NOTIFICATION:
                return await self._dispatcher.send_payout_notification(
                    job_data.recipient,
                    job_data.claim_id,
                    data.get("payout_amount", 0),
                    data.get("payment_method", "bank transfer"),
                )
        raise NotificationError(f"Unknown notification type: {job_data.type}")

    # ---- producer ----

    async def add_notification_job(
        self,
        job_data: NotificationJobData,
        *,
        delay: float | None = None,
        job_id: str | None = None,
    ) -> Job:
        """Enqueue a notification. ``delay`` is in seconds."""
        try:
            job = await self.queue.add(
                job_data.type.value,
                job_data.model_dump(mode="json", exclude={"result"}),
                delay=delay,
                priority=notification_priority(job_data),
                job_id=job_id,
                attempts=job_data.retries or self.config.attempts,
            )
        except QueueError as exc:
            logger.error(
                "notification_enqueue_failed",
                type=job_data.type.value,
                claim_id=job_data.claim_id,
                error=str(exc),
            )
            raise
        logger.info(
            "notification_enqueued",
            job_id=job.id,
            type=job_data.type.value,
            claim_id=job_data.claim_id,
            priority=job.priority,
        )
        return job

    async def add_bulk_notification_jobs(self, jobs: list[NotificationJobData]) -> list[Job]:
        added = [await self.add_notification_job(job_data) for job_data in jobs]
        logger.info("notifications_bulk_enqueued", count=len(added))
        return added

    async def schedule_notification(self, job_data: NotificationJobData, delay_seconds: float) -> Job:
        return await self.add_notification_job(job_data, delay=delay_seconds)

    async def cancel_notification(self, job_id: str) -> bool:
        removed = await self.queue.remove(job_id)
        logger.info("notification_cancel", job_id=job_id, removed=removed)
        return removed

    async def get_job(self, job_id: str) -> Job:
        job = await self.queue.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"No notification job {job_id}")
        return job

    # ---- maintenance ----

    async def get_queue_stats(self) -> QueueStats:
        return await self.queue.get_stats()

    async def clean_queue(self) -> dict[str, int]:
        """Drop completed jobs older than a day and failed jobs older than a week."""
        completed = await self.queue.clean(COMPLETED_GRACE.total_seconds(), 100, JobState.COMPLETED)
        failed = await self.queue.clean(FAILED_GRACE.total_seconds(), 50, JobState.FAILED)
        logger.info("notification_queue_cleaned", completed=len(completed), failed=len(failed))
        return {"completed": len(completed), "failed": len(failed)}

    async def pause(self) -> None:
        await self.queue.pause()

    async def resume(self) -> None:
        await self.queue.resume()
