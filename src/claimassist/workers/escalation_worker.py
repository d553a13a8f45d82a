"""EscalationWorker: runs the escalation lifecycle off the escalations queue.

Every handler re-reads the persisted record before acting, so out-of-date
jobs fall through as no-ops. A state change and the id of the job that made
it are saved together; a redelivered job finds its id on the record, skips
the state change and only re-issues its follow-up jobs. Follow-up jobs use
deterministic ids, so enqueueing the same follow-up twice leaves a single job.

Store calls are blocking and run in worker threads. Jobs for the same claim
are serialized within the process by a per-claim lock.
"""

from __future__ import annotations

import asyncio
import weakref
from datetime import datetime
from typing import Any

import structlog

from claimassist.core.config import EscalationQueueConfig
from claimassist.core.exceptions import EscalationNotFoundError, JobNotFoundError, QueueError
from claimassist.core.protocols import IAgentDirectory
from claimassist.escalation.service import TIMEOUT_REASON, EscalationStateService
from claimassist.models.escalation import (
    ConfirmationAction,
    EscalationRequest,
    EscalationStatus,
    Urgency,
)
from claimassist.models.jobs import (
    EscalationJobData,
    EscalationJobType,
    NotificationJobData,
    NotificationJobType,
    QueueStats,
)
from claimassist.models.notifications import NotificationPriority
from claimassist.queue.job import Job
from claimassist.queue.rate_limit import TokenBucket
from claimassist.queue.redis_queue import RedisJobQueue
from claimassist.queue.worker import QueueWorker
from claimassist.workers.notification_worker import PRIORITY_SCORES, NotificationWorker

logger = structlog.get_logger(__name__)

TYPE_PRIORITY_FLOOR = {
    EscalationJobType.CHECK_TIMEOUT: 80,
    EscalationJobType.AUTO_ESCALATE: 90,
}
URGENCY_TO_PRIORITY = {
    Urgency.CRITICAL: NotificationPriority.URGENT,
    Urgency.HIGH: NotificationPriority.HIGH,
    Urgency.MEDIUM: NotificationPriority.MEDIUM,
    Urgency.LOW: NotificationPriority.LOW,
}
MAX_LEVEL_REASON = "Maximum escalation level reached without resolution"


def escalation_priority(job_data: EscalationJobData) -> int:
    score = PRIORITY_SCORES.get(job_data.priority or "medium", 50)
    return max(score, TYPE_PRIORITY_FLOOR.get(job_data.type, 0))


def _deadline_token(deadline: datetime | None) -> str:
    return str(int(deadline.timestamp())) if deadline else "none"


def _follow_up_id(job_id: str | None, kind: str) -> str | None:
    return f"{job_id}:{kind}" if job_id else None


class EscalationWorker:
    """Enqueues escalation jobs and applies them to the state service."""

    def __init__(
        self,
        *,
        queue: RedisJobQueue,
        service: EscalationStateService,
        notifications: NotificationWorker,
        directory: IAgentDirectory,
        config: EscalationQueueConfig | None = None,
        management_contact: str = "+1234567890",
        limiter: TokenBucket | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.config = config or EscalationQueueConfig()
        self.queue = queue
        self.service = service
        self._notifications = notifications
        self._directory = directory
        self._management_contact = management_contact
        self._claim_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self.worker = QueueWorker(
            queue,
            self.process_job,
            concurrency=self.config.concurrency,
            limiter=limiter or TokenBucket(self.config.rate_limit_max, self.config.rate_limit_duration),
            poll_interval=poll_interval,
        )

    def _lock_for(self, claim_id: str) -> asyncio.Lock:
        lock = self._claim_locks.get(claim_id)
        if lock is None:
            lock = self._claim_locks[claim_id] = asyncio.Lock()
        return lock

    # ---- consumer ----

    async def process_job(self, job: Job) -> dict[str, Any] | None:
        job_data = EscalationJobData.model_validate(job.data)
        logger.info(
            "escalation_job_processing",
            job_id=job.id,
            type=job_data.type.value,
            claim_id=job_data.claim_id,
        )
        async with self._lock_for(job_data.claim_id):
            match job_data.type:
                case EscalationJobType.CREATE_ESCALATION:
                    return await self.handle_create_escalation(
                        job_data.claim_id, job_data.data, job_id=job.id
                    )
                case EscalationJobType.CHECK_TIMEOUT:
                    return await self.handle_timeout_check(job_data.claim_id, job_data.data)
                case EscalationJobType.PROCESS_CONFIRMATION:
                    return await self.handle_confirmation_processing(
                        job_data.claim_id, job_data.data, job_id=job.id
                    )
                case EscalationJobType.AUTO_ESCALATE:
                    return await self.handle_auto_escalation(
                        job_data.claim_id, job_data.data, job_id=job.id
                    )
        raise QueueError(f"Unknown escalation job type: {job_data.type}")

    async def _redelivered(self, claim_id: str, job_id: str | None) -> EscalationStatus | None:
        """The stored record when ``job_id`` already applied its state change."""
        if job_id is None:
            return None
        status = await asyncio.to_thread(self.service.applied_status, claim_id, job_id)
        if status is not None:
            logger.info(
                "escalation_job_redelivered",
                claim_id=claim_id,
                job_id=job_id,
                superseded=status.applied_jobs[-1] != job_id,
            )
        return status

    async def handle_create_escalation(
        self, claim_id: str, data: dict[str, Any], *, job_id: str | None = None
    ) -> dict[str, Any]:
        request = EscalationRequest(
            claim_id=claim_id,
            user_id=data.get("user_id") or "system",
            reason=data.get("reason") or "Escalation requested",
            urgency=data.get("urgency"),
            additional_info=data.get("additional_info"),
        )
        status = await self._redelivered(claim_id, job_id)
        if status is None:
            status = await asyncio.to_thread(self.service.create_escalation, request, job_id=job_id)
        elif status.applied_jobs[-1] != job_id:
            return self._summary(status)
        await self._announce(
            status, urgency=request.urgency or Urgency.MEDIUM, reason=request.reason, job_id=job_id
        )
        return self._summary(status)

    async def handle_timeout_check(self, claim_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
        scheduled_level = int(data["escalation_level"])
        try:
            status = await asyncio.to_thread(self.service.get_escalation, claim_id)
        except EscalationNotFoundError:
            logger.info("timeout_check_skipped", claim_id=claim_id, reason="missing")
            return None

        if not status.is_open or status.current_level != scheduled_level:
            logger.info(
                "timeout_check_skipped",
                claim_id=claim_id,
                scheduled_level=scheduled_level,
                current_level=status.current_level,
                status=status.status.value,
            )
            return None
        if not self.service.is_confirmation_expired(status):
            logger.info("timeout_check_not_expired", claim_id=claim_id, level=scheduled_level)
            return None

        logger.warning("escalation_timeout", claim_id=claim_id, level=scheduled_level)
        deadline = _deadline_token(status.confirmation_deadline)
        next_level = self.service.get_next_escalation_level(scheduled_level)

        if next_level is not None:
            job = await self.add_escalation_job(
                EscalationJobData(
                    type=EscalationJobType.AUTO_ESCALATE,
                    claim_id=claim_id,
                    data={
                        "from_level": scheduled_level,
                        "to_level": next_level.level,
                        "reason": TIMEOUT_REASON,
                    },
                    priority=NotificationPriority.HIGH,
                ),
                job_id=f"auto_escalate:{claim_id}:{scheduled_level}-{next_level.level}:{deadline}",
            )
            return {"action": "auto_escalate", "job_id": job.id}

        job = await self._notifications.add_notification_job(
            NotificationJobData(
                type=NotificationJobType.ESCALATION_ALERT,
                recipient=self._management_contact,
                claim_id=claim_id,
                data={
                    "escalation_level": scheduled_level,
                    "urgency": Urgency.CRITICAL.value,
                    "reason": MAX_LEVEL_REASON,
                    "requires_immediate_attention": True,
                },
                priority=NotificationPriority.URGENT,
            ),
            job_id=f"management_alert:{claim_id}:{scheduled_level}:{deadline}",
        )
        logger.error("escalation_max_level_timeout", claim_id=claim_id, level=scheduled_level)
        return {"action": "management_alert", "job_id": job.id}

    async def handle_confirmation_processing(
        self, claim_id: str, data: dict[str, Any], *, job_id: str | None = None
    ) -> dict[str, Any]:
        action = ConfirmationAction(data["action"])
        status = await self._redelivered(claim_id, job_id)
        if status is None:
            previous = await asyncio.to_thread(self.service.get_escalation, claim_id)
            status = await asyncio.to_thread(
                self.service.process_confirmation,
                claim_id,
                data["agent_id"],
                action,
                data.get("notes"),
                job_id=job_id,
            )
            # A timeout left behind by a failed cancel is skipped when it fires.
            if previous.timeout_job_id:
                await self.cancel_escalation_job(previous.timeout_job_id)
        elif status.applied_jobs[-1] != job_id:
            return self._summary(status)

        customer = data.get("customer_contact")
        if action == ConfirmationAction.ESCALATE:
            await self._announce(
                status,
                urgency=Urgency.HIGH,
                reason=data.get("notes") or f"Escalated by agent {data['agent_id']}",
                job_id=job_id,
            )
        elif customer:
            await self._notifications.add_notification_job(
                NotificationJobData(
                    type=NotificationJobType.STATUS_UPDATE,
                    recipient=customer,
                    claim_id=claim_id,
                    data={
                        "status": "processing" if action == ConfirmationAction.CONFIRM else "approved",
                        "additional_info": data.get("notes"),
                    },
                ),
                job_id=_follow_up_id(job_id, "status_update"),
            )
        return self._summary(status)

    async def handle_auto_escalation(
        self, claim_id: str, data: dict[str, Any], *, job_id: str | None = None
    ) -> dict[str, Any] | None:
        from_level = int(data["from_level"])
        to_level = int(data["to_level"])
        reason = data.get("reason") or TIMEOUT_REASON
        status = await self._redelivered(claim_id, job_id)
        if status is None:
            status = await asyncio.to_thread(
                self.service.auto_escalate, claim_id, from_level, to_level, reason, job_id=job_id
            )
            if status is None:
                return None
        elif status.applied_jobs[-1] != job_id:
            return self._summary(status)
        await self._announce(
            status,
            urgency=Urgency.CRITICAL,
            reason=f"Auto-escalated from Level {from_level}: {reason}",
            is_auto_escalation=True,
            job_id=job_id,
        )
        return self._summary(status)

    async def _announce(
        self,
        status: EscalationStatus,
        *,
        urgency: Urgency | str,
        reason: str,
        is_auto_escalation: bool = False,
        job_id: str | None = None,
    ) -> None:
        """Alert the assigned agent and arm the confirmation timeout."""
        if status.assigned_agent:
            await self._notifications.add_notification_job(
                NotificationJobData(
                    type=NotificationJobType.ESCALATION_ALERT,
                    recipient=self._directory.contact_for(status.assigned_agent),
                    claim_id=status.claim_id,
                    data={
                        "escalation_level": status.current_level,
                        "urgency": str(urgency),
                        "reason": reason,
                        "assigned_agent": status.assigned_agent,
                        "is_auto_escalation": is_auto_escalation,
                    },
                    priority=URGENCY_TO_PRIORITY.get(urgency, NotificationPriority.MEDIUM),
                ),
                job_id=_follow_up_id(job_id, "alert"),
            )
        if status.confirmation_deadline is not None:
            await self.schedule_timeout_check(
                status.claim_id, status.current_level, status.confirmation_deadline
            )

    @staticmethod
    def _summary(status: EscalationStatus) -> dict[str, Any]:
        return {
            "claim_id": status.claim_id,
            "level": status.current_level,
            "status": status.status.value,
            "assigned_agent": status.assigned_agent,
        }

    # ---- producer ----

    async def add_escalation_job(
        self,
        job_data: EscalationJobData,
        *,
        delay: float | None = None,
        job_id: str | None = None,
    ) -> Job:
        """Enqueue an escalation job. ``delay`` is in seconds."""
        if delay is None and job_data.schedule_time is not None:
            delay = (job_data.schedule_time - self.service.now()).total_seconds()
        try:
            job = await self.queue.add(
                job_data.type.value,
                job_data.model_dump(mode="json"),
                delay=delay,
                priority=escalation_priority(job_data),
                job_id=job_id,
                attempts=self.config.attempts,
            )
        except QueueError as exc:
            logger.error(
                "escalation_enqueue_failed",
                type=job_data.type.value,
                claim_id=job_data.claim_id,
                error=str(exc),
            )
            raise
        logger.info(
            "escalation_job_enqueued",
            job_id=job.id,
            type=job_data.type.value,
            claim_id=job_data.claim_id,
            delay=delay,
        )
        return job

    async def schedule_timeout_check(self, claim_id: str, level: int, deadline: datetime) -> Job:
        """Arm a check_timeout job firing at ``deadline`` and remember its id."""
        job = await self.add_escalation_job(
            EscalationJobData(
                type=EscalationJobType.CHECK_TIMEOUT,
                claim_id=claim_id,
                data={"escalation_level": level, "confirmation_deadline": deadline.isoformat()},
                priority=NotificationPriority.HIGH,
                schedule_time=deadline,
            ),
            job_id=f"check_timeout:{claim_id}:{level}:{_deadline_token(deadline)}",
        )
        await asyncio.to_thread(self.service.record_timeout_job, claim_id, job.id)
        return job

    async def cancel_escalation_job(self, job_id: str) -> bool:
        removed = await self.queue.remove(job_id)
        logger.info("escalation_job_cancel", job_id=job_id, removed=removed)
        return removed

    async def get_job(self, job_id: str) -> Job:
        job = await self.queue.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"No escalation job {job_id}")
        return job

    async def get_queue_stats(self) -> QueueStats:
        return await self.queue.get_stats()

    async def sweep_expired(self) -> int:
        """Re-arm timeout checks for open records whose deadline passed unnoticed."""
        expired = await asyncio.to_thread(self.service.find_expired_escalations)
        for status in expired:
            await self.add_escalation_job(
                EscalationJobData(
                    type=EscalationJobType.CHECK_TIMEOUT,
                    claim_id=status.claim_id,
                    data={"escalation_level": status.current_level},
                    priority=NotificationPriority.HIGH,
                ),
                job_id=(
                    f"sweep:{status.claim_id}:{status.current_level}:"
                    f"{_deadline_token(status.confirmation_deadline)}"
                ),
            )
        if expired:
            logger.warning("expired_escalations_swept", count=len(expired))
        return len(expired)

    async def pause(self) -> None:
        await self.queue.pause()

    async def resume(self) -> None:
        await self.queue.resume()
