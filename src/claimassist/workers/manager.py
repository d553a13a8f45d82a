"""WorkerManager: wires the queues, runs the workers and their maintenance jobs."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from redis.asyncio import Redis

from claimassist.core.config import AppSettings
from claimassist.core.protocols import IEscalationStore, IMessagingProvider
from claimassist.core.types import Clock, EpochClock
from claimassist.escalation.assignment import create_assigner
from claimassist.escalation.levels import load_escalation_table
from claimassist.escalation.service import EscalationStateService
from claimassist.models.jobs import EscalationJobData, NotificationJobData, QueueStats
from claimassist.notifications.directory import AgentDirectory
from claimassist.notifications.dispatcher import NotificationDispatcher
from claimassist.notifications.providers import create_messaging_provider
from claimassist.persistence import create_escalation_store
from claimassist.queue.job import BackoffPolicy, Job
from claimassist.queue.redis_queue import RedisJobQueue, create_redis_client
from claimassist.workers.escalation_worker import EscalationWorker
from claimassist.workers.notification_worker import NotificationWorker

logger = structlog.get_logger(__name__)

ROLES = ("notifications", "escalations")
FAILED_CRITICAL = 10
FAILED_WARNING = 5
WAITING_CRITICAL = 100
WAITING_WARNING = 50


class WorkerManager:
    """Lifecycle owner for both workers and the maintenance scheduler."""

    def __init__(
        self,
        *,
        settings: AppSettings,
        redis: Redis,
        notification_worker: NotificationWorker,
        escalation_worker: EscalationWorker,
    ) -> None:
        self.settings = settings
        self._redis = redis
        self.notifications = notification_worker
        self.escalations = escalation_worker
        self._scheduler: AsyncIOScheduler | None = None
        self._roles: tuple[str, ...] = ()
        self.started_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self.started_at is not None

    def _workers(self, roles: Iterable[str]) -> list:
        chosen = []
        if "notifications" in roles and self.settings.enable_notifications:
            chosen.append(self.notifications.worker)
        if "escalations" in roles and self.settings.enable_escalation:
            chosen.append(self.escalations.worker)
        return chosen

    async def start(self, roles: Iterable[str] = ROLES, *, maintenance: bool = True) -> None:
        if self.is_running:
            logger.warning("worker_manager_already_running")
            return
        self._roles = tuple(roles)
        for worker in self._workers(self._roles):
            await worker.start()
        if maintenance:
            self._scheduler = self._build_scheduler()
            self._scheduler.start()
        self.started_at = datetime.now(timezone.utc)
        logger.info("worker_manager_started", roles=self._roles, maintenance=maintenance)

    def _build_scheduler(self) -> AsyncIOScheduler:
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(self.clean_queues, "cron", minute=0, id="queue_cleanup")
        scheduler.add_job(self.perform_health_check, "interval", minutes=5, id="health_check")
        scheduler.add_job(self.generate_metrics, "interval", minutes=15, id="metrics")
        if self.settings.escalation.reconciliation_enabled:
            scheduler.add_job(
                self.escalations.sweep_expired, "interval", minutes=5, id="escalation_sweep"
            )
        return scheduler

    async def stop(self) -> None:
        """Stop the scheduler, then let in-flight jobs finish."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        for worker in self._workers(self._roles):
            await worker.close()
        self.started_at = None
        logger.info("worker_manager_stopped")

    async def graceful_shutdown(self, timeout: float = 30.0) -> None:
        logger.info("graceful_shutdown_started", timeout=timeout)
        try:
            await asyncio.wait_for(self.stop(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("graceful_shutdown_timed_out", timeout=timeout)
            raise
        finally:
            await self.close()

    async def close(self) -> None:
        await self._redis.aclose()

    async def ping(self) -> bool:
        return await self.notifications.queue.ping()

    # ---- producers ----

    async def add_notification_job(self, job_data: NotificationJobData, **kwargs: Any) -> Job:
        return await self.notifications.add_notification_job(job_data, **kwargs)

    async def add_escalation_job(self, job_data: EscalationJobData, **kwargs: Any) -> Job:
        return await self.escalations.add_escalation_job(job_data, **kwargs)

    # ---- maintenance ----

    async def queue_stats(self) -> dict[str, QueueStats]:
        return {
            "notifications": await self.notifications.get_queue_stats(),
            "escalations": await self.escalations.get_queue_stats(),
        }

    async def clean_queues(self) -> dict[str, dict[str, int]]:
        return {"notifications": await self.notifications.clean_queue()}

    async def perform_health_check(self) -> dict[str, Any]:
        stats = await self.queue_stats()
        issues: list[str] = []
        notifications = stats["notifications"]
        escalations = stats["escalations"]

        if notifications.failed > FAILED_CRITICAL:
            issues.append(f"High notification failure rate: {notifications.failed} failed jobs")
        if escalations.failed > FAILED_WARNING:
            issues.append(f"High escalation failure rate: {escalations.failed} failed jobs")
        if notifications.waiting > WAITING_CRITICAL:
            issues.append(f"Notification backlog: {notifications.waiting} waiting jobs")
        if escalations.waiting > WAITING_WARNING:
            issues.append(f"Escalation backlog: {escalations.waiting} waiting jobs")

        if issues:
            logger.warning("worker_health_issues", issues=issues)
        else:
            logger.info("worker_health_ok")
        return {
            "healthy": not issues,
            "issues": issues,
            "queues": {name: s.model_dump() for name, s in stats.items()},
        }

    async def generate_metrics(self) -> dict[str, Any]:
        stats = await self.queue_stats()
        metrics = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": (
                (datetime.now(timezone.utc) - self.started_at).total_seconds()
                if self.started_at else 0
            ),
            "queues": {name: s.model_dump() for name, s in stats.items()},
            "processed": {
                "notifications": self.notifications.worker.processed,
                "escalations": self.escalations.worker.processed,
            },
            "failed_attempts": {
                "notifications": self.notifications.worker.failed,
                "escalations": self.escalations.worker.failed,
            },
        }
        logger.info("worker_metrics", **metrics)
        return metrics

    async def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "roles": list(self._roles),
            "workers": {
                "notifications": self.notifications.worker.is_running,
                "escalations": self.escalations.worker.is_running,
            },
            "queues": {name: s.model_dump() for name, s in (await self.queue_stats()).items()},
        }

    async def pause_workers(self) -> None:
        await self.notifications.pause()
        await self.escalations.pause()
        logger.info("workers_paused")

    async def resume_workers(self) -> None:
        await self.notifications.resume()
        await self.escalations.resume()
        logger.info("workers_resumed")


def create_worker_manager(
    settings: AppSettings | None = None,
    *,
    redis: Redis | None = None,
    store: IEscalationStore | None = None,
    provider: IMessagingProvider | None = None,
    clock: Clock | None = None,
    queue_clock: EpochClock | None = None,
) -> WorkerManager:
    """Build a WorkerManager and its collaborators from settings.

    Any collaborator passed in replaces the one settings would create.
    """
    settings = settings or AppSettings()
    redis = redis or create_redis_client(settings.redis)
    store = store or create_escalation_store(settings)
    provider = provider or create_messaging_provider(settings.twilio)

    table = load_escalation_table(settings.escalation.table_path)
    service: EscalationStateService | None = None
    assigner = create_assigner(
        settings.escalation.assignment_strategy,
        load_fn=lambda: service.agent_load(),
    )
    service_kwargs: dict[str, Any] = {
        "store": store,
        "table": table,
        "assigner": assigner,
        "agent_escalation_deadline_hours": settings.escalation.agent_escalation_deadline_hours,
    }
    if clock is not None:
        service_kwargs["clock"] = clock
    service = EscalationStateService(**service_kwargs)

    queue_kwargs: dict[str, Any] = {"clock": queue_clock} if queue_clock else {}
    nq = settings.notification_queue
    notification_queue = RedisJobQueue(
        redis,
        nq.name,
        default_attempts=nq.attempts,
        default_backoff=BackoffPolicy(delay=nq.backoff_seconds),
        keep_completed=nq.keep_completed,
        keep_failed=nq.keep_failed,
        **queue_kwargs,
    )
    eq = settings.escalation_queue
    escalation_queue = RedisJobQueue(
        redis,
        eq.name,
        default_attempts=eq.attempts,
        default_backoff=BackoffPolicy(delay=eq.backoff_seconds),
        keep_completed=eq.keep_completed,
        keep_failed=eq.keep_failed,
        **queue_kwargs,
    )

    notification_worker = NotificationWorker(
        queue=notification_queue,
        dispatcher=NotificationDispatcher(provider),
        config=nq,
    )
    escalation_worker = EscalationWorker(
        queue=escalation_queue,
        service=service,
        notifications=notification_worker,
        directory=AgentDirectory.from_table(table, settings.escalation.default_agent_contact),
        config=eq,
        management_contact=settings.escalation.management_contact,
    )
    return WorkerManager(
        settings=settings,
        redis=redis,
        notification_worker=notification_worker,
        escalation_worker=escalation_worker,
    )
