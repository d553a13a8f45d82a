"""RedisJobQueue: durable priority queue with delayed jobs, retries and retention.

Key layout under ``{prefix}:{name}``::

    :id         INCR counter for generated job ids
    :seq        INCR counter keeping FIFO order within a priority
    :job:{id}   job JSON (the single source of truth for job state)
    :waiting    ZSET, score = -priority * PRIORITY_SHIFT + seq
    :delayed    ZSET, score = epoch second the job becomes runnable
    :active     ZSET, score = epoch second the worker's lock expires
    :completed  ZSET, score = finished_on
    :failed     ZSET, score = finished_on
    :paused     flag

Every state move runs inside a WATCH/MULTI transaction so a job is in
exactly one state set at a time, even with several worker processes.
"""

from __future__ import annotations

import time
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from claimassist.core.config import RedisConfig
from claimassist.core.exceptions import QueueError
from claimassist.core.types import EpochClock
from claimassist.models.jobs import QueueStats
from claimassist.queue.job import BackoffPolicy, Job, JobState

logger = structlog.get_logger(__name__)

PRIORITY_SHIFT = 2**32
MAX_PRIORITY = 2**20
DEFAULT_LOCK_SECONDS = 30.0


class RedisJobQueue:
    """Named job queue stored in Redis.

    The client must be created with ``decode_responses=True``.
    """

    def __init__(
        self,
        redis: Redis,
        name: str,
        *,
        prefix: str = "claimassist",
        default_attempts: int = 1,
        default_backoff: BackoffPolicy | None = None,
        keep_completed: int = 100,
        keep_failed: int = 50,
        clock: EpochClock = time.time,
    ) -> None:
        self._redis = redis
        self.name = name
        self._base = f"{prefix}:{name}"
        self._default_attempts = default_attempts
        self._default_backoff = default_backoff or BackoffPolicy()
        self._keep_completed = keep_completed
        self._keep_failed = keep_failed
        self._clock = clock

    # ---- keys ----

    def _key(self, suffix: str) -> str:
        return f"{self._base}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return f"{self._base}:job:{job_id}"

    def _state_key(self, state: JobState | str) -> str:
        return self._key(JobState(state).value)

    @staticmethod
    def _waiting_score(priority: int, seq: int) -> float:
        priority = max(0, min(MAX_PRIORITY, priority))
        return -priority * PRIORITY_SHIFT + seq

    # ---- producing ----

    async def add(
        self,
        name: str,
        data: dict[str, Any],
        *,
        delay: float | None = None,
        priority: int | None = None,
        job_id: str | None = None,
        attempts: int | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> Job:
        """Enqueue a job. ``delay`` is in seconds.

        When ``job_id`` names a job the queue still holds (in any state),
        nothing is enqueued and the existing job is returned.
        """
        try:
            if job_id is None:
                job_id = str(await self._redis.incr(self._key("id")))
            now = self._clock()
            delay = max(0.0, delay or 0.0)
            job = Job(
                id=job_id,
                name=name,
                data=data,
                priority=priority or 0,
                attempts=attempts or self._default_attempts,
                backoff=backoff or self._default_backoff,
                delay=delay,
                timestamp=now,
                state=JobState.DELAYED if delay > 0 else JobState.WAITING,
            )
            job_key = self._job_key(job_id)
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(job_key)
                        raw = await pipe.get(job_key)
                        if raw is not None:
                            await pipe.unwatch()
                            logger.debug("job_duplicate", queue=self.name, job_id=job_id)
                            return Job.model_validate_json(raw)
                        seq = None if delay > 0 else await pipe.incr(self._key("seq"))
                        pipe.multi()
                        pipe.set(job_key, job.model_dump_json())
                        if seq is None:
                            pipe.zadd(self._state_key(JobState.DELAYED), {job_id: now + delay})
                        else:
                            pipe.zadd(
                                self._state_key(JobState.WAITING),
                                {job_id: self._waiting_score(job.priority, seq)},
                            )
                        await pipe.execute()
                        break
                    except WatchError:
                        continue
        except RedisError as exc:
            raise QueueError(f"Failed to add job to queue {self.name!r}: {exc}") from exc

        logger.debug(
            "job_added",
            queue=self.name,
            job_id=job.id,
            job_name=name,
            priority=job.priority,
            delay=delay,
        )
        return job

    async def add_bulk(self, jobs: list[dict[str, Any]]) -> list[Job]:
        """Enqueue several jobs; each dict holds ``add`` keyword arguments."""
        added = []
        for entry in jobs:
            entry = dict(entry)
            added.append(await self.add(entry.pop("name"), entry.pop("data"), **entry))
        return added

    # ---- consuming ----

    async def fetch_next(self, lock_seconds: float = DEFAULT_LOCK_SECONDS) -> Job | None:
        """Move the highest-priority waiting job to active and return it."""
        if await self.is_paused():
            return None
        waiting_key = self._state_key(JobState.WAITING)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(waiting_key)
                        head = await pipe.zrange(waiting_key, 0, 0)
                        if not head:
                            await pipe.unwatch()
                            return None
                        job_id = head[0]
                        raw = await pipe.get(self._job_key(job_id))
                        pipe.multi()
                        pipe.zrem(waiting_key, job_id)
                        if raw is None:
                            await pipe.execute()
                            continue
                        now = self._clock()
                        job = Job.model_validate_json(raw)
                        job.state = JobState.ACTIVE
                        job.processed_on = now
                        pipe.zadd(self._state_key(JobState.ACTIVE), {job_id: now + lock_seconds})
                        pipe.set(self._job_key(job_id), job.model_dump_json())
                        await pipe.execute()
                        return job
                    except WatchError:
                        continue
        except RedisError as exc:
            raise QueueError(f"Failed to fetch from queue {self.name!r}: {exc}") from exc

    async def complete(self, job: Job, return_value: Any = None) -> Job:
        now = self._clock()
        job.state = JobState.COMPLETED
        job.finished_on = now
        job.return_value = return_value
        await self._finish(job, JobState.COMPLETED, now, self._keep_completed)
        return job

    async def fail(self, job: Job, error: BaseException | str) -> bool:
        """Record a failed attempt. Returns True when the job will be retried."""
        now = self._clock()
        job.attempts_made += 1
        job.failed_reason = str(error)
        if job.attempts_made < job.attempts:
            retry_in = job.backoff.delay_for(job.attempts_made)
            job.state = JobState.DELAYED
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.zrem(self._state_key(JobState.ACTIVE), job.id)
                    pipe.zadd(self._state_key(JobState.DELAYED), {job.id: now + retry_in})
                    pipe.set(self._job_key(job.id), job.model_dump_json())
                    await pipe.execute()
            except RedisError as exc:
                raise QueueError(f"Failed to reschedule job {job.id}: {exc}") from exc
            return True

        job.state = JobState.FAILED
        job.finished_on = now
        await self._finish(job, JobState.FAILED, now, self._keep_failed)
        return False

    async def _finish(self, job: Job, state: JobState, now: float, keep: int) -> None:
        target = self._state_key(state)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self._state_key(JobState.ACTIVE), job.id)
                pipe.zadd(target, {job.id: now})
                pipe.set(self._job_key(job.id), job.model_dump_json())
                await pipe.execute()
            overflow = await self._redis.zrange(target, 0, -(keep + 1)) if keep >= 0 else []
            if overflow:
                await self._drop(target, overflow)
        except RedisError as exc:
            raise QueueError(f"Failed to finish job {job.id}: {exc}") from exc

    async def _drop(self, state_key: str, job_ids: list[str]) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(state_key, *job_ids)
            pipe.delete(*(self._job_key(j) for j in job_ids))
            await pipe.execute()

    # ---- maintenance ----

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose time has come to waiting."""
        delayed_key = self._state_key(JobState.DELAYED)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(delayed_key)
                        due = await pipe.zrangebyscore(delayed_key, "-inf", self._clock())
                        if not due:
                            await pipe.unwatch()
                            return 0
                        raws = [await pipe.get(self._job_key(job_id)) for job_id in due]
                        last_seq = await pipe.incrby(self._key("seq"), len(due))
                        pipe.multi()
                        pipe.zrem(delayed_key, *due)
                        for offset, (job_id, raw) in enumerate(zip(due, raws)):
                            if raw is None:
                                continue
                            job = Job.model_validate_json(raw)
                            job.state = JobState.WAITING
                            seq = last_seq - len(due) + offset + 1
                            pipe.zadd(
                                self._state_key(JobState.WAITING),
                                {job_id: self._waiting_score(job.priority, seq)},
                            )
                            pipe.set(self._job_key(job_id), job.model_dump_json())
                        await pipe.execute()
                        return len(due)
                    except WatchError:
                        continue
        except RedisError as exc:
            raise QueueError(f"Failed to promote delayed jobs in {self.name!r}: {exc}") from exc

    async def requeue_stalled(self) -> list[str]:
        """Return active jobs whose worker lock expired to waiting."""
        active_key = self._state_key(JobState.ACTIVE)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(active_key)
                        stalled = await pipe.zrangebyscore(active_key, "-inf", self._clock())
                        if not stalled:
                            await pipe.unwatch()
                            return []
                        raws = [await pipe.get(self._job_key(job_id)) for job_id in stalled]
                        last_seq = await pipe.incrby(self._key("seq"), len(stalled))
                        pipe.multi()
                        pipe.zrem(active_key, *stalled)
                        for offset, (job_id, raw) in enumerate(zip(stalled, raws)):
                            if raw is None:
                                continue
                            job = Job.model_validate_json(raw)
                            job.state = JobState.WAITING
                            seq = last_seq - len(stalled) + offset + 1
                            pipe.zadd(
                                self._state_key(JobState.WAITING),
                                {job_id: self._waiting_score(job.priority, seq)},
                            )
                            pipe.set(self._job_key(job_id), job.model_dump_json())
                        await pipe.execute()
                        break
                    except WatchError:
                        continue
        except RedisError as exc:
            raise QueueError(f"Failed to requeue stalled jobs in {self.name!r}: {exc}") from exc

        logger.warning("jobs_stalled", queue=self.name, job_ids=stalled)
        return stalled

    async def clean(self, grace_seconds: float, limit: int, state: JobState | str) -> list[str]:
        """Delete up to ``limit`` finished jobs older than ``grace_seconds``."""
        state = JobState(state)
        if state not in (JobState.COMPLETED, JobState.FAILED):
            raise QueueError(f"Only completed or failed jobs can be cleaned, not {state.value}")
        key = self._state_key(state)
        try:
            old = await self._redis.zrangebyscore(
                key, "-inf", self._clock() - grace_seconds, start=0, num=limit
            )
            if old:
                await self._drop(key, old)
        except RedisError as exc:
            raise QueueError(f"Failed to clean queue {self.name!r}: {exc}") from exc
        return old

    # ---- inspection and control ----

    async def get_job(self, job_id: str) -> Job | None:
        try:
            raw = await self._redis.get(self._job_key(job_id))
        except RedisError as exc:
            raise QueueError(f"Failed to read job {job_id}: {exc}") from exc
        return Job.model_validate_json(raw) if raw else None

    async def get_jobs(self, state: JobState | str, limit: int = 50) -> list[Job]:
        """Most recent jobs in a state, newest first for finished states."""
        state = JobState(state)
        key = self._state_key(state)
        try:
            if state in (JobState.COMPLETED, JobState.FAILED):
                ids = await self._redis.zrevrange(key, 0, limit - 1)
            else:
                ids = await self._redis.zrange(key, 0, limit - 1)
            raws = await self._redis.mget([self._job_key(j) for j in ids]) if ids else []
        except RedisError as exc:
            raise QueueError(f"Failed to list {state.value} jobs in {self.name!r}: {exc}") from exc
        return [Job.model_validate_json(raw) for raw in raws if raw]

    async def remove(self, job_id: str) -> bool:
        """Delete a job that is not currently being processed."""
        job = await self.get_job(job_id)
        if job is None:
            return False
        if job.state == JobState.ACTIVE:
            logger.info("job_remove_refused", queue=self.name, job_id=job_id, reason="active")
            return False
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for state in JobState:
                    pipe.zrem(self._state_key(state), job_id)
                pipe.delete(self._job_key(job_id))
                await pipe.execute()
        except RedisError as exc:
            raise QueueError(f"Failed to remove job {job_id}: {exc}") from exc
        logger.info("job_removed", queue=self.name, job_id=job_id)
        return True

    async def get_stats(self) -> QueueStats:
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                for state in JobState:
                    pipe.zcard(self._state_key(state))
                counts = await pipe.execute()
        except RedisError as exc:
            raise QueueError(f"Failed to read stats for {self.name!r}: {exc}") from exc
        return QueueStats(**{state.value: count for state, count in zip(JobState, counts)})

    async def pause(self) -> None:
        await self._redis.set(self._key("paused"), "1")
        logger.info("queue_paused", queue=self.name)

    async def resume(self) -> None:
        await self._redis.delete(self._key("paused"))
        logger.info("queue_resumed", queue=self.name)

    async def is_paused(self) -> bool:
        try:
            return bool(await self._redis.exists(self._key("paused")))
        except RedisError as exc:
            raise QueueError(f"Failed to read pause flag for {self.name!r}: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            logger.warning("queue_ping_failed", queue=self.name, error=str(exc))
            return False

    async def close(self) -> None:
        await self._redis.aclose()


def create_redis_client(config: RedisConfig | None = None) -> Redis:
    """Async client for the queues; responses are decoded to ``str``."""
    config = config or RedisConfig()
    return Redis(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        decode_responses=True,
    )
