"""QueueWorker: runs a handler over a RedisJobQueue with bounded concurrency."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from claimassist.core.exceptions import QueueError
from claimassist.queue.job import Job
from claimassist.queue.rate_limit import TokenBucket
from claimassist.queue.redis_queue import DEFAULT_LOCK_SECONDS, RedisJobQueue

logger = structlog.get_logger(__name__)

JobHandler = Callable[[Job], Awaitable[Any]]


class QueueWorker:
    """Consumes one queue.

    ``concurrency`` consumer tasks each fetch a job, wait for a rate-limit
    token, run the handler and report the outcome back to the queue. A
    handler that raises fails the attempt; the queue decides whether to retry.
    """

    def __init__(
        self,
        queue: RedisJobQueue,
        handler: JobHandler,
        *,
        concurrency: int = 1,
        limiter: TokenBucket | None = None,
        poll_interval: float = 0.5,
        lock_seconds: float = DEFAULT_LOCK_SECONDS,
    ) -> None:
        self.queue = queue
        self._handler = handler
        self._concurrency = max(1, concurrency)
        self._limiter = limiter
        self._poll_interval = poll_interval
        self._lock_seconds = lock_seconds
        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()
        self.processed = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def process_next(self) -> Job | None:
        """Run at most one job. Returns the job after its outcome is recorded."""
        await self.queue.promote_delayed()
        job = await self.queue.fetch_next(self._lock_seconds)
        if job is None:
            return None
        if self._limiter is not None:
            await self._limiter.acquire()

        log = logger.bind(queue=self.queue.name, job_id=job.id, job_name=job.name)
        log.debug("job_started", attempt=job.attempts_made + 1)
        try:
            result = await self._handler(job)
        except Exception as exc:
            will_retry = await self.queue.fail(job, exc)
            self.failed += 1
            log.error(
                "job_failed",
                error=str(exc),
                attempts_made=job.attempts_made,
                will_retry=will_retry,
            )
            return job

        await self.queue.complete(job, result)
        self.processed += 1
        log.info("job_completed")
        return job

    async def drain(self) -> int:
        """Process until nothing is runnable right now. Returns jobs handled."""
        handled = 0
        while await self.process_next() is not None:
            handled += 1
        return handled

    async def _consume(self, index: int) -> None:
        while not self._stopping.is_set():
            try:
                job = await self.process_next()
            except QueueError as exc:
                logger.error("worker_error", queue=self.queue.name, consumer=index, error=str(exc))
                job = None
            if job is None:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    pass

    async def start(self) -> None:
        if self.is_running:
            return
        self._stopping.clear()
        await self.queue.requeue_stalled()
        self._tasks = [
            asyncio.create_task(self._consume(i), name=f"{self.queue.name}-worker-{i}")
            for i in range(self._concurrency)
        ]
        logger.info("worker_started", queue=self.queue.name, concurrency=self._concurrency)

    async def close(self) -> None:
        """Stop fetching and wait for in-flight jobs to finish."""
        self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks)
        self._tasks = []
        logger.info("worker_stopped", queue=self.queue.name)
