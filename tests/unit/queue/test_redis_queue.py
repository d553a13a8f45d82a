"""Unit tests for RedisJobQueue using fakeredis."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from claimassist.core.exceptions import QueueError
from claimassist.core.protocols import IJobQueue
from claimassist.queue.job import BackoffPolicy, JobState
from claimassist.queue.redis_queue import RedisJobQueue
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def queue(redis, clock):
    return RedisJobQueue(
        redis,
        "test",
        default_attempts=3,
        default_backoff=BackoffPolicy(delay=2.0),
        keep_completed=2,
        keep_failed=2,
        clock=clock.epoch,
    )


class TestProtocol:
    def test_satisfies_job_queue_protocol(self, queue):
        assert isinstance(queue, IJobQueue)


class TestAdd:
    @pytest.mark.asyncio
    async def test_generates_sequential_ids(self, queue):
        first = await queue.add("job", {"n": 1})
        second = await queue.add("job", {"n": 2})
        assert (first.id, second.id) == ("1", "2")
        assert first.state == JobState.WAITING

    @pytest.mark.asyncio
    async def test_duplicate_job_id_returns_existing(self, queue):
        original = await queue.add("job", {"n": 1}, job_id="fixed")
        duplicate = await queue.add("job", {"n": 2}, job_id="fixed")

        assert duplicate.data == original.data == {"n": 1}
        stats = await queue.get_stats()
        assert stats.waiting == 1

    @pytest.mark.asyncio
    async def test_delay_parks_job_in_delayed(self, queue):
        job = await queue.add("job", {}, delay=60)
        assert job.state == JobState.DELAYED
        stats = await queue.get_stats()
        assert (stats.waiting, stats.delayed) == (0, 1)

    @pytest.mark.asyncio
    async def test_default_attempts_apply(self, queue):
        job = await queue.add("job", {})
        assert job.attempts == 3
        assert (await queue.add("job", {}, attempts=1)).attempts == 1

    @pytest.mark.asyncio
    async def test_add_bulk(self, queue):
        jobs = await queue.add_bulk([
            {"name": "a", "data": {}},
            {"name": "b", "data": {}, "priority": 10},
        ])
        assert [j.name for j in jobs] == ["a", "b"]
        assert (await queue.get_stats()).waiting == 2

    @pytest.mark.asyncio
    async def test_broker_error_becomes_queue_error(self):
        broken = MagicMock()
        broken.incr = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        queue = RedisJobQueue(broken, "broken")
        with pytest.raises(QueueError, match="connection refused"):
            await queue.add("job", {})


class TestOrdering:
    @pytest.mark.asyncio
    async def test_higher_priority_first(self, queue):
        await queue.add("low", {}, priority=25)
        await queue.add("urgent", {}, priority=100)
        await queue.add("medium", {}, priority=50)

        names = [(await queue.fetch_next()).name for _ in range(3)]
        assert names == ["urgent", "medium", "low"]

    @pytest.mark.asyncio
    async def test_fifo_within_equal_priority(self, queue):
        for name in ("a", "b", "c"):
            await queue.add(name, {}, priority=50)
        names = [(await queue.fetch_next()).name for _ in range(3)]
        assert names == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_fetch_marks_active(self, queue, clock):
        await queue.add("job", {})
        job = await queue.fetch_next()
        assert job.state == JobState.ACTIVE
        assert job.processed_on == clock.epoch()
        assert (await queue.get_stats()).active == 1
        assert await queue.fetch_next() is None


class TestDelayed:
    @pytest.mark.asyncio
    async def test_not_visible_before_due(self, queue, clock):
        await queue.add("later", {}, delay=30)
        clock.advance(seconds=29)
        assert await queue.promote_delayed() == 0
        assert await queue.fetch_next() is None

    @pytest.mark.asyncio
    async def test_promoted_when_due(self, queue, clock):
        await queue.add("later", {}, delay=30)
        clock.advance(seconds=30)
        assert await queue.promote_delayed() == 1
        job = await queue.fetch_next()
        assert job.name == "later"

    @pytest.mark.asyncio
    async def test_promoted_jobs_keep_priority(self, queue, clock):
        await queue.add("low", {}, priority=10, delay=5)
        await queue.add("high", {}, priority=90, delay=5)
        clock.advance(seconds=5)
        await queue.promote_delayed()
        assert (await queue.fetch_next()).name == "high"


class TestRetry:
    @pytest.mark.asyncio
    async def test_exponential_backoff_then_failed(self, queue, clock):
        await queue.add("flaky", {})

        job = await queue.fetch_next()
        assert await queue.fail(job, RuntimeError("boom")) is True
        clock.advance(seconds=1.9)
        await queue.promote_delayed()
        assert await queue.fetch_next() is None
        clock.advance(seconds=0.1)
        await queue.promote_delayed()
        job = await queue.fetch_next()
        assert job.attempts_made == 1

        assert await queue.fail(job, RuntimeError("boom")) is True
        clock.advance(seconds=3.9)
        await queue.promote_delayed()
        assert await queue.fetch_next() is None
        clock.advance(seconds=0.1)
        await queue.promote_delayed()
        job = await queue.fetch_next()

        assert await queue.fail(job, RuntimeError("still broken")) is False
        stored = await queue.get_job(job.id)
        assert stored.state == JobState.FAILED
        assert stored.attempts_made == 3
        assert stored.failed_reason == "still broken"
        assert (await queue.get_stats()).failed == 1

    @pytest.mark.asyncio
    async def test_single_attempt_fails_immediately(self, queue):
        await queue.add("once", {}, attempts=1)
        job = await queue.fetch_next()
        assert await queue.fail(job, "nope") is False


class TestCompletionAndRetention:
    @pytest.mark.asyncio
    async def test_complete_stores_return_value(self, queue):
        await queue.add("job", {})
        job = await queue.fetch_next()
        await queue.complete(job, {"ok": True})

        stored = await queue.get_job(job.id)
        assert stored.state == JobState.COMPLETED
        assert stored.return_value == {"ok": True}

    @pytest.mark.asyncio
    async def test_keeps_only_newest_completed(self, queue, clock):
        for _ in range(3):
            await queue.add("job", {})
        for _ in range(3):
            job = await queue.fetch_next()
            clock.advance(seconds=1)
            await queue.complete(job)

        assert (await queue.get_stats()).completed == 2
        assert await queue.get_job("1") is None
        assert await queue.get_job("3") is not None

    @pytest.mark.asyncio
    async def test_clean_removes_old_finished_jobs(self, queue, clock):
        await queue.add("old", {})
        await queue.complete(await queue.fetch_next())
        clock.advance(hours=25)
        await queue.add("new", {})
        await queue.complete(await queue.fetch_next())

        removed = await queue.clean(24 * 3600, 100, JobState.COMPLETED)
        assert removed == ["1"]
        assert (await queue.get_stats()).completed == 1

    @pytest.mark.asyncio
    async def test_clean_rejects_open_states(self, queue):
        with pytest.raises(QueueError):
            await queue.clean(0, 10, JobState.WAITING)

    @pytest.mark.asyncio
    async def test_get_jobs_lists_failed_newest_first(self, queue, clock):
        for name in ("a", "b"):
            await queue.add(name, {}, attempts=1)
            await queue.fail(await queue.fetch_next(), "x")
            clock.advance(seconds=1)
        jobs = await queue.get_jobs(JobState.FAILED)
        assert [j.name for j in jobs] == ["b", "a"]


class TestRemove:
    @pytest.mark.asyncio
    async def test_removes_waiting_job(self, queue):
        job = await queue.add("job", {})
        assert await queue.remove(job.id) is True
        assert await queue.get_job(job.id) is None
        assert (await queue.get_stats()).waiting == 0

    @pytest.mark.asyncio
    async def test_removes_delayed_job(self, queue):
        job = await queue.add("job", {}, delay=60)
        assert await queue.remove(job.id) is True
        assert (await queue.get_stats()).delayed == 0

    @pytest.mark.asyncio
    async def test_refuses_active_job(self, queue):
        await queue.add("job", {})
        job = await queue.fetch_next()
        assert await queue.remove(job.id) is False
        assert (await queue.get_stats()).active == 1

    @pytest.mark.asyncio
    async def test_unknown_job(self, queue):
        assert await queue.remove("missing") is False

    @pytest.mark.asyncio
    async def test_removed_id_can_be_reused(self, queue):
        await queue.add("job", {"v": 1}, job_id="dup")
        await queue.remove("dup")
        job = await queue.add("job", {"v": 2}, job_id="dup")
        assert job.data == {"v": 2}


class TestStalledAndPause:
    @pytest.mark.asyncio
    async def test_requeues_jobs_with_expired_lock(self, queue, clock):
        await queue.add("job", {})
        job = await queue.fetch_next(lock_seconds=30)
        assert await queue.requeue_stalled() == []

        clock.advance(seconds=31)
        assert await queue.requeue_stalled() == [job.id]
        stats = await queue.get_stats()
        assert (stats.active, stats.waiting) == (0, 1)

    @pytest.mark.asyncio
    async def test_paused_queue_hands_out_nothing(self, queue):
        await queue.add("job", {})
        await queue.pause()
        assert await queue.is_paused()
        assert await queue.fetch_next() is None
        await queue.resume()
        assert (await queue.fetch_next()).name == "job"

    @pytest.mark.asyncio
    async def test_ping(self, queue):
        assert await queue.ping() is True
