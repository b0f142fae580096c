# File: tests/test_frontier.py
from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis import aioredis as fake_aioredis

from job_scout.config import CrawlerConfig
from job_scout.crawler.models import CrawlJob
from job_scout.frontier import MemoryQueue, RedisQueue, make_queue


def _job(url: str = "https://example.org/jobs", depth: int = 0, source: str = "src") -> CrawlJob:
    return CrawlJob(url=url, depth=depth, source=source, max_depth=2, child_limit=5)


@pytest_asyncio.fixture(params=["memory", "redis"])
async def queue(request):
    if request.param == "memory":
        q = MemoryQueue(max_attempts=3, backoff=0.0)
    else:
        q = RedisQueue(fake_aioredis.FakeRedis(decode_responses=True), "test-q", max_attempts=3, backoff=0.0)
    yield q
    await q.close()


def test_crawl_job_json_roundtrip_keeps_schema():
    job = CrawlJob.model_validate(
        {"url": "https://example.org", "depth": 1, "source": "s", "maxDepth": 3, "childLimit": 7,
         "schema": {"title": "Title"}}
    )
    again = CrawlJob.from_json(job.to_json())
    assert again == job
    assert again.extraction_schema == {"title": "Title"}
    assert again.max_depth == 3


def test_child_job_is_one_level_deeper():
    child = _job(depth=1).child("https://example.org/jobs/1/?utm_source=x")
    assert child.depth == 2
    assert child.url == "https://example.org/jobs/1"
    assert child.source == "src"


def test_backoff_is_exponential():
    q = MemoryQueue(backoff=5.0)
    assert [q.backoff_for(n) for n in (1, 2, 3)] == [5.0, 10.0, 20.0]


@pytest.mark.asyncio()
async def test_duplicate_triple_is_enqueued_once(queue):
    assert await queue.add(_job()) is True
    assert await queue.add(_job(url="https://EXAMPLE.org/jobs/?utm_source=x")) is False
    # same URL at another depth is a different job
    assert await queue.add(_job(depth=1)) is True
    counts = await queue.counts()
    assert counts.waiting == 2


@pytest.mark.asyncio()
async def test_reserve_complete_cycle(queue):
    await queue.add(_job())
    entry = await queue.reserve(timeout=1.0)
    assert entry is not None
    assert entry.job.url == "https://example.org/jobs"
    assert (await queue.counts()).active == 1
    # still known while active
    assert await queue.add(_job()) is False

    await queue.complete(entry)
    counts = await queue.counts()
    assert counts.idle
    assert counts.completed == 1


@pytest.mark.asyncio()
async def test_reserve_on_empty_queue_times_out(queue):
    assert await queue.reserve(timeout=0.1) is None


@pytest.mark.asyncio()
async def test_failed_job_is_retried_then_dropped(queue):
    await queue.add(_job())
    error = RuntimeError("transient")
    for attempt in (1, 2):
        entry = await queue.reserve(timeout=1.0)
        assert entry is not None
        assert entry.attempts == attempt - 1
        assert await queue.fail(entry, error) is True

    entry = await queue.reserve(timeout=1.0)
    assert entry is not None
    assert await queue.fail(entry, error) is False
    counts = await queue.counts()
    assert counts.idle
    assert counts.failed == 1
    # forgotten after the drop: the key is free again
    assert await queue.add(_job()) is True


@pytest.mark.asyncio()
async def test_retry_waits_for_backoff():
    q = MemoryQueue(max_attempts=2, backoff=0.3)
    await q.add(_job())
    entry = await q.reserve(timeout=0.1)
    await q.fail(entry, RuntimeError("x"))
    assert (await q.counts()).delayed == 1
    assert await q.reserve(timeout=0.05) is None
    again = await q.reserve(timeout=1.0)
    assert again is not None
    assert again.attempts == 1


@pytest.mark.asyncio()
async def test_waiting_reserve_is_woken_by_add():
    q = MemoryQueue()

    async def later():
        await asyncio.sleep(0.05)
        await q.add(_job())

    task = asyncio.create_task(later())
    entry = await q.reserve(timeout=2.0)
    await task
    assert entry is not None


def test_make_queue_selects_backend():
    assert isinstance(make_queue(CrawlerConfig()), MemoryQueue)
    q = make_queue(CrawlerConfig(queue_backend="redis", redis_url="redis://localhost:6399/1", queue_name="x"))
    assert isinstance(q, RedisQueue)
    assert q.k_wait == "x:wait"
    assert q.lease_timeout == 600.0


def _shared_redis_queue(server: FakeServer, **kwargs) -> RedisQueue:
    client = fake_aioredis.FakeRedis(server=server, decode_responses=True)
    return RedisQueue(client, "lease-q", backoff=0.0, lease_timeout=0.1, **kwargs)


@pytest.mark.asyncio()
async def test_abandoned_reservation_is_requeued():
    server = FakeServer()
    crashed = _shared_redis_queue(server)
    await crashed.add(_job())
    assert await crashed.reserve(timeout=1.0) is not None
    # the reserving worker goes away without complete/fail

    survivor = _shared_redis_queue(server)
    assert (await survivor.counts()).active == 1
    assert await survivor.add(_job()) is False

    await asyncio.sleep(0.2)
    entry = await survivor.reserve(timeout=1.0)
    assert entry is not None
    assert entry.job.url == "https://example.org/jobs"
    assert entry.attempts == 1

    await survivor.complete(entry)
    counts = await survivor.counts()
    assert counts.idle
    assert counts.completed == 1
    assert await survivor.add(_job()) is True
    await survivor.close()


@pytest.mark.asyncio()
async def test_stalled_job_on_last_attempt_is_dropped():
    server = FakeServer()
    crashed = _shared_redis_queue(server, max_attempts=1)
    await crashed.add(_job())
    assert await crashed.reserve(timeout=1.0) is not None

    survivor = _shared_redis_queue(server, max_attempts=1)
    await asyncio.sleep(0.2)
    assert await survivor.reserve(timeout=0.1) is None
    counts = await survivor.counts()
    assert counts.idle
    assert counts.failed == 1
    await survivor.close()


@pytest.mark.asyncio()
async def test_live_lease_is_left_alone():
    server = FakeServer()
    q = RedisQueue(fake_aioredis.FakeRedis(server=server, decode_responses=True), "lease-q", lease_timeout=60.0)
    await q.add(_job())
    entry = await q.reserve(timeout=1.0)
    assert await q.reserve(timeout=0.1) is None
    assert (await q.counts()).active == 1
    await q.complete(entry)
    assert (await q.counts()).idle
    await q.close()
