"""
Redis queue backend: frontier shared by several worker processes.

Keys (``<name>`` is the queue name):

* ``<name>:jobs``       hash  job id → CrawlJob JSON (the idempotency guard, via HSETNX)
* ``<name>:attempts``   hash  job id → failed attempts
* ``<name>:wait``       list  ids ready to run
* ``<name>:active``     list  ids reserved by a worker (moved atomically with BLMOVE)
* ``<name>:leases``     zset  active ids scored by reserve time; expired leases are requeued
* ``<name>:delayed``    zset  ids waiting for a retry, scored by due time
* ``<name>:completed`` / ``<name>:failed``  counters
"""
from __future__ import annotations

import math
import time
from typing import Optional

from redis import asyncio as aioredis

from job_scout.crawler.models import CrawlJob
from job_scout.errors import TransientError
from job_scout.frontier.base import JobQueue, QueueCounts, QueuedJob
from job_scout.logger import get_logger

__all__ = ["RedisQueue"]

log = get_logger("queue")


class RedisQueue(JobQueue):
    def __init__(
        self,
        client: aioredis.Redis,
        name: str = "job-crawler",
        *,
        max_attempts: int = 3,
        backoff: float = 5.0,
        lease_timeout: float = 600.0,
    ) -> None:
        super().__init__(max_attempts=max_attempts, backoff=backoff)
        self.lease_timeout = lease_timeout
        self.redis = client
        self.name = name
        self.k_jobs = f"{name}:jobs"
        self.k_attempts = f"{name}:attempts"
        self.k_wait = f"{name}:wait"
        self.k_active = f"{name}:active"
        self.k_leases = f"{name}:leases"
        self.k_delayed = f"{name}:delayed"
        self.k_completed = f"{name}:completed"
        self.k_failed = f"{name}:failed"

    @classmethod
    def from_url(cls, url: str, name: str = "job-crawler", **kwargs) -> RedisQueue:
        return cls(aioredis.from_url(url, decode_responses=True), name, **kwargs)

    async def add(self, job: CrawlJob) -> bool:
        jid = job.id
        if not await self.redis.hsetnx(self.k_jobs, jid, job.to_json()):
            return False
        await self.redis.rpush(self.k_wait, jid)
        return True

    async def _recover_stalled(self) -> None:
        """Requeue jobs whose worker vanished without complete/fail."""
        expired = await self.redis.zrangebyscore(self.k_leases, "-inf", time.time() - self.lease_timeout)
        for jid in expired:
            if not await self.redis.zrem(self.k_leases, jid):
                continue
            payload = await self.redis.hget(self.k_jobs, jid)
            if payload is None:
                await self.redis.lrem(self.k_active, 0, jid)
                continue
            log.warning("Job %s stalled for more than %.0fs, requeueing", jid, self.lease_timeout)
            entry = QueuedJob(jid, CrawlJob.from_json(payload))
            await self.fail(entry, TransientError(f"lease expired after {self.lease_timeout}s"))

    async def _promote_due(self) -> None:
        await self._recover_stalled()
        due = await self.redis.zrangebyscore(self.k_delayed, "-inf", time.time())
        for jid in due:
            # only the worker whose ZREM succeeds moves the id
            if await self.redis.zrem(self.k_delayed, jid):
                await self.redis.rpush(self.k_wait, jid)

    async def reserve(self, timeout: float = 1.0) -> Optional[QueuedJob]:
        await self._promote_due()
        # BLMOVE timeout 0 blocks forever
        block = max(1, math.ceil(timeout))
        jid = await self.redis.blmove(self.k_wait, self.k_active, block, "LEFT", "RIGHT")
        if jid is None:
            return None
        payload = await self.redis.hget(self.k_jobs, jid)
        if payload is None:
            log.warning("Orphan job id %s in %s, discarding", jid, self.k_wait)
            await self.redis.lrem(self.k_active, 0, jid)
            return None
        await self.redis.zadd(self.k_leases, {jid: time.time()})
        attempts = int(await self.redis.hget(self.k_attempts, jid) or 0)
        return QueuedJob(jid, CrawlJob.from_json(payload), attempts)

    async def complete(self, entry: QueuedJob) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.k_active, 0, entry.id)
            pipe.zrem(self.k_leases, entry.id)
            pipe.hdel(self.k_jobs, entry.id)
            pipe.hdel(self.k_attempts, entry.id)
            pipe.incr(self.k_completed)
            await pipe.execute()

    async def fail(self, entry: QueuedJob, exc: BaseException) -> bool:
        entry.attempts = int(await self.redis.hincrby(self.k_attempts, entry.id, 1))
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.k_active, 0, entry.id)
            pipe.zrem(self.k_leases, entry.id)
            if entry.attempts < self.max_attempts:
                delay = self.backoff_for(entry.attempts)
                pipe.zadd(self.k_delayed, {entry.id: time.time() + delay})
                await pipe.execute()
                log.info("Job %s failed (%s), retry %d/%d in %.1fs",
                         entry.id, exc, entry.attempts, self.max_attempts - 1, delay)
                return True
            pipe.hdel(self.k_jobs, entry.id)
            pipe.hdel(self.k_attempts, entry.id)
            pipe.incr(self.k_failed)
            await pipe.execute()
        log.warning("Job %s dropped after %d attempts: %s (%s)",
                    entry.id, entry.attempts, entry.job.url, exc)
        return False

    async def counts(self) -> QueueCounts:
        async with self.redis.pipeline(transaction=False) as pipe:
            pipe.llen(self.k_wait)
            pipe.zcard(self.k_delayed)
            pipe.llen(self.k_active)
            pipe.get(self.k_completed)
            pipe.get(self.k_failed)
            waiting, delayed, active, completed, failed = await pipe.execute()
        return QueueCounts(
            waiting=int(waiting),
            delayed=int(delayed),
            active=int(active),
            completed=int(completed or 0),
            failed=int(failed or 0),
        )

    async def close(self) -> None:
        await self.redis.aclose()
