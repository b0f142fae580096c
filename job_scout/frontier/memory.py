"""
In-process queue backend (single process, nothing survives a restart).
"""
from __future__ import annotations

import asyncio
import heapq
from collections import deque
from typing import Deque, Dict, List, Optional, Set, Tuple

from job_scout.crawler.models import CrawlJob
from job_scout.frontier.base import JobQueue, QueueCounts, QueuedJob
from job_scout.logger import get_logger

__all__ = ["MemoryQueue"]

log = get_logger("queue")


class MemoryQueue(JobQueue):
    """asyncio implementation of :class:`JobQueue`."""

    def __init__(self, *, max_attempts: int = 3, backoff: float = 5.0) -> None:
        super().__init__(max_attempts=max_attempts, backoff=backoff)
        self._jobs: Dict[str, QueuedJob] = {}
        self._waiting: Deque[str] = deque()
        self._delayed: List[Tuple[float, str]] = []
        self._active: Set[str] = set()
        self._completed = 0
        self._failed = 0
        self._cond = asyncio.Condition()

    @staticmethod
    def _clock() -> float:
        return asyncio.get_running_loop().time()

    def _promote_due(self, now: float) -> None:
        while self._delayed and self._delayed[0][0] <= now:
            _, jid = heapq.heappop(self._delayed)
            self._waiting.append(jid)

    async def add(self, job: CrawlJob) -> bool:
        jid = job.id
        async with self._cond:
            if jid in self._jobs:
                return False
            self._jobs[jid] = QueuedJob(jid, job)
            self._waiting.append(jid)
            self._cond.notify()
        return True

    async def reserve(self, timeout: float = 1.0) -> Optional[QueuedJob]:
        deadline = self._clock() + timeout
        async with self._cond:
            while True:
                now = self._clock()
                self._promote_due(now)
                if self._waiting:
                    jid = self._waiting.popleft()
                    self._active.add(jid)
                    return self._jobs[jid]
                remaining = deadline - now
                if remaining <= 0:
                    return None
                if self._delayed:
                    remaining = min(remaining, self._delayed[0][0] - now)
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout=max(remaining, 0.0))
                except asyncio.TimeoutError:
                    pass

    async def complete(self, entry: QueuedJob) -> None:
        async with self._cond:
            self._active.discard(entry.id)
            self._jobs.pop(entry.id, None)
            self._completed += 1

    async def fail(self, entry: QueuedJob, exc: BaseException) -> bool:
        async with self._cond:
            self._active.discard(entry.id)
            entry.attempts += 1
            if entry.attempts < self.max_attempts:
                delay = self.backoff_for(entry.attempts)
                heapq.heappush(self._delayed, (self._clock() + delay, entry.id))
                self._cond.notify()
                log.info("Job %s failed (%s), retry %d/%d in %.1fs",
                         entry.id, exc, entry.attempts, self.max_attempts - 1, delay)
                return True
            self._jobs.pop(entry.id, None)
            self._failed += 1
        log.warning("Job %s dropped after %d attempts: %s (%s)",
                    entry.id, entry.attempts, entry.job.url, exc)
        return False

    async def counts(self) -> QueueCounts:
        async with self._cond:
            return QueueCounts(
                waiting=len(self._waiting),
                delayed=len(self._delayed),
                active=len(self._active),
                completed=self._completed,
                failed=self._failed,
            )
