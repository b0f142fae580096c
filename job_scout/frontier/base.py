"""
Queue backend contract for the crawl frontier.

A backend stores :class:`~job_scout.crawler.models.CrawlJob` objects keyed by
their idempotency key, hands them to workers one at a time and keeps retry
bookkeeping: failed jobs come back after an exponential backoff until
``max_attempts`` is reached, then they are dropped and counted as failed.
"""
from __future__ import annotations

import abc
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from job_scout.crawler.models import CrawlJob

__all__ = ["JobQueue", "QueuedJob", "QueueCounts"]


@dataclass(slots=True)
class QueuedJob:
    """A reserved job plus the number of failed attempts behind it."""

    id: str
    job: CrawlJob
    attempts: int = 0


@dataclass(frozen=True, slots=True)
class QueueCounts:
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def idle(self) -> bool:
        """No job waiting, scheduled for retry, or running."""
        return self.waiting == 0 and self.delayed == 0 and self.active == 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class JobQueue(abc.ABC):
    """Durable-ish FIFO with idempotent enqueue and retry/backoff."""

    def __init__(self, *, max_attempts: int = 3, backoff: float = 5.0) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff = backoff

    async def __aenter__(self) -> JobQueue:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def backoff_for(self, attempts: int) -> float:
        """Delay before retry number *attempts* (1-based): ``backoff * 2**(attempts-1)``."""
        return self.backoff * (2 ** max(0, attempts - 1))

    @abc.abstractmethod
    async def add(self, job: CrawlJob) -> bool:
        """Enqueue *job*; ``False`` when the same key is already waiting, delayed or active."""

    @abc.abstractmethod
    async def reserve(self, timeout: float = 1.0) -> Optional[QueuedJob]:
        """Take the next due job, waiting at most *timeout* seconds."""

    @abc.abstractmethod
    async def complete(self, entry: QueuedJob) -> None:
        """Mark *entry* done and forget its key."""

    @abc.abstractmethod
    async def fail(self, entry: QueuedJob, exc: BaseException) -> bool:
        """Record a failed attempt; ``True`` if the job was rescheduled."""

    @abc.abstractmethod
    async def counts(self) -> QueueCounts:
        """Job-state introspection."""

    async def close(self) -> None:
        return None
