"""job_scout.frontier: queue backends holding not-yet-processed crawl jobs."""

from __future__ import annotations

from job_scout.config import CrawlerConfig
from job_scout.frontier.base import JobQueue, QueueCounts, QueuedJob
from job_scout.frontier.memory import MemoryQueue
from job_scout.frontier.redis_queue import RedisQueue


def make_queue(config: CrawlerConfig) -> JobQueue:
    """Build the backend selected by ``config.queue_backend``."""
    if config.queue_backend == "redis":
        return RedisQueue.from_url(
            config.redis_url,
            config.queue_name,
            max_attempts=config.max_attempts,
            backoff=config.backoff,
            lease_timeout=config.lease_timeout,
        )
    return MemoryQueue(max_attempts=config.max_attempts, backoff=config.backoff)


__all__ = ["JobQueue", "QueueCounts", "QueuedJob", "MemoryQueue", "RedisQueue", "make_queue"]
