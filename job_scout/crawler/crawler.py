from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Set

from job_scout.agent.decision import DecisionMachine, Done, Follow, Reject, Stop, Verdict
from job_scout.config import CrawlerConfig
from job_scout.crawler.fetcher import Fetcher
from job_scout.crawler.link_filter import LinkFilter
from job_scout.crawler.models import CrawlJob, PageSignals
from job_scout.frontier.base import JobQueue
from job_scout.logger import get_logger
from job_scout.storage.results import ResultStore
from job_scout.utils import canonicalize

__all__ = ("QueueWorker", "JobOutcome", "RunStats", "build_record")

_POLL_INTERVAL = 0.1
_RESERVE_TIMEOUT = 0.5


@dataclass(slots=True)
class JobOutcome:
    """What one job ended with. ``status`` is ``completed``, ``no_page`` or ``skipped``."""
    status: str
    url: str
    decision: Optional[str] = None
    children: int = 0


@dataclass(slots=True)
class RunStats:
    processed: int = 0
    retried: int = 0
    dropped: int = 0
    saved: int = 0
    enqueued: int = 0
    no_page: int = 0
    decisions: Counter = field(default_factory=Counter)
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "retried": self.retried,
            "dropped": self.dropped,
            "saved": self.saved,
            "enqueued": self.enqueued,
            "no_page": self.no_page,
            "decisions": dict(self.decisions),
            "duration": round(self.duration, 2),
        }


def build_record(job: CrawlJob, verdict: Verdict) -> Dict[str, Any]:
    """Result record for a DONE verdict.

    Precedence per field: schema.org JobPosting > classifier data > page heuristics.
    """
    page, score = verdict.page, verdict.score
    data = dict(verdict.decision.data) if isinstance(verdict.decision, Done) else {}
    structured = page.structured_job.to_dict() if page.structured_job else {}
    record: Dict[str, Any] = {**data, **structured}
    record["url"] = page.url
    if not record.get("title") and page.title:
        record["title"] = page.title
    if not record.get("email") and page.emails:
        record["email"] = page.emails[0]
    record["score"] = score.score
    record["reasons"] = list(score.reasons)
    record["source"] = job.source
    return record


class QueueWorker:
    """Frontier manager: pulls jobs, fetches, enqueues children, decides, persists."""

    def __init__(
        self,
        config: CrawlerConfig,
        queue: JobQueue,
        fetcher: Fetcher,
        link_filter: LinkFilter,
        machine: DecisionMachine,
        store: ResultStore,
    ) -> None:
        self.config = config
        self.queue = queue
        self.fetcher = fetcher
        self.link_filter = link_filter
        self.machine = machine
        self.store = store
        self.visited: Set[str] = set()
        self.stats = RunStats()
        self.logger = get_logger("worker")
        self._rate_lock = asyncio.Lock()
        self._last_job_ts = 0.0

    # ------------------------------------------------------------------ frontier
    async def submit(self, job: CrawlJob) -> bool:
        """Enqueue *job* with a canonical URL; ``False`` if it is already queued."""
        job = job.model_copy(update={"url": canonicalize(job.url)})
        return await self.queue.add(job)

    async def enqueue_children(self, job: CrawlJob, links: Iterable[str]) -> int:
        """Enqueue *links* one level below *job*; no-op at ``max_depth``."""
        if job.depth >= job.max_depth:
            return 0
        children = [job.child(link) for link in links if link]
        results = await asyncio.gather(*(self.queue.add(c) for c in children), return_exceptions=True)
        added = sum(1 for r in results if r is True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            self.logger.warning("[%s] %d child enqueues failed, e.g. %s", job.source, len(errors), errors[0])
        if children:
            self.logger.info("[%s] children depth=%d: %d new, %d already queued",
                             job.source, job.depth + 1, added, len(children) - added - len(errors))
        self.stats.enqueued += added
        return added

    # ------------------------------------------------------------------ one job
    async def process(self, job: CrawlJob) -> JobOutcome:
        """Run one job. Exceptions propagate so the queue can retry."""
        url = canonicalize(job.url)
        if url in self.visited:
            self.logger.debug("Already visited in this run: %s", url)
            return JobOutcome("skipped", url)
        self.visited.add(url)
        try:
            return await self._process(job.model_copy(update={"url": url}))
        except BaseException:
            self.visited.discard(url)
            raise

    async def _process(self, job: CrawlJob) -> JobOutcome:
        self.logger.info("[%s] depth=%d/%d %s", job.source, job.depth, job.max_depth, job.url)
        page = await self.fetcher.fetch(job.url)
        if page is None:
            self.stats.no_page += 1
            return JobOutcome("no_page", job.url)

        ranked = await self.link_filter.filter_and_rank(page.links, page.url, page.next_link)
        page = replace(page, links=tuple(ranked))
        children = await self.enqueue_children(job, page.links[: job.child_limit])

        async def _enqueue_crawled(crawled: PageSignals) -> None:
            await self.enqueue_children(job, crawled.links[: job.child_limit])

        verdict = await self.machine.run(job, page, on_crawled=_enqueue_crawled)
        decision = verdict.decision
        if isinstance(decision, Done):
            stored = await self.store.upsert(build_record(job, verdict))
            if stored is not None:
                self.stats.saved += 1
        elif isinstance(decision, Follow):
            self.logger.info("[%s] FOLLOW %d targets (%s)", job.source, len(decision.targets), decision.reason)
            children += await self.enqueue_children(job, decision.targets[: job.child_limit])
        elif isinstance(decision, (Reject, Stop)):
            self.logger.info("[%s] %s %s: %s", job.source, verdict.state.value, job.url, decision.reason)

        self.stats.decisions[verdict.state.value] += 1
        return JobOutcome("completed", job.url, verdict.state.value, children)

    # ------------------------------------------------------------------ pool
    async def run(self, *, until_idle: bool = True) -> RunStats:
        """Start ``concurrency`` workers; return once the queue stays idle (or never)."""
        self.logger.info("Workers: %d, rate limit %.1f jobs/s", self.config.concurrency, self.config.rate_limit)
        start = time.monotonic()
        stop = asyncio.Event()
        workers = [asyncio.create_task(self._worker(i, stop)) for i in range(self.config.concurrency)]
        try:
            if until_idle:
                await self._wait_until_idle()
                stop.set()
            await asyncio.gather(*workers)
        finally:
            stop.set()
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
        self.stats.duration = time.monotonic() - start
        self.logger.info("Finished: %s", self.stats.to_dict())
        return self.stats

    async def _wait_until_idle(self) -> None:
        idle_since: Optional[float] = None
        while True:
            counts = await self.queue.counts()
            now = time.monotonic()
            if counts.idle:
                idle_since = idle_since if idle_since is not None else now
                if now - idle_since >= self.config.idle_timeout:
                    return
            else:
                idle_since = None
            await asyncio.sleep(_POLL_INTERVAL)

    async def _worker(self, n: int, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                entry = await self.queue.reserve(timeout=_RESERVE_TIMEOUT)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                self.logger.error("Worker %d: queue backend unavailable: %s", n, exc)
                await asyncio.sleep(1.0)
                continue
            if entry is None:
                continue

            await self._wait_for_rate_limit()
            try:
                await self.process(entry.job)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.logger.error("Job %s failed: %s: %s", entry.id, exc.__class__.__name__, exc)
                if await self.queue.fail(entry, exc):
                    self.stats.retried += 1
                else:
                    self.stats.dropped += 1
                continue
            await self.queue.complete(entry)
            self.stats.processed += 1

    async def _wait_for_rate_limit(self) -> None:
        interval = 1 / self.config.rate_limit
        async with self._rate_lock:
            now = time.monotonic()
            wait = interval - (now - self._last_job_ts)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_job_ts = time.monotonic()
