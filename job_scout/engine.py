# File: job_scout/engine.py
"""job_scout.engine: Orchestration layer: сборка компонентов, засев целей и запуск воркеров."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from aiohttp import ClientSession

from job_scout.agent.classifier import OpenAIClassifier
from job_scout.agent.decision import DecisionMachine, PageClassifier
from job_scout.config import CrawlerConfig, ScanTarget, normalize_schema
from job_scout.crawler.browser import BrowserPool
from job_scout.crawler.crawler import QueueWorker, RunStats
from job_scout.crawler.fetcher import Fetcher
from job_scout.crawler.link_filter import LinkFilter, LinkSelector
from job_scout.crawler.models import CrawlJob
from job_scout.frontier import JobQueue, QueueCounts, make_queue
from job_scout.logger import logger
from job_scout.storage.results import ResultStore
from job_scout.utils import canonicalize

__all__ = ["Engine", "start_scan", "run_worker", "submit_url", "queue_status"]


class Engine:
    """Фасад для CLI и тестов: владеет HTTP-сессией, браузером, очередью и хранилищем.

    Каждый компонент можно подменить (тесты передают фейковый классификатор,
    очередь или пул браузера); по умолчанию всё строится из ``config``.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        *,
        queue: Optional[JobQueue] = None,
        classifier: Optional[PageClassifier] = None,
        selector: Optional[LinkSelector] = None,
        pool: Optional[BrowserPool] = None,
        store: Optional[ResultStore] = None,
    ) -> None:
        self.config = config
        self.queue = queue
        self.classifier = classifier
        self.selector = selector
        self.pool = pool
        self.store = store
        self.session: Optional[ClientSession] = None
        self.worker: Optional[QueueWorker] = None

    async def __aenter__(self) -> Engine:
        cfg = self.config
        if self.classifier is None:
            self.classifier = OpenAIClassifier(cfg)
        if self.selector is None and isinstance(self.classifier, OpenAIClassifier):
            self.selector = self.classifier
        self.queue = self.queue or make_queue(cfg)
        self.pool = self.pool or BrowserPool(cfg.browser_pages, user_agent=cfg.user_agent, headless=cfg.headless)
        self.store = self.store or ResultStore(cfg.results_path)
        self.session = ClientSession()

        fetcher = Fetcher(self.session, cfg, self.pool)
        link_filter = LinkFilter(self.selector, batch_size=cfg.link_batch_size, fallback_count=cfg.fallback_links)
        machine = DecisionMachine(self.classifier, fetcher, link_filter)
        self.worker = QueueWorker(cfg, self.queue, fetcher, link_filter, machine, self.store)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.session is not None:
            await self.session.close()
        if self.pool is not None:
            await self.pool.close()
        if self.queue is not None:
            await self.queue.close()

    async def seed(self, targets: Iterable[ScanTarget]) -> int:
        """Поставить стартовые задачи (depth 0) для каждой цели; возвращает число новых."""
        if self.worker is None:
            raise RuntimeError("Engine is not started, use 'async with Engine(...)'")
        added = 0
        for target in targets:
            job = CrawlJob(
                url=canonicalize(str(target.url)),
                depth=0,
                source=target.name,
                max_depth=self.config.max_depth,
                child_limit=self.config.child_limit,
                extraction_schema=target.schema_,
            )
            if await self.worker.submit(job):
                added += 1
                logger.info("Queued %s: %s", target.name, job.url)
            else:
                logger.info("Already queued %s: %s", target.name, job.url)
        return added

    async def run(self, *, until_idle: bool = True) -> RunStats:
        if self.worker is None:
            raise RuntimeError("Engine is not started, use 'async with Engine(...)'")
        return await self.worker.run(until_idle=until_idle)


async def start_scan(config: CrawlerConfig, targets: Iterable[ScanTarget]) -> RunStats:
    """Засеять цели и обрабатывать очередь, пока она не опустеет."""
    targets = list(targets)
    logger.info("Starting scan of %d targets…", len(targets))
    async with Engine(config) as engine:
        await engine.seed(targets)
        return await engine.run(until_idle=True)


async def run_worker(config: CrawlerConfig, *, forever: bool = False) -> RunStats:
    """Обработать уже поставленные задачи (общая Redis-очередь) без засева."""
    async with Engine(config) as engine:
        return await engine.run(until_idle=not forever)


async def submit_url(
    config: CrawlerConfig,
    url: str,
    name: str,
    schema: Optional[Dict[str, str]] = None,
) -> bool:
    """Поставить одну стартовую задачу, не запуская воркеры.

    *schema* (поле → описание) переходит в ``CrawlJob.extraction_schema``.
    """
    canonical = canonicalize(url)
    if not canonical.startswith(("http://", "https://")):
        raise ValueError(f"Not an http(s) URL: {url!r}")
    job = CrawlJob(
        url=canonical,
        depth=0,
        source=name,
        max_depth=config.max_depth,
        child_limit=config.child_limit,
        extraction_schema=normalize_schema(schema),
    )
    async with make_queue(config) as queue:
        return await queue.add(job)


async def queue_status(config: CrawlerConfig) -> QueueCounts:
    async with make_queue(config) as queue:
        return await queue.counts()
