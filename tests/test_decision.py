# File: tests/test_decision.py
from typing import Dict, List, Optional

import pytest
from conftest import FakeClassifier

from job_scout.agent.decision import Crawl, DecisionMachine, Done, Follow, Reject, State, Stop
from job_scout.crawler.models import CrawlJob, PageSignals
from job_scout.utils import canonicalize

JOB = CrawlJob(url="https://e.org/", depth=0, source="src")
ROOT = PageSignals(url="https://e.org/", links=("https://e.org/a", "https://e.org/b"))


class StubFetcher:
    def __init__(self, pages: Optional[Dict[str, PageSignals]] = None):
        self.pages = {canonicalize(k): v for k, v in (pages or {}).items()}
        self.fetched: List[str] = []

    async def fetch(self, url: str) -> Optional[PageSignals]:
        self.fetched.append(url)
        return self.pages.get(canonicalize(url))


@pytest.mark.asyncio()
async def test_done_on_first_classification():
    machine = DecisionMachine(FakeClassifier(default=Done({"title": "Koch"})), StubFetcher())
    verdict = await machine.run(JOB, ROOT)
    assert verdict.decision == Done({"title": "Koch"})
    assert verdict.trail == (State.AWAIT_CLASSIFY, State.DONE)
    assert verdict.iterations == 0


@pytest.mark.asyncio()
async def test_crawl_then_done_uses_crawled_page():
    detail = PageSignals(url="https://e.org/a", emails=("x@e.org",), links=("https://e.org/c",))
    classifier = FakeClassifier(
        {"https://e.org/": Crawl("https://e.org/a"), "https://e.org/a": Done({"email": "x@e.org"})}
    )
    crawled: List[str] = []

    async def on_crawled(page):
        crawled.append(page.url)

    machine = DecisionMachine(classifier, StubFetcher({"https://e.org/a": detail}))
    verdict = await machine.run(JOB, ROOT, on_crawled=on_crawled)

    assert isinstance(verdict.decision, Done)
    assert verdict.page is detail
    assert verdict.state is State.DONE
    assert verdict.trail == (State.AWAIT_CLASSIFY, State.CRAWL_LOOP, State.DONE)
    assert crawled == ["https://e.org/a"]


@pytest.mark.asyncio()
async def test_persistent_crawl_is_capped_and_turns_into_follow():
    pages = {f"https://e.org/p{i}": PageSignals(url=f"https://e.org/p{i}") for i in range(10)}
    counter = {"n": 0}

    def always_crawl(page, allow_crawl):
        counter["n"] += 1
        return Crawl(f"https://e.org/p{counter['n']}")

    classifier = FakeClassifier(default=always_crawl)
    fetcher = StubFetcher(pages)
    machine = DecisionMachine(classifier, fetcher, max_iterations=3)
    verdict = await machine.run(JOB, ROOT)

    assert len(fetcher.fetched) == 3
    assert verdict.iterations == 3
    assert verdict.decision == Follow(ROOT.links, "Crawl budget exhausted")
    # last classification is told it may not crawl any more
    assert [allowed for _, allowed in classifier.calls] == [True, True, True, False]


@pytest.mark.asyncio()
async def test_unreachable_crawl_target_stops():
    machine = DecisionMachine(FakeClassifier(default=Crawl("https://e.org/gone")), StubFetcher())
    verdict = await machine.run(JOB, ROOT)
    assert isinstance(verdict.decision, Stop)
    assert verdict.state is State.STOP


@pytest.mark.asyncio()
async def test_follow_without_targets_uses_page_links():
    machine = DecisionMachine(FakeClassifier(default=Follow((), "listing")), StubFetcher())
    verdict = await machine.run(JOB, ROOT)
    assert verdict.decision == Follow(ROOT.links, "listing")


@pytest.mark.asyncio()
async def test_reject_is_terminal():
    machine = DecisionMachine(FakeClassifier(default=Reject("shop")), StubFetcher())
    verdict = await machine.run(JOB, ROOT)
    assert verdict.state is State.REJECT
    assert verdict.score.score >= 0


@pytest.mark.asyncio()
async def test_crawled_links_pass_through_link_filter():
    detail = PageSignals(url="https://e.org/a", links=("https://e.org/login", "https://e.org/jobs/1"))

    class KeepJobs:
        async def filter_and_rank(self, links, source_url, next_link=None):
            return [u for u in links if "/jobs/" in u]

    seen = []

    async def on_crawled(page):
        seen.extend(page.links)

    classifier = FakeClassifier({"https://e.org/": Crawl("https://e.org/a")}, default=Reject("no"))
    machine = DecisionMachine(classifier, StubFetcher({"https://e.org/a": detail}), KeepJobs())
    await machine.run(JOB, ROOT, on_crawled=on_crawled)
    assert seen == ["https://e.org/jobs/1"]
