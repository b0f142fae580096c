# File: tests/conftest.py
from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

import pytest
from aiohttp import web
from playwright.async_api import Error as PlaywrightError

from job_scout.agent.decision import Decision, Stop
from job_scout.config import CrawlerConfig
from job_scout.crawler.models import PageSignals, Score
from job_scout.errors import ClassifierError
from job_scout.utils import canonicalize


# --------------------------------------------------------------------------- #
#                                  Config                                     #
# --------------------------------------------------------------------------- #


@pytest.fixture()
def basic_config(tmp_path: Path) -> CrawlerConfig:
    """
    Return a fast CrawlerConfig for tests: no backoff, short idle window,
    results written under tmp_path.
    """
    return CrawlerConfig(
        user_agent="TestAgent/1.0",
        timeout=2.0,
        render_timeout=2.0,
        min_links=1,
        scroll_steps=1,
        browser_pages=2,
        max_depth=2,
        child_limit=20,
        concurrency=3,
        rate_limit=500.0,
        max_attempts=3,
        backoff=0.0,
        idle_timeout=0.3,
        results_path=tmp_path / "results.json",
        targets_path=tmp_path / "sites.json",
    )


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


def html_page(body: str, title: str = "Page") -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


# --------------------------------------------------------------------------- #
#                           Classification fakes                              #
# --------------------------------------------------------------------------- #

DecisionRule = Union[Decision, Callable[[PageSignals, bool], Decision]]


class FakeClassifier:
    """Scripted page classifier.

    *rules* maps a canonical URL to a decision (or to a callable receiving
    ``(page, allow_crawl)``). Unknown pages get *default*.
    """

    def __init__(self, rules: Optional[Dict[str, DecisionRule]] = None, default: Optional[Decision] = None):
        self.rules = {canonicalize(k): v for k, v in (rules or {}).items()}
        self.default = default or Stop("nothing to do")
        self.calls: List[tuple[str, bool]] = []

    async def decide(self, page: PageSignals, score: Score, schema=None, *, allow_crawl: bool = False) -> Decision:
        self.calls.append((page.url, allow_crawl))
        rule = self.rules.get(canonicalize(page.url), self.default)
        return rule(page, allow_crawl) if callable(rule) else rule


class FakeSelector:
    """Link selector returning a fixed answer, or raising when *error* is set."""

    def __init__(self, answer: Optional[Sequence[str]] = None, error: Optional[Exception] = None):
        self.answer = list(answer) if answer is not None else None
        self.error = error
        self.batches: List[List[str]] = []

    async def select_links(self, links: Sequence[str], source_url: str) -> List[str]:
        self.batches.append(list(links))
        if self.error is not None:
            raise self.error
        if self.answer is None:
            return list(links)
        return [u for u in self.answer]


@pytest.fixture()
def failing_selector() -> FakeSelector:
    return FakeSelector(error=ClassifierError("service down"))


# --------------------------------------------------------------------------- #
#                             Playwright fakes                                #
# --------------------------------------------------------------------------- #


class FakePage:
    def __init__(self, browser: "FakeBrowser"):
        self.browser = browser
        self.url = ""
        self.scrolls = 0

    async def goto(self, url: str, **kwargs: Any) -> None:
        if self.browser.fail_goto:
            raise PlaywrightError(self.browser.fail_goto)
        self.url = url

    async def evaluate(self, script: str) -> None:
        self.scrolls += 1

    async def wait_for_timeout(self, ms: float) -> None:
        return None

    async def content(self) -> str:
        return self.browser.pages.get(canonicalize(self.url), html_page("empty"))


class FakeContext:
    def __init__(self, browser: "FakeBrowser"):
        self.browser = browser
        self.init_scripts: List[str] = []
        self.closed = False

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def new_page(self) -> FakePage:
        return FakePage(self.browser)

    async def close(self) -> None:
        self.closed = True
        self.browser.open_contexts -= 1


class FakeBrowser:
    """Stands in for a Chromium handle; tracks how many contexts are open at once."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, fail_goto: Optional[str] = None):
        self.pages = {canonicalize(k): v for k, v in (pages or {}).items()}
        self.fail_goto = fail_goto
        self.connected = True
        self.open_contexts = 0
        self.peak_contexts = 0
        self.contexts: List[FakeContext] = []

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, **kwargs: Any) -> FakeContext:
        self.open_contexts += 1
        self.peak_contexts = max(self.peak_contexts, self.open_contexts)
        ctx = FakeContext(self)
        self.contexts.append(ctx)
        return ctx

    async def close(self) -> None:
        self.connected = False


class FakePlaywright:
    async def stop(self) -> None:
        return None


class FakeLauncher:
    """Callable launcher for BrowserPool; every launch returns a fresh FakeBrowser."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, fail_goto: Optional[str] = None):
        self.pages = pages or {}
        self.fail_goto = fail_goto
        self.browsers: List[FakeBrowser] = []

    async def __call__(self, headless: bool):
        browser = FakeBrowser(self.pages, self.fail_goto)
        self.browsers.append(browser)
        return FakePlaywright(), browser


@pytest.fixture()
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()
