# job_scout/crawler/browser.py
"""
Browser resource pool: one shared headless Chromium, bounded page fan-out.

The pool is an explicitly owned object handed to the
:class:`~job_scout.crawler.fetcher.Fetcher`. The browser is launched lazily on
first use, reused across calls and relaunched when its handle is found dead.
At most ``max_pages`` pages are open at once; further callers wait (FIFO) on
an :class:`asyncio.Semaphore`.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Tuple, TypeVar

from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from job_scout.config import BROWSER_USER_AGENT
from job_scout.errors import BrowserLaunchError
from job_scout.logger import get_logger

__all__ = ["BrowserPool", "launch_chromium"]

T = TypeVar("T")
Launcher = Callable[[bool], Awaitable[Tuple[Any, Browser]]]

log = get_logger("browser")

_CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-blink-features=AutomationControlled",
]
_MASK_WEBDRIVER_JS = "Object.defineProperty(navigator, 'webdriver', { get: () => undefined });"
_VIEWPORT = {"width": 1366, "height": 768}


async def launch_chromium(headless: bool) -> Tuple[Any, Browser]:
    """Start Playwright and a Chromium instance; returns ``(playwright, browser)``."""
    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(headless=headless, args=_CHROMIUM_ARGS)
    except BaseException:
        await playwright.stop()
        raise
    return playwright, browser


class BrowserPool:
    """Bounded-concurrency gate around a lazily started shared browser."""

    def __init__(
        self,
        max_pages: int = 3,
        *,
        user_agent: str = BROWSER_USER_AGENT,
        headless: bool = True,
        launcher: Optional[Launcher] = None,
    ) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.max_pages = max_pages
        self.user_agent = user_agent
        self.headless = headless
        self._launcher: Launcher = launcher or launch_chromium
        self._slots = asyncio.Semaphore(max_pages)
        self._launch_lock = asyncio.Lock()
        self._playwright: Any = None
        self._browser: Optional[Browser] = None
        self._active = 0
        self.launches = 0

    async def __aenter__(self) -> BrowserPool:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def active(self) -> int:
        """Number of pages currently handed out."""
        return self._active

    async def _ensure_browser(self) -> Browser:
        async with self._launch_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                log.warning("Browser handle is dead, relaunching")
                await self._shutdown()
            try:
                self._playwright, self._browser = await self._launcher(self.headless)
            except (PlaywrightError, OSError) as exc:
                log.error("Browser failed to launch: %s", exc)
                raise BrowserLaunchError(str(exc)) from exc
            self.launches += 1
            log.debug("Browser launched (#%d)", self.launches)
            return self._browser

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Yield a configured page; the page is closed and the slot freed on every exit path."""
        async with self._slots:
            self._active += 1
            context = None
            try:
                browser = await self._ensure_browser()
                context = await browser.new_context(
                    user_agent=self.user_agent,
                    viewport=_VIEWPORT,
                    java_script_enabled=True,
                )
                await context.add_init_script(_MASK_WEBDRIVER_JS)
                page = await context.new_page()
                yield page
            finally:
                self._active -= 1
                if context is not None:
                    with suppress(PlaywrightError):
                        await context.close()

    async def with_rendered_page(self, fn: Callable[[Page], Awaitable[T]]) -> T:
        """Run ``fn(page)`` inside :meth:`page` and return its result."""
        async with self.page() as page:
            return await fn(page)

    async def _shutdown(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = self._playwright = None
        if browser is not None:
            with suppress(PlaywrightError):
                await browser.close()
        if playwright is not None:
            with suppress(PlaywrightError):
                await playwright.stop()

    async def close(self) -> None:
        async with self._launch_lock:
            await self._shutdown()
