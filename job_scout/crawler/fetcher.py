# job_scout/crawler/fetcher.py
"""
Fetcher module: static HTTP fetch with a browser-rendering fallback.

Policy
------
1. Fast path: plain GET through the shared :class:`aiohttp.ClientSession`.
2. Boost/fallback: when the fast path fails, or returns fewer than
   ``min_links`` links (script-rendered listings), the page is rendered through
   the :class:`~job_scout.crawler.browser.BrowserPool` and extracted again.

A failed boost never discards a usable fast-path result. Both paths failing
returns ``None``: the page is treated as unreachable, not as an error. The one
exception is a browser that cannot be launched at all: with no fast-path result
:class:`~job_scout.errors.BrowserLaunchError` propagates and the job fails.
"""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from job_scout.config import CrawlerConfig
from job_scout.crawler.browser import BrowserPool
from job_scout.crawler.models import PageSignals
from job_scout.errors import BrowserLaunchError
from job_scout.logger import get_logger
from job_scout.parser.html_parser import extract
from job_scout.utils import canonicalize

__all__ = ["Fetcher"]

log = get_logger("fetcher")

_CONTEXT_DESTROYED = "Execution context was destroyed"
_HTML_TYPES = ("text/html", "application/xhtml+xml")
_SCROLL_JS = "() => window.scrollBy(0, Math.max(window.innerHeight, 600))"
_SCROLL_PAUSE_MS = 250


class Fetcher:
    """Fetches a URL and returns its :class:`PageSignals` (or ``None``)."""

    def __init__(
        self,
        session: ClientSession,
        config: CrawlerConfig,
        pool: Optional[BrowserPool] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.pool = pool
        self._headers = {
            "User-Agent": config.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "de-DE,de;q=0.9,en;q=0.8,fr;q=0.7",
        }

    async def fetch(self, url: str) -> Optional[PageSignals]:
        url = canonicalize(url)
        fast: Optional[PageSignals] = None
        try:
            fast = await self.fetch_static(url)
        except (ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            log.info("Static fetch failed for %s (%s), trying browser", url, exc.__class__.__name__)

        if fast is not None and len(fast.links) >= self.config.min_links:
            return fast
        if self.pool is None:
            if fast is None:
                log.warning("No page for %s", url)
            return fast

        if fast is not None:
            log.debug("Only %d links on %s, rendering", len(fast.links), url)
        try:
            return await self.fetch_rendered(url)
        except BrowserLaunchError:
            if fast is not None:
                return fast
            raise
        except (PlaywrightError, asyncio.TimeoutError) as exc:
            if fast is not None:
                log.info("Render boost failed for %s (%s), keeping static result", url, exc)
                return fast
            log.warning("No page for %s: static and rendered fetch both failed (%s)", url, exc)
            return None

    async def fetch_static(self, url: str) -> Optional[PageSignals]:
        """Plain GET; ``None`` for HTTP errors and non-HTML responses."""
        timeout = ClientTimeout(total=self.config.timeout)
        async with self.session.get(url, headers=self._headers, timeout=timeout, allow_redirects=True) as resp:
            if resp.status >= 400:
                log.debug("HTTP %s for %s", resp.status, url)
                return None
            ctype = resp.headers.get("Content-Type", "").split(";", 1)[0].strip().lower()
            if ctype and ctype not in _HTML_TYPES:
                log.debug("Skipping %s content at %s", ctype, url)
                return None
            text = await resp.text(errors="replace")
            final_url = str(resp.url)
        return replace(extract(text, final_url), url=url)

    async def fetch_rendered(self, url: str) -> PageSignals:
        """Render *url* in the shared browser and extract from the live DOM."""
        if self.pool is None:
            raise BrowserLaunchError("no browser pool configured")

        async def _render(page: Page) -> PageSignals:
            await self._goto(page, url)
            await self._auto_scroll(page)
            html = await page.content()
            return replace(extract(html, page.url or url), url=url, rendered=True)

        return await self.pool.with_rendered_page(_render)

    async def _goto(self, page: Page, url: str) -> None:
        timeout_ms = self.config.render_timeout * 1000
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightError as exc:
            if _CONTEXT_DESTROYED not in str(exc):
                raise
            log.debug("Navigation context destroyed on %s, retrying once", url)
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    async def _auto_scroll(self, page: Page) -> None:
        for _ in range(self.config.scroll_steps):
            try:
                await page.evaluate(_SCROLL_JS)
                await page.wait_for_timeout(_SCROLL_PAUSE_MS)
            except PlaywrightError as exc:
                # late client-side navigation; keep whatever is loaded
                log.debug("Scroll interrupted on %s: %s", page.url, exc)
                break
