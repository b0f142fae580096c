# job_scout/crawler/link_filter.py
"""
Link filtering and prioritization for JobScout.

Stage 1 is a local pre-filter (assets, admin/legal/social vocabulary) that runs
before any service call to bound cost. Stage 2 submits the survivors in
parallel batches to the classification service. The pagination link, when
known, always comes first.
"""
from __future__ import annotations

import asyncio
import re
from typing import List, Optional, Protocol, Sequence

from job_scout.logger import get_logger
from job_scout.utils import canonicalize, remove_duplicates

__all__ = ["LinkFilter", "prefilter", "listing_fallback"]

log = get_logger("links")

ASSET_RE = re.compile(r"\.(?:png|jpe?g|gif|svg|webp|ico|pdf|zip|docx?|xlsx?|pptx?|css|js|mp[34])(?:$|\?)", re.IGNORECASE)
ADMIN_RE = re.compile(
    r"(login|logout|register|password|passwort|cart|checkout|my-account|impressum|datenschutz|privacy|"
    r"cookies?|contact|kontakt|presse|help|faq|facebook|twitter|linkedin|instagram|"
    r"youtube|xing|google|newsletter|sitemap)",
    re.IGNORECASE,
)
#: path shapes of posting lists/details kept when the classifier selects nothing
LISTING_RE = re.compile(
    r"/(?:jobs?|stellen\w*|stellenangebote|karriere|careers?|vacanc\w*|offres?|emplois?|angebote|"
    r"einsatzstellen|ausschreibung\w*|freiwillig\w*|fsj|bfd)(?:/|$|\?|-)"
    r"|[?&](?:page|seite|p)=\d+|/page/\d+",
    re.IGNORECASE,
)


class LinkSelector(Protocol):
    async def select_links(self, links: Sequence[str], source_url: str) -> List[str]: ...


def prefilter(links: Sequence[str]) -> List[str]:
    """Canonicalize, de-duplicate and drop asset/admin links."""
    kept = []
    for link in remove_duplicates([canonicalize(u) for u in links if u]):
        if not link.startswith(("http://", "https://")):
            continue
        if ASSET_RE.search(link) or ADMIN_RE.search(link):
            continue
        kept.append(link)
    return kept


def listing_fallback(links: Sequence[str]) -> List[str]:
    """Links whose path looks like a posting list or posting detail."""
    return [link for link in links if LISTING_RE.search(link)]


class LinkFilter:
    """Reduces and ranks discovered links; never blocks on classifier trouble."""

    def __init__(
        self,
        selector: Optional[LinkSelector],
        *,
        batch_size: int = 50,
        fallback_count: int = 10,
    ) -> None:
        self.selector = selector
        self.batch_size = max(1, batch_size)
        self.fallback_count = max(1, fallback_count)

    async def filter_and_rank(
        self,
        links: Sequence[str],
        source_url: str,
        next_link: Optional[str] = None,
    ) -> List[str]:
        candidates = prefilter(links)
        selected = await self._classify(candidates, source_url) if candidates else []
        if next_link:
            nxt = canonicalize(next_link)
            selected = [nxt] + [u for u in selected if u != nxt]
        return selected

    async def _classify(self, candidates: List[str], source_url: str) -> List[str]:
        if self.selector is None:
            return candidates
        batches = [candidates[i : i + self.batch_size] for i in range(0, len(candidates), self.batch_size)]
        log.debug("Classifying %d links from %s in %d batches", len(candidates), source_url, len(batches))
        try:
            results = await asyncio.gather(*(self.selector.select_links(b, source_url) for b in batches))
        except Exception as exc:
            # any selector failure degrades to the pre-filtered prefix
            log.warning("Link classification failed for %s (%s: %s), keeping first %d links",
                        source_url, exc.__class__.__name__, exc, self.fallback_count)
            return candidates[: self.fallback_count]

        allowed = set(candidates)
        picked = [canonicalize(u) for batch in results for u in batch]
        chosen = remove_duplicates([u for u in picked if u in allowed])
        if not chosen:
            chosen = listing_fallback(candidates)
            log.info("Classifier kept no link on %s, listing-shape fallback kept %d", source_url, len(chosen))
        return chosen
