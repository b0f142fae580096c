"""
Per-page decision cycle.

Decisions form a small tagged union (:class:`Crawl`, :class:`Follow`,
:class:`Reject`, :class:`Done`, :class:`Stop`). :class:`DecisionMachine`
drives ``AWAIT_CLASSIFY → CRAWL_LOOP* → FOLLOW | DONE | REJECT | STOP`` for one
fetched page; the crawl loop is bounded and never raises for a bad page.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Sequence, Tuple, Union

from job_scout.crawler.models import CrawlJob, PageSignals, Score
from job_scout.logger import get_logger
from job_scout.scoring import compute_score

__all__ = [
    "Crawl",
    "Follow",
    "Reject",
    "Done",
    "Stop",
    "Decision",
    "State",
    "Verdict",
    "DecisionMachine",
    "MAX_CRAWL_ITERATIONS",
]

log = get_logger("decision")

MAX_CRAWL_ITERATIONS = 3


@dataclass(frozen=True, slots=True)
class Crawl:
    """Classifier asks for one more fetch before deciding."""

    target: str


@dataclass(frozen=True, slots=True)
class Follow:
    targets: Tuple[str, ...] = ()
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Reject:
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Done:
    """Extraction succeeded; *data* is what the classifier wrote."""

    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Stop:
    reason: str = ""


Decision = Union[Crawl, Follow, Reject, Done, Stop]


class State(str, enum.Enum):
    AWAIT_CLASSIFY = "AWAIT_CLASSIFY"
    CRAWL_LOOP = "CRAWL_LOOP"
    FOLLOW = "FOLLOW"
    DONE = "DONE"
    REJECT = "REJECT"
    STOP = "STOP"


_TERMINAL = {Follow: State.FOLLOW, Done: State.DONE, Reject: State.REJECT, Stop: State.STOP}


class PageClassifier(Protocol):
    async def decide(
        self,
        page: PageSignals,
        score: Score,
        schema: Optional[Dict[str, str]] = None,
        *,
        allow_crawl: bool = False,
    ) -> Decision: ...


class PageSource(Protocol):
    async def fetch(self, url: str) -> Optional[PageSignals]: ...


class LinkRanker(Protocol):
    async def filter_and_rank(
        self, links: Sequence[str], source_url: str, next_link: Optional[str] = None
    ) -> list[str]: ...


@dataclass(slots=True)
class Verdict:
    """Terminal decision plus the page and score it was reached on."""

    decision: Decision
    page: PageSignals
    score: Score
    iterations: int = 0
    trail: Tuple[State, ...] = ()

    @property
    def state(self) -> State:
        return self.trail[-1]


class DecisionMachine:
    """Classify a page, optionally crawl a few extra targets, settle on a terminal decision."""

    def __init__(
        self,
        classifier: PageClassifier,
        fetcher: PageSource,
        link_filter: Optional[LinkRanker] = None,
        *,
        max_iterations: int = MAX_CRAWL_ITERATIONS,
        scorer: Callable[[PageSignals], Score] = compute_score,
    ) -> None:
        self.classifier = classifier
        self.fetcher = fetcher
        self.link_filter = link_filter
        self.max_iterations = max_iterations
        self.scorer = scorer

    async def run(
        self,
        job: CrawlJob,
        page: PageSignals,
        *,
        on_crawled: Optional[Callable[[PageSignals], Awaitable[Any]]] = None,
    ) -> Verdict:
        """Drive the cycle for *page* (already fetched and link-filtered).

        *on_crawled* is awaited with every extra page fetched in the crawl loop,
        so the scheduler can enqueue its links.
        """
        schema = job.extraction_schema
        trail = [State.AWAIT_CLASSIFY]
        current, score = page, self.scorer(page)
        decision = await self.classifier.decide(current, score, schema, allow_crawl=self.max_iterations > 0)

        iterations = 0
        while isinstance(decision, Crawl) and iterations < self.max_iterations:
            iterations += 1
            trail.append(State.CRAWL_LOOP)
            log.info("[%s] extra crawl %d/%d: %s", job.source, iterations, self.max_iterations, decision.target)
            crawled = await self.fetcher.fetch(decision.target)
            if crawled is None:
                decision = Stop(f"Extra crawl returned no page: {decision.target}")
                break
            if self.link_filter is not None:
                ranked = await self.link_filter.filter_and_rank(crawled.links, crawled.url, crawled.next_link)
                crawled = replace(crawled, links=tuple(ranked))
            if on_crawled is not None:
                await on_crawled(crawled)
            current, score = crawled, self.scorer(crawled)
            decision = await self.classifier.decide(
                current, score, schema, allow_crawl=iterations < self.max_iterations
            )

        if isinstance(decision, Crawl):
            log.warning("[%s] crawl budget exhausted on %s, following known links", job.source, page.url)
            decision = Follow(tuple(page.links), "Crawl budget exhausted")
        if isinstance(decision, Follow) and not decision.targets:
            decision = Follow(tuple(page.links), decision.reason or "No targets given, using page links")

        trail.append(_TERMINAL[type(decision)])
        return Verdict(decision, current, score, iterations, tuple(trail))
