"""
Data models for the JobScout crawler.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from job_scout.utils import canonicalize, job_id


@dataclass(frozen=True, slots=True)
class StructuredJob:
    """Job posting parsed from an embedded schema.org ``JobPosting`` block."""

    title: Optional[str] = None
    organization: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    date_posted: Optional[str] = None
    valid_through: Optional[str] = None
    apply_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v}


@dataclass(frozen=True, slots=True)
class PageSignals:
    """Signal bundle extracted from one fetched page. Never mutated after creation."""

    url: str
    text: str = ""
    emails: Tuple[str, ...] = ()
    has_form: bool = False
    links: Tuple[str, ...] = ()
    next_link: Optional[str] = None
    structured_job: Optional[StructuredJob] = None
    title: str = ""
    rendered: bool = False

    def for_classifier(self, *, max_text: int, max_links: int) -> Dict[str, Any]:
        """Compact JSON-ready view sent to the classification service."""
        data: Dict[str, Any] = {
            "url": self.url,
            "title": self.title,
            "text": self.text[:max_text],
            "emails": list(self.emails),
            "hasForm": self.has_form,
            "links": list(self.links[:max_links]),
        }
        if self.next_link:
            data["nextLink"] = self.next_link
        if self.structured_job is not None:
            data["job"] = self.structured_job.to_dict()
        return data


@dataclass(frozen=True, slots=True)
class Score:
    """Deterministic heuristic score of a page; recomputed, never stored alone."""

    score: int
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "reasons": list(self.reasons)}


class CrawlJob(BaseModel):
    """One unit of frontier work. Serialized as JSON by the queue backends."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    depth: int = Field(0, ge=0)
    source: str
    max_depth: int = Field(2, ge=0, alias="maxDepth")
    child_limit: int = Field(20, ge=0, alias="childLimit")
    extraction_schema: Optional[Dict[str, str]] = Field(None, alias="schema")

    @property
    def id(self) -> str:
        return job_id(self.url, self.source, self.depth)

    def child(self, url: str) -> CrawlJob:
        """Same source/limits/schema, one level deeper."""
        return self.model_copy(update={"url": canonicalize(url), "depth": self.depth + 1})

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> CrawlJob:
        return cls.model_validate_json(raw)
