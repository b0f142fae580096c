"""
Client for the external classification service (OpenAI chat completions).

Two calls are made: :meth:`OpenAIClassifier.decide` picks the action for one
page, :meth:`OpenAIClassifier.select_links` keeps posting-like links out of a
batch. Transport/API failures raise :class:`~job_scout.errors.ClassifierError`
(transient, the queue retries). Malformed answers never raise: they decode to
:class:`~job_scout.agent.decision.Reject` with a diagnostic reason.
"""
from __future__ import annotations

import json
import os
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openai import AsyncOpenAI, OpenAIError

from job_scout.agent.decision import Crawl, Decision, Done, Follow, Reject, Stop
from job_scout.agent.prompt import CRAWL_TOOL, LINK_FILTER_PROMPT, system_prompt, write_tool
from job_scout.config import CrawlerConfig
from job_scout.crawler.models import PageSignals, Score
from job_scout.errors import ClassifierError
from job_scout.logger import get_logger
from job_scout.utils import canonicalize

__all__ = ["OpenAIClassifier", "decode_decision", "parse_json_object"]

log = get_logger("classifier")

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_MAX_PROMPT_LINKS = 60


def parse_json_object(content: str) -> Optional[Dict[str, Any]]:
    """Best-effort decode of a JSON object from free model text; ``None`` if impossible."""
    text = _FENCE_RE.sub("", (content or "").strip())
    candidates = [text]
    match = _OBJECT_RE.search(text)
    if match and match.group(0) != text:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def decode_decision(tool_calls: Sequence[Tuple[str, Optional[str]]], content: Optional[str]) -> Decision:
    """Map a raw classifier reply onto a :data:`Decision`.

    *tool_calls* are ``(name, json_arguments)`` pairs in reply order; the first
    recognised tool wins. Without a tool, *content* must hold a JSON decision.
    """
    for name, arguments in tool_calls:
        if name not in ("crawl_page", "write_result"):
            log.debug("Ignoring unknown tool call %r", name)
            continue
        try:
            args = json.loads(arguments or "{}")
        except (json.JSONDecodeError, ValueError):
            return Reject(f"Malformed arguments for tool {name}")
        if not isinstance(args, dict):
            return Reject(f"Malformed arguments for tool {name}")

        if name == "crawl_page":
            url = args.get("url")
            if isinstance(url, str) and url.strip():
                return Crawl(canonicalize(url))
            return Reject("crawl_page called without a url")

        data = args.get("data", args)
        if not isinstance(data, dict):
            return Reject("write_result called without a data object")
        return Done({k: v for k, v in data.items() if v not in (None, "", [], {})})

    if content and content.strip():
        parsed = parse_json_object(content)
        if parsed is None:
            return Reject("Unstructured classifier response")
        kind = str(parsed.get("decision") or "").strip().upper()
        reason = str(parsed.get("reason") or "")
        if kind == "FOLLOW":
            raw_targets = parsed.get("targets") or []
            if not isinstance(raw_targets, list):
                raw_targets = []
            targets = [canonicalize(t) for t in raw_targets if isinstance(t, str) and t.strip()]
            return Follow(tuple(dict.fromkeys(targets)), reason)
        if kind == "REJECT":
            return Reject(reason or "Rejected by classifier")
        if kind == "STOP":
            return Stop(reason)
        return Reject(f"Unknown classifier decision {kind or None!r}")

    return Stop("No action or tool chosen by the classifier")


class OpenAIClassifier:
    """Classification service backed by an OpenAI chat model."""

    def __init__(self, config: CrawlerConfig, client: Optional[AsyncOpenAI] = None) -> None:
        self.config = config
        self.model = config.classifier_model
        self.client = client or AsyncOpenAI(
            api_key=os.getenv("OPENAI_API_KEY"),
            timeout=config.classifier_timeout,
            max_retries=1,
        )

    async def _complete(self, **params: Any) -> Any:
        try:
            return await self.client.chat.completions.create(model=self.model, **params)
        except OpenAIError as exc:
            raise ClassifierError(f"classification service failed: {exc}") from exc

    async def decide(
        self,
        page: PageSignals,
        score: Score,
        schema: Optional[Dict[str, str]] = None,
        *,
        allow_crawl: bool = False,
    ) -> Decision:
        payload = {
            "action": "ANALYZE_PAGE",
            "page": page.for_classifier(max_text=self.config.max_text_chars, max_links=_MAX_PROMPT_LINKS),
            "scoring": score.to_dict(),
        }
        tools = [write_tool(schema)]
        if allow_crawl:
            tools.append(CRAWL_TOOL)
        response = await self._complete(
            messages=[
                {"role": "system", "content": system_prompt(schema, allow_crawl=allow_crawl)},
                {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
            ],
            tools=tools,
            tool_choice="auto",
        )
        if not response.choices:
            return Reject("Empty classifier response")
        message = response.choices[0].message
        calls = [
            (call.function.name, call.function.arguments)
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        decision = decode_decision(calls, message.content)
        log.debug("Classifier on %s -> %s", page.url, decision)
        return decision

    async def select_links(self, links: Sequence[str], source_url: str) -> List[str]:
        """Ask which of *links* are postings or posting lists.

        An unparsable answer raises :class:`ClassifierError` so the caller can
        degrade to its own fallback.
        """
        response = await self._complete(
            messages=[
                {"role": "system", "content": LINK_FILTER_PROMPT},
                {"role": "user", "content": f"Source: {source_url}\nURLs: {json.dumps(list(links))}"},
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content if response.choices else None
        data = parse_json_object(content or "")
        if data is None:
            raise ClassifierError("link selection answer is not a JSON object")
        urls = data.get("valid_urls") or []
        if not isinstance(urls, list):
            raise ClassifierError("link selection answer has no valid_urls list")
        return [u for u in urls if isinstance(u, str)]
