"""
System prompts and tool definitions sent to the classification service.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

__all__ = ["system_prompt", "write_tool", "CRAWL_TOOL", "LINK_FILTER_PROMPT", "DEFAULT_FIELDS"]

DEFAULT_FIELDS: Dict[str, str] = {
    "title": "Job or volunteering position title.",
    "organization": "Name of the hiring company or organization.",
    "location": "Place of work (city, region or country).",
    "email": "Contact email address to apply to.",
}

_DEFAULT_PROMPT = """\
ROLE
You are a STRICT extraction engine for a crawler collecting job and volunteering
offers (FSJ/BFD, environment and social sector).

ACTIONS (in priority order)
1. DETAIL PAGE (URL with an id, or a single clear offer):
   - Find title, organization, location and contact email.
   - You MUST call the "write_result" tool with what you found.
   - An email written as "name [at] domain.de" is VALID.
2. LISTING PAGE (several offers visible):
   - Pick the URLs of the most relevant individual offers from the page links.
   - Answer with JSON: {"decision": "FOLLOW", "targets": ["url1", "url2"], "reason": "..."}
3. NOTHING RELEVANT:
   - Answer with JSON: {"decision": "REJECT", "reason": "..."}

RULES
- Never invent emails or any other value.
- When the page carries a structured "job" object, trust it over the free text.
- Decisions must always be valid JSON.
"""

_SCHEMA_PROMPT = """\
ROLE
You are a precise data extraction engine. Analyse the web page content and
extract exactly the fields of the schema below, nothing else.

EXTRACTION SCHEMA
{fields}

ACTIONS
1. If the page contains data matching the schema, call the "write_result" tool.
2. If it is a listing page linking to detail pages, answer with JSON:
   {{"decision": "FOLLOW", "targets": ["url1", "url2"], "reason": "..."}}
3. If nothing matches, answer with JSON:
   {{"decision": "REJECT", "reason": "The page does not match the extraction schema."}}

RULES
- Never invent data. Leave a field empty when it is absent.
- Always answer through "write_result" or the JSON decision format.
"""

_CRAWL_HINT = """
You may call "crawl_page" ONCE with a single URL from the page links when the
current page is not enough to decide (for example a teaser linking to the full
offer).
"""

LINK_FILTER_PROMPT = """\
You are a recruiting expert filtering links found on a career website.
Keep ONLY:
1. Individual job or volunteering offers (detail pages).
2. Pages listing such offers.
Answer only with JSON: {"valid_urls": [...]} using URLs copied verbatim from the input.
"""


def system_prompt(schema: Optional[Mapping[str, str]] = None, *, allow_crawl: bool = False) -> str:
    """Default job-offer prompt, or a schema-driven one when *schema* is non-empty."""
    if schema:
        fields = "\n".join(f"- {key}: {desc}" for key, desc in schema.items())
        prompt = _SCHEMA_PROMPT.format(fields=fields)
    else:
        prompt = _DEFAULT_PROMPT
    return prompt + _CRAWL_HINT if allow_crawl else prompt


def write_tool(schema: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Function-tool definition whose properties mirror *schema* (``url`` always required)."""
    fields = schema if schema else DEFAULT_FIELDS
    properties: Dict[str, Any] = {
        "url": {"type": "string", "description": "URL of the page the data was extracted from."}
    }
    for key, description in fields.items():
        if key not in properties:
            properties[key] = {"type": "string", "description": description}
    return {
        "type": "function",
        "function": {
            "name": "write_result",
            "description": "Save the structured data extracted from a web page.",
            "parameters": {
                "type": "object",
                "properties": {
                    "data": {
                        "type": "object",
                        "properties": properties,
                        "required": ["url"],
                    }
                },
                "required": ["data"],
            },
        },
    }


CRAWL_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "crawl_page",
        "description": "Fetch one more URL and analyse its content before deciding.",
        "parameters": {
            "type": "object",
            "properties": {"url": {"type": "string"}},
            "required": ["url"],
        },
    },
}
