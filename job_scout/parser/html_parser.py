# === FILE: job_scout/parser/html_parser.py ===
"""Signal extraction for JobScout.

:func:`extract` turns raw HTML (static or rendered DOM) into a
:class:`~job_scout.crawler.models.PageSignals` bundle:

* text: visible text with navigation chrome stripped.
* emails: plain and obfuscated (``name [at] domain``) addresses, normalized.
* hasForm: whether a form looks like an application/upload form.
* links: same-origin, blocklist-filtered, canonical anchor targets.
* next: pagination hint (``rel=next`` first, then anchor text).
* job: schema.org ``JobPosting`` from ``application/ld+json``, if any.

The function is pure: same input, same output.
"""
from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Any, Iterator, Optional, Union
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from job_scout.crawler.models import PageSignals, StructuredJob
from job_scout.utils import canonicalize, remove_duplicates, same_origin

__all__: Sequence[str] = ("extract", "normalize_email", "parse_job_posting", "EMAIL_RE")

#: ``@`` or an ``[at]`` / ``(at)`` token, optionally padded by whitespace
EMAIL_RE = re.compile(
    r"[A-Z0-9._%+-]+(?:\s?\[at\]\s?|\s?\(at\)\s?|\s?@\s?)[A-Z0-9.-]+\.[A-Z]{2,}",
    re.IGNORECASE,
)
_AT_TOKEN_RE = re.compile(r"\[at\]|\(at\)", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")

#: application-form vocabulary (de/en/fr)
FORM_RE = re.compile(
    r"bewerb|upload|datei|\bcv\b|lebenslauf|resume|apply|candidature|postuler",
    re.IGNORECASE,
)

_NOISE_SELECTORS = "script, style, noscript, template, nav, footer, header, .cookie-banner, .menu"

#: substrings that mark a link as admin/legal/social noise
LINK_BLOCKLIST: tuple[str, ...] = (
    "login",
    "logout",
    "register",
    "anmeldung",
    "passwort",
    "password",
    "impressum",
    "datenschutz",
    "agb",
    "privacy",
    "cookie",
    "gebaerdensprache",
    "leichte-sprache",
    "presse",
    "kontakt",
    "newsletter",
    "facebook.com",
    "twitter.com",
    "instagram.com",
    "linkedin.com",
    "youtube.com",
    "xing.com",
    "tiktok.com",
    "utm_",
    "fbclid",
    "gclid",
    "share=",
)
BINARY_EXT_RE = re.compile(
    r"\.(?:pdf|docx?|xlsx?|pptx?|zip|rar|7z|gz|png|jpe?g|gif|svg|webp|ico|mp[34]|avi|mov|css|js)$",
    re.IGNORECASE,
)
_SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")

#: multilingual "next page / more" anchor text
NEXT_TEXT_RE = re.compile(
    r"^\s*(?:next|weiter|nächste|naechste|suivant|more|mehr|plus)\b|^\s*(?:›|»|>>)\s*$",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_email(raw: str) -> str:
    """``Contact [at] Org.de`` → ``contact@org.de``."""
    return _WS_RE.sub("", _AT_TOKEN_RE.sub("@", raw)).lower()


def _is_noise_link(url: str) -> bool:
    lowered = url.lower()
    if BINARY_EXT_RE.search(urlsplit(lowered).path):
        return True
    return any(bad in lowered for bad in LINK_BLOCKLIST)


def _resolve(href: str, base_url: str) -> Optional[str]:
    raw = href.strip()
    if not raw or raw.startswith("#") or raw.lower().startswith(_SKIP_SCHEMES):
        return None
    absolute, _ = urldefrag(urljoin(base_url, raw))
    if urlsplit(absolute).scheme not in ("http", "https"):
        return None
    return absolute


def _text_of(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        return _text_of(value.get("name"))
    if isinstance(value, list):
        parts = [p for p in (_text_of(v) for v in value) if p]
        return ", ".join(parts) or None
    return str(value)


def _location_of(value: Any) -> Optional[str]:
    if isinstance(value, list):
        parts = [p for p in (_location_of(v) for v in value) if p]
        return "; ".join(remove_duplicates(parts)) or None
    if isinstance(value, dict):
        address = value.get("address", value)
        if isinstance(address, str):
            return address.strip() or None
        if isinstance(address, dict):
            fields = ("streetAddress", "postalCode", "addressLocality", "addressRegion", "addressCountry")
            parts = [_text_of(address.get(f)) for f in fields]
            return ", ".join(p for p in parts if p) or None
        return _text_of(value.get("name"))
    return _text_of(value)


def _iter_ld_nodes(data: Any) -> Iterator[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_ld_nodes(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _iter_ld_nodes(data["@graph"])


def _is_job_posting(node: dict) -> bool:
    kind = node.get("@type")
    kinds = kind if isinstance(kind, list) else [kind]
    return any(isinstance(k, str) and k.lower() == "jobposting" for k in kinds)


def parse_job_posting(soup: BeautifulSoup) -> Optional[StructuredJob]:
    """Return the first schema.org JobPosting found in ld+json blocks."""
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            continue
        for node in _iter_ld_nodes(data):
            if not _is_job_posting(node):
                continue
            description = _text_of(node.get("description"))
            if description and "<" in description:
                description = BeautifulSoup(description, "html.parser").get_text(" ", strip=True)
            return StructuredJob(
                title=_text_of(node.get("title") or node.get("name")),
                organization=_text_of(node.get("hiringOrganization")),
                location=_location_of(node.get("jobLocation")),
                description=description,
                date_posted=_text_of(node.get("datePosted")),
                valid_through=_text_of(node.get("validThrough")),
                apply_url=_text_of(node.get("url") or node.get("directApply")),
            )
    return None


def _find_next_link(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    candidates: list[str] = []
    for tag in soup.find_all(["link", "a"], href=True):
        rel = tag.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "next" in (r.lower() for r in rel):
            candidates.append(str(tag["href"]))
    if not candidates:
        for tag in soup.find_all("a", href=True):
            label = tag.get_text(" ", strip=True) or str(tag.get("aria-label") or "")
            if label and len(label) <= 40 and NEXT_TEXT_RE.search(label):
                candidates.append(str(tag["href"]))
    for href in candidates:
        absolute = _resolve(href, base_url)
        if absolute and same_origin(absolute, base_url):
            return canonicalize(absolute)
    return None


# ---------------------------------------------------------------------------
# Public function
# ---------------------------------------------------------------------------


def extract(content: Union[str, bytes], base_url: str) -> PageSignals:
    """Parse *content* fetched from *base_url* into a :class:`PageSignals`."""
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    soup = BeautifulSoup(content or "", "html.parser")

    # ld+json lives in <script>, read it before the noise is stripped
    structured = parse_job_posting(soup)
    next_link = _find_next_link(soup, base_url)

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    mailto: list[str] = []
    for tag in soup.find_all("a", href=True):
        href = str(tag["href"]).strip()
        if href.lower().startswith("mailto:"):
            addr = href[len("mailto:"):].split("?", 1)[0]
            if EMAIL_RE.fullmatch(addr.strip()):
                mailto.append(normalize_email(addr))

    has_form = any(FORM_RE.search(str(form)) for form in soup.find_all("form"))

    links: list[str] = []
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        absolute = _resolve(str(tag["href"]), base_url)
        if absolute is None or not same_origin(absolute, base_url):
            continue
        if _is_noise_link(absolute):
            continue
        links.append(canonicalize(absolute))

    for element in soup.select(_NOISE_SELECTORS):
        element.decompose()
    body = soup.body or soup
    text = _WS_RE.sub(" ", body.get_text(" ")).strip()

    emails = [normalize_email(m) for m in EMAIL_RE.findall(text)]

    return PageSignals(
        url=canonicalize(base_url),
        text=text,
        emails=tuple(remove_duplicates(emails + mailto)),
        has_form=has_form,
        links=tuple(remove_duplicates(links)),
        next_link=next_link,
        structured_job=structured,
        title=title,
    )
