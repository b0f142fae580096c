# File: job_scout/utils.py
"""job_scout.utils: URL canonicalization, job identity and small file helpers."""

from __future__ import annotations

import hashlib
import re
import time
from pathlib import Path
from typing import Collection, List, Sequence, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from job_scout.logger import get_logger

__all__: Sequence[str] = (
    "canonicalize",
    "job_id",
    "same_origin",
    "remove_duplicates",
    "backup_corrupt_file",
)

log = get_logger("utils")

_QUOTES = "\"'"
_DEFAULT_PORTS = {"http": 80, "https": 443}

#: query parameters that never change page content (tracking, cookie banners)
TRACKING_PARAMS: frozenset[str] = frozenset(
    {
        "fbclid",
        "gclid",
        "msclkid",
        "dclid",
        "yclid",
        "cHash",
        "type",
        "tx_bafzacookiebar_pi1[accepted]",
        "tx_bafzacookiebar_pi1[action]",
        "tx_bafzacookiebar_pi1[controller]",
        "tx_bafzacookiebar_pi1[storage]",
    }
)
_MULTI_SLASH_RE = re.compile(r"/{2,}")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _strip_quotes(raw: str) -> str:
    s = raw.strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in _QUOTES:
        s = s[1:-1].strip()
    return s


_TRACKING_LOWER = frozenset(p.lower() for p in TRACKING_PARAMS)


def _is_tracking(key: str) -> bool:
    key = key.lower()
    return key.startswith("utm_") or key in _TRACKING_LOWER


def canonicalize(raw: str) -> str:
    """Return the canonical form of *raw*, the dedup key for the whole crawl.

    Never raises: malformed input comes back trimmed and quote-stripped,
    non-string input as ``""``.
    """
    if not isinstance(raw, str):
        return ""
    s = _strip_quotes(raw)
    try:
        parts = urlsplit(s)
        if not parts.scheme or not parts.netloc:
            return s
        scheme = parts.scheme.lower()
        host = (parts.hostname or "").lower()
        port = parts.port
    except ValueError:
        return s.strip(_QUOTES)

    netloc = host
    if ":" in host:  # IPv6 literal
        netloc = f"[{host}]"
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{netloc}:{port}"
    if parts.username:
        auth = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{auth}@{netloc}"

    params = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if v != "" and not _is_tracking(k)
    ]
    params.sort(key=lambda kv: kv[0])
    query = urlencode(params)

    path = _MULTI_SLASH_RE.sub("/", parts.path or "/")
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]

    return urlunsplit((scheme, netloc, path, query, ""))


def job_id(url: str, source: str, depth: int) -> str:
    """Deterministic idempotency key for the (canonical URL, source, depth) triple.

    Contains no ``:`` so it is usable verbatim as a Redis hash field.
    """
    digest = hashlib.md5(canonicalize(url).encode("utf-8")).hexdigest()
    slug = _SLUG_RE.sub("-", (source or "").lower()).strip("-")
    return f"child-{slug}-{int(depth)}-{digest}"


def same_origin(url: str, other: str) -> bool:
    """True when both URLs share scheme, host and (effective) port."""
    try:
        a, b = urlsplit(url), urlsplit(other)
        return (
            a.scheme.lower() == b.scheme.lower()
            and (a.hostname or "").lower() == (b.hostname or "").lower()
            and (a.port or _DEFAULT_PORTS.get(a.scheme.lower()))
            == (b.port or _DEFAULT_PORTS.get(b.scheme.lower()))
        )
    except ValueError:
        return False


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Удаляет дубликаты из списка URL, сохраняя порядок."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        log.debug("Removed %d duplicate URLs", removed)
    return unique


def backup_corrupt_file(path: Union[str, Path], content: str) -> Path:
    """Copy unparsable *content* next to *path* under a timestamped name."""
    p = Path(path)
    backup = p.with_name(f"{p.name}.bak.{int(time.time() * 1000)}.json")
    backup.write_text(content, encoding="utf-8")
    log.error("Corrupt file %s backed up to %s, starting from an empty default", p, backup)
    return backup
