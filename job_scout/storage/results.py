# job_scout/storage/results.py

"""
Хранилище результатов JobScout.

Records live in one JSON array file, keyed uniquely by canonical URL and
rewritten whole on every update. A write for a URL that is already stored is
merged field by field (non-empty new values win) instead of duplicating it.

Concurrent writers inside one process are serialized by an
:class:`asyncio.Lock`; separate processes writing the same file are not
coordinated (accepted race, see DESIGN.md).
"""
from __future__ import annotations

import asyncio
import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from job_scout.logger import get_logger
from job_scout.utils import backup_corrupt_file, canonicalize

__all__ = ["ResultRecord", "ResultStore", "merge_records"]

log = get_logger("store")

_CONTROL_RE = re.compile(r"[\u0000-\u001F\u007F-\u009F]")
_TIMESTAMPS = ("extracted_at", "updated_at")


class ResultRecord(BaseModel):
    """One accepted posting. Extra fields from custom extraction schemas are kept."""
    model_config = ConfigDict(extra="allow")

    url: str
    title: Optional[str] = None
    organization: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = None
    date_posted: Optional[str] = None
    valid_through: Optional[str] = None
    apply_url: Optional[str] = None
    score: Optional[int] = None
    reasons: List[str] = Field(default_factory=list)
    source: Optional[str] = None
    extracted_at: Optional[str] = None
    updated_at: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _sanitize(record: Mapping[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, str):
            value = _CONTROL_RE.sub("", value).strip()
        clean[key] = value
    return clean


def merge_records(existing: Mapping[str, Any], new: Mapping[str, Any]) -> Dict[str, Any]:
    """Upsert merge: every non-empty value of *new* overwrites, the rest is kept."""
    merged = dict(existing)
    for key, value in new.items():
        if key in _TIMESTAMPS or _is_empty(value):
            continue
        merged[key] = value
    return merged


class ResultStore:
    """Idempotent JSON-file store of :class:`ResultRecord`."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------ io
    def _read(self) -> List[Dict[str, Any]]:
        if not self.path.is_file():
            return []
        content = self.path.read_text(encoding="utf-8")
        if not content.strip():
            return []
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, list):
            backup_corrupt_file(self.path, content)
            self._write([])
            return []
        return [r for r in data if isinstance(r, dict)]

    def _write(self, records: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    # ------------------------------------------------------------------ api
    async def upsert(self, record: Union[Mapping[str, Any], ResultRecord]) -> Optional[ResultRecord]:
        """Insert or merge *record*; returns the stored version, ``None`` if it had no URL."""
        if isinstance(record, ResultRecord):
            record = record.model_dump(exclude_none=True)
        clean = _sanitize(record)
        url = canonicalize(clean.get("url") or "")
        if not url:
            log.warning("Result ignored: no URL (%s)", clean.get("title") or "untitled")
            return None
        clean["url"] = url

        async with self._lock:
            records = self._read()
            for i, existing in enumerate(records):
                if canonicalize(str(existing.get("url", ""))) == url:
                    stored = merge_records(existing, clean)
                    stored["url"] = url
                    stored["extracted_at"] = existing.get("extracted_at") or _now()
                    stored["updated_at"] = _now()
                    records[i] = stored
                    log.info("Result updated: %s", stored.get("title") or url)
                    break
            else:
                stored = {k: v for k, v in clean.items() if k not in _TIMESTAMPS and not _is_empty(v)}
                stored["extracted_at"] = _now()
                records.append(stored)
                log.info("Result saved: %s", stored.get("title") or url)
            self._write(records)
        return ResultRecord.model_validate(stored)

    async def all(self) -> List[ResultRecord]:
        async with self._lock:
            return [ResultRecord.model_validate(r) for r in self._read() if r.get("url")]

    async def get(self, url: str) -> Optional[ResultRecord]:
        key = canonicalize(url)
        for record in await self.all():
            if canonicalize(record.url) == key:
                return record
        return None
