# File: tests/test_store.py
import asyncio
import json

import pytest

from job_scout.storage.results import ResultStore, merge_records


def test_merge_records_non_empty_wins():
    merged = merge_records(
        {"url": "u", "title": "A", "email": "x@y.de", "extracted_at": "t0"},
        {"url": "u", "title": "B", "email": "", "location": None, "extracted_at": "t9"},
    )
    assert merged == {"url": "u", "title": "B", "email": "x@y.de", "extracted_at": "t0"}


@pytest.mark.asyncio()
async def test_upsert_merges_by_canonical_url(tmp_path):
    store = ResultStore(tmp_path / "results.json")
    first = await store.upsert({"url": "https://example.org/job/1/", "title": "A", "email": "x@y.de"})
    assert first.extracted_at is not None
    assert first.updated_at is None

    second = await store.upsert({"url": "https://EXAMPLE.org/job/1?utm_source=mail", "title": "B"})
    assert second.title == "B"
    assert second.email == "x@y.de"
    assert second.extracted_at == first.extracted_at
    assert second.updated_at is not None

    records = await store.all()
    assert len(records) == 1
    assert records[0].url == "https://example.org/job/1"


@pytest.mark.asyncio()
async def test_repeated_upsert_is_idempotent(tmp_path):
    store = ResultStore(tmp_path / "results.json")
    record = {"url": "https://example.org/job/2", "title": "Koch", "score": 65, "reasons": ["No application form"]}
    await store.upsert(record)
    await store.upsert(record)
    stored = json.loads((tmp_path / "results.json").read_text(encoding="utf-8"))
    assert len(stored) == 1
    assert stored[0]["title"] == "Koch"
    assert stored[0]["reasons"] == ["No application form"]


@pytest.mark.asyncio()
async def test_concurrent_upserts_do_not_lose_records(tmp_path):
    store = ResultStore(tmp_path / "results.json")
    await asyncio.gather(*(store.upsert({"url": f"https://example.org/job/{i}"}) for i in range(20)))
    assert len(await store.all()) == 20


@pytest.mark.asyncio()
async def test_record_without_url_is_ignored(tmp_path):
    store = ResultStore(tmp_path / "results.json")
    assert await store.upsert({"title": "no url"}) is None
    assert await store.all() == []


@pytest.mark.asyncio()
async def test_control_characters_are_stripped(tmp_path):
    store = ResultStore(tmp_path / "results.json")
    saved = await store.upsert({"url": "https://example.org/j", "title": "Koch\x00\x1b in Berlin\n"})
    assert saved.title == "Koch in Berlin"


@pytest.mark.asyncio()
async def test_extra_schema_fields_are_kept(tmp_path):
    store = ResultStore(tmp_path / "results.json")
    await store.upsert({"url": "https://example.org/j", "start_date": "2025-09-01"})
    record = await store.get("https://example.org/j/")
    assert record is not None
    assert record.model_dump()["start_date"] == "2025-09-01"


@pytest.mark.asyncio()
async def test_corrupt_file_is_backed_up_and_reset(tmp_path):
    path = tmp_path / "results.json"
    path.write_text("[{broken", encoding="utf-8")
    store = ResultStore(path)

    assert await store.all() == []
    backups = list(tmp_path.glob("results.json.bak.*.json"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "[{broken"
    assert json.loads(path.read_text(encoding="utf-8")) == []

    await store.upsert({"url": "https://example.org/new"})
    assert [r.url for r in await store.all()] == ["https://example.org/new"]
