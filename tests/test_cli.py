# File: tests/test_cli.py
"""Тесты для CLI (`job_scout.cli`) с использованием click.testing.CliRunner.
Проверяют команды `scan`, `submit`, `status`, `results`, `config`, `--version`, а также обработку ошибок.
"""
import asyncio
import json
import types

import pytest
from click.testing import CliRunner

import job_scout.cli as cli_module
from job_scout.cli import cli
from job_scout.crawler.crawler import RunStats

QUIET = ["--log-level", "ERROR"]


@pytest.fixture()
def cfg_file(tmp_path):
    """Конфиг, пишущий результаты и цели во временную папку."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "max_depth": 1,
                "results_path": str(tmp_path / "results.json"),
                "targets_path": str(tmp_path / "sites.json"),
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def patch_start_scan(monkeypatch):
    """Патчим start_scan: запоминаем цели и возвращаем фиктивную статистику."""
    seen = {}

    async def fake_scan(cfg, targets):
        seen["targets"] = list(targets)
        seen["config"] = cfg
        return RunStats(processed=3, saved=1)

    monkeypatch.setattr(cli_module, "start_scan", fake_scan)
    return seen


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "JobScout" in result.output


def test_show_config(cfg_file):
    runner = CliRunner()
    result = runner.invoke(cli, QUIET + ["--config", str(cfg_file), "config"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["max_depth"] == 1
    assert data["queue_backend"] == "memory"


def test_invalid_config_is_reported(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("max_depth: nope", encoding="utf-8")
    result = CliRunner().invoke(cli, ["--config", str(bad), "config"])
    assert result.exit_code == 1
    assert "Ошибка загрузки конфигурации" in result.output


def test_scan_single_url(cfg_file, patch_start_scan):
    runner = CliRunner()
    result = runner.invoke(
        cli, QUIET + ["--config", str(cfg_file), "scan", "--url", "https://example.org/jobs", "--name", "ex"]
    )
    assert result.exit_code == 0, result.output
    stats = json.loads(result.output)
    assert stats["processed"] == 3
    assert stats["saved"] == 1
    (target,) = patch_start_scan["targets"]
    assert target.name == "ex"
    assert patch_start_scan["config"].max_depth == 1


def test_scan_targets_file(cfg_file, tmp_path, patch_start_scan):
    sites = tmp_path / "other_sites.json"
    sites.write_text(
        json.dumps([{"name": "a", "url": "https://a.example.org"}, {"name": "b", "url": "https://b.example.org"}]),
        encoding="utf-8",
    )
    result = CliRunner().invoke(cli, QUIET + ["--config", str(cfg_file), "scan", "--targets", str(sites)])
    assert result.exit_code == 0, result.output
    assert [t.name for t in patch_start_scan["targets"]] == ["a", "b"]


def test_scan_without_targets_fails(cfg_file):
    result = CliRunner().invoke(cli, QUIET + ["--config", str(cfg_file), "scan"])
    assert result.exit_code == 1
    assert "Нет целей" in result.output


def test_scan_timeout(monkeypatch, cfg_file):
    # Патчим start_scan на долгую функцию
    async def slow(cfg, targets):
        await asyncio.sleep(2)
        return RunStats()

    monkeypatch.setattr(cli_module, "start_scan", slow)

    runner = CliRunner()
    result = runner.invoke(
        cli, QUIET + ["--config", str(cfg_file), "scan", "--url", "https://example.org", "--scan-timeout", "0.5"]
    )
    assert result.exit_code != 0
    assert "не завершено" in result.output


def test_submit_and_status_with_memory_queue(cfg_file):
    runner = CliRunner()
    result = runner.invoke(cli, QUIET + ["--config", str(cfg_file), "submit", "https://example.org/", "--name", "ex"])
    assert result.exit_code == 0
    assert result.output.strip() == "queued"

    status = runner.invoke(cli, QUIET + ["--config", str(cfg_file), "status"])
    assert status.exit_code == 0
    # the memory backend lives only as long as one command
    assert json.loads(status.output)["waiting"] == 0


def test_submit_rejects_non_http_url(cfg_file):
    result = CliRunner().invoke(cli, QUIET + ["--config", str(cfg_file), "submit", "ftp://x", "--name", "ex"])
    assert result.exit_code == 1


def test_results_lists_store(cfg_file, tmp_path):
    (tmp_path / "results.json").write_text(
        json.dumps([{"url": "https://example.org/j", "title": "Koch", "extracted_at": "2025-01-01T00:00:00+00:00"}]),
        encoding="utf-8",
    )
    result = CliRunner().invoke(cli, QUIET + ["--config", str(cfg_file), "results", "--pretty"])
    assert result.exit_code == 0
    records = json.loads(result.output)
    assert records[0]["title"] == "Koch"


def test_cli_submodule_is_not_shadowed(patch_start_scan):
    # патчи должны попадать в модуль, из которого команды берут функции
    assert isinstance(cli_module, types.ModuleType)
    assert cli_module.start_scan is not None
    assert cli_module.cli is cli


def test_submit_passes_schema(monkeypatch, cfg_file, tmp_path):
    seen = {}

    async def fake_submit(cfg, url, name, schema=None):
        seen.update(url=url, name=name, schema=schema)
        return True

    monkeypatch.setattr(cli_module, "submit_url", fake_submit)
    schema = tmp_path / "schema.json"
    schema.write_text(json.dumps({"title": "Titel", "contact": {"description": "E-Mail"}}), encoding="utf-8")

    result = CliRunner().invoke(
        cli, QUIET + ["--config", str(cfg_file), "submit", "https://example.org/", "--name", "ex", "--schema", str(schema)]
    )
    assert result.exit_code == 0, result.output
    assert seen == {"url": "https://example.org/", "name": "ex", "schema": {"title": "Titel", "contact": "E-Mail"}}


def test_submit_rejects_bad_schema(cfg_file, tmp_path):
    schema = tmp_path / "schema.json"
    schema.write_text("[1, 2]", encoding="utf-8")
    result = CliRunner().invoke(
        cli, QUIET + ["--config", str(cfg_file), "submit", "https://example.org/", "--name", "ex", "--schema", str(schema)]
    )
    assert result.exit_code == 1
    assert "схемы" in result.output
