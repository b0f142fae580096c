# === FILE: job_scout/config.py ===
"""
Модуль для загрузки и валидации конфигурации JobScout.
Используется Pydantic для описания схемы и проверки данных.

Two sources are read here: the runtime :class:`CrawlerConfig` (YAML/JSON)
and the list of scan targets (:class:`ScanTarget`) kept in ``sites.json``.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
)

from job_scout.logger import get_logger
from job_scout.utils import backup_corrupt_file

log = get_logger("config")

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class CrawlerConfig(BaseModel):
    """Конфигурация для одного запуска краулера."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    # fetching
    user_agent: str = Field(BROWSER_USER_AGENT, min_length=1, description="Заголовок User-Agent.")
    timeout: float = Field(30.0, gt=0, description="Таймаут HTTP-запроса (секунд).")
    render_timeout: float = Field(60.0, gt=0, description="Таймаут навигации браузера (секунд).")
    min_links: int = Field(5, ge=0, description="Меньше ссылок, значит включается рендеринг.")
    scroll_steps: int = Field(8, ge=0, description="Шаги автопрокрутки для lazy-load.")
    browser_pages: int = Field(3, ge=1, description="Одновременно открытых страниц браузера.")
    headless: bool = True

    # scheduling
    max_depth: int = Field(2, ge=0, description="Максимальная глубина обхода ссылок.")
    child_limit: int = Field(20, ge=0, description="Лимит дочерних ссылок на страницу.")
    concurrency: int = Field(5, ge=1, description="Число параллельных воркеров.")
    rate_limit: float = Field(10.0, gt=0, description="Лимит задач в секунду.")
    max_attempts: int = Field(3, ge=1, description="Попыток на задачу до отбрасывания.")
    backoff: float = Field(5.0, ge=0, description="Базовая задержка экспоненциального backoff.")
    idle_timeout: float = Field(5.0, gt=0, description="Очередь пуста столько секунд, значит стоп.")

    # queue backend
    queue_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = Field("job-crawler", min_length=1)
    lease_timeout: float = Field(600.0, gt=0, description="Через сколько секунд зависшая задача возвращается в очередь (redis).")

    # persistence
    results_path: Path = Path("data/results.json")
    targets_path: Path = Path("data/sites.json")

    # classification service
    classifier_model: str = "gpt-4o-mini"
    classifier_timeout: float = Field(60.0, gt=0)
    link_batch_size: int = Field(50, ge=1, description="Ссылок в одном запросе к классификатору.")
    fallback_links: int = Field(10, ge=1, description="Ссылок при недоступном классификаторе.")
    max_text_chars: int = Field(12000, ge=500, description="Обрезка текста страницы для классификатора.")


class ScanTarget(BaseModel):
    """Одна цель сканирования: имя источника, стартовый URL, схема извлечения."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    url: HttpUrl
    schema_: Optional[Dict[str, str]] = Field(None, alias="schema")

    @field_validator("schema_", mode="before")
    def _empty_schema_is_none(cls, v: Any) -> Any:
        return normalize_schema(v)


def normalize_schema(v: Any) -> Any:
    """Empty mapping → ``None``; field values flattened to description strings."""
    if isinstance(v, dict) and not v:
        return None
    if isinstance(v, dict):
        return {str(k): _describe(d) for k, d in v.items()}
    return v


def _describe(field: Any) -> str:
    # schema fields come either as "description" or {"description": ...}
    if isinstance(field, dict):
        return str(field.get("description", ""))
    return "" if field is None else str(field)


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc


_SUFFIXES = (".yaml", ".yml", ".json")


def _check_suffix(path: Path) -> None:
    suffix = path.suffix.lower()
    if suffix not in _SUFFIXES:
        raise ValueError(f"Неподдерживаемый формат файла: {suffix or path.name}")


def _read_any(path: Path) -> Any:
    _check_suffix(path)
    if path.suffix.lower() == ".json":
        return _read_json(path)
    return _read_yaml(path)


def load_config(path: Union[str, Path, None]) -> CrawlerConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект CrawlerConfig.
    Без пути берёт configs/default.yaml, а если его нет, то значения по умолчанию.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            return CrawlerConfig()
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    data = _read_any(path_obj)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень конфига должен быть mapping, получено {type(data).__name__}")
    return CrawlerConfig(**data)


def load_targets(path: Union[str, Path]) -> List[ScanTarget]:
    """Read the list of scan targets.

    A missing file means "no targets". An unparsable file is backed up under a
    timestamped name and replaced by an empty list instead of aborting the run.
    A file that is neither YAML nor JSON by suffix raises :class:`ValueError`
    and is left untouched.
    Individually invalid entries are skipped with a warning.
    """
    p = Path(path)
    _check_suffix(p)
    if not p.is_file():
        return []
    try:
        data = _read_any(p)
    except ValueError:
        # only syntax errors get here, the suffix was checked above
        backup_corrupt_file(p, p.read_text(encoding="utf-8", errors="replace"))
        p.write_text("[]", encoding="utf-8")
        return []
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("sites", data.get("targets", []))
    if not isinstance(data, list):
        raise TypeError(f"Список целей должен быть list, получено {type(data).__name__}")

    targets: List[ScanTarget] = []
    for i, entry in enumerate(data):
        try:
            targets.append(ScanTarget.model_validate(entry))
        except ValidationError as exc:
            log.warning("Skipping target #%d in %s: %s", i, p, exc.errors()[0].get("msg"))
    return targets


def load_schema(path: Union[str, Path]) -> Optional[Dict[str, str]]:
    """Read an extraction schema (field → description) from YAML/JSON."""
    p = Path(path)
    data = _read_any(p)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise TypeError(f"Схема должна быть mapping, получено {type(data).__name__}")
    return normalize_schema(data)
