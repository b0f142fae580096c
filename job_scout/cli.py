# === FILE: job_scout/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска краулера вакансий JobScout через командную строку.

Команды:
  scan      Поставить цели в очередь и обрабатывать её, пока она не опустеет
  submit    Поставить в очередь один стартовый URL
  work      Запустить воркеры над уже заполненной очередью (Redis)
  status    Показать счётчики очереди
  results   Вывести сохранённые результаты
  config    Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stdout, если не указан)
  --log-format FORMAT Формат логирования (e.g. "%(asctime)s %(levelname)s %(message)s")

Команда scan опции:
  --targets PATH      JSON/YAML со списком целей (override targets_path)
  --url URL --name N  Одна цель вместо файла
  --scan-timeout SEC  Таймаут всего сканирования (секунд)

Команда submit опции:
  --name N            Имя источника
  --schema PATH       YAML/JSON со схемой извлечения для этой цели

Дополнительно:
  --version, -v       Показать версию JobScout

Переменные окружения (можно положить в .env): OPENAI_API_KEY.

Пример:
  job-scout --config configs/default.yaml scan --targets data/sites.json
"""
import asyncio
import json
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from job_scout import __version__
from job_scout.config import ScanTarget, load_config, load_schema, load_targets
from job_scout.engine import queue_status, run_worker, start_scan, submit_url
from job_scout.logger import init_logging
from job_scout.storage.results import ResultStore

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='JobScout, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stdout, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(name)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """Группа команд JobScout CLI."""
    load_dotenv()
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('scan', context_settings=CONTEXT_SETTINGS)
@click.option(
    '--targets', '-t', 'targets_path',
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help='Файл со списком целей (override targets_path)'
)
@click.option('--url', 'url', default=None, help='Стартовый URL одной цели')
@click.option('--name', 'name', default=None, help='Имя источника для --url')
@click.option(
    '--scan-timeout', 'scan_timeout',
    type=float,
    default=None,
    help='Таймаут всего сканирования (секунд)'
)
@click.pass_context
def scan(ctx, targets_path, url, name, scan_timeout):
    """Засеять цели и обработать очередь до опустошения."""
    cfg = ctx.obj['config']
    if url:
        try:
            targets = [ScanTarget(name=name or url, url=url)]
        except ValueError as e:
            print_error(f'Некорректный URL {url}: {e}')
    else:
        try:
            targets = load_targets(targets_path or cfg.targets_path)
        except Exception as e:
            print_error(f'Ошибка загрузки целей: {e}')
    if not targets:
        print_error('Нет целей для сканирования')

    try:
        if scan_timeout:
            stats = asyncio.run(
                asyncio.wait_for(start_scan(cfg, targets), timeout=scan_timeout)
            )
        else:
            stats = asyncio.run(start_scan(cfg, targets))
    except asyncio.TimeoutError:
        print_error(f'Сканирование не завершено за {scan_timeout} секунд')
    except Exception as e:
        print_error(f'Ошибка при сканировании: {e}')

    click.echo(json.dumps(stats.to_dict(), ensure_ascii=False))


@cli.command('submit', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--name', 'name', required=True, help='Имя источника')
@click.option(
    '--schema', 'schema_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='YAML/JSON со схемой извлечения (поле: описание)'
)
@click.pass_context
def submit(ctx, url, name, schema_path):
    """Поставить в очередь один стартовый URL."""
    cfg = ctx.obj['config']
    schema = None
    if schema_path:
        try:
            schema = load_schema(schema_path)
        except Exception as e:
            print_error(f'Ошибка загрузки схемы: {e}')
    try:
        added = asyncio.run(submit_url(cfg, url, name, schema))
    except Exception as e:
        print_error(f'Ошибка постановки в очередь: {e}')
    click.echo('queued' if added else 'already queued')


@cli.command('work', context_settings=CONTEXT_SETTINGS)
@click.option('--forever', is_flag=True, help='Не останавливаться на пустой очереди')
@click.pass_context
def work(ctx, forever):
    """Запустить воркеры над уже заполненной очередью."""
    cfg = ctx.obj['config']
    try:
        stats = asyncio.run(run_worker(cfg, forever=forever))
    except KeyboardInterrupt:
        click.echo('Остановлено.')
        return
    except Exception as e:
        print_error(f'Ошибка воркера: {e}')
    click.echo(json.dumps(stats.to_dict(), ensure_ascii=False))


@cli.command('status', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def status(ctx):
    """Показать счётчики очереди в JSON."""
    cfg = ctx.obj['config']
    try:
        counts = asyncio.run(queue_status(cfg))
    except Exception as e:
        print_error(f'Очередь недоступна: {e}')
    click.echo(json.dumps(counts.to_dict()))


@cli.command('results', context_settings=CONTEXT_SETTINGS)
@click.option(
    '--pretty', is_flag=True,
    help='Преформатировать JSON-вывод (отступ 2)'
)
@click.pass_context
def results(ctx, pretty):
    """Вывести сохранённые результаты в JSON."""
    cfg = ctx.obj['config']
    records = asyncio.run(ResultStore(cfg.results_path).all())
    indent = 2 if pretty else None
    click.echo(json.dumps([r.model_dump() for r in records], ensure_ascii=False, indent=indent))


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
