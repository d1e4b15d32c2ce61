# === FILE: asset_sentry/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска AssetSentry через командную строку.

Команды:
  crawl URL           Обойти сайт (sitemap + главная), собрать ссылки и скачать скрипты
  dead-domains        Найти домены без DNS-записи (риск subdomain takeover)
  blacklist URL       Проверить домен по DNS-блоклистам
  safebrowsing URL    Проверить URL в Google Safe Browsing
  report              Собрать сводный отчёт из артефактов
  scan URL            Всё вышеперечисленное по очереди
  config              Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --limit INT         Макс. число страниц для обхода (override max_pages)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stdout, если не указан)
  --log-format FORMAT Формат логирования

Коды выхода: 1, если не указан URL, найден мёртвый домен, реальный листинг в
блоклисте, небезопасный URL или (для scan) статус "Issues Found"; иначе 0.

Пример:
  asset-sentry --limit 50 scan https://example.com
"""
import asyncio
import sys
from pathlib import Path

import click

from asset_sentry import __version__
from asset_sentry.aggregator import STATUS_ISSUES
from asset_sentry.config import apply_env, load_config
from asset_sentry.engine import (
    build_report,
    run_blacklist_check,
    run_crawl,
    run_dead_domain_check,
    run_pipeline,
    run_safebrowsing_check,
)
from asset_sentry.logger import DEFAULT_FORMAT, init_logging

CONTEXT_SETTINGS = dict(help_option_names=["--help", "-h"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def require_target(url, usage: str) -> str:
    if not url:
        print_error(f'Please provide a URL to scan.\nUsage: asset-sentry {usage}')
    return url


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='AssetSentry, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--limit', '-l', 'limit',
    type=click.IntRange(min=1),
    default=None,
    help='Макс. число страниц для обхода (override max_pages)'
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
    default=DEFAULT_FORMAT,
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, limit, log_level, log_file, log_format):
    """AssetSentry: supply-chain проверки внешних ресурсов сайта."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = apply_env(load_config(config_path))
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    if limit is not None:
        cfg = cfg.model_copy(update={'max_pages': limit})
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('crawl', context_settings=CONTEXT_SETTINGS)
@click.argument('url', required=False, envvar='TARGET_URL')
@click.pass_context
def crawl(ctx, url):
    """Обойти сайт и скачать скрипты."""
    url = require_target(url, 'crawl <URL>')
    cfg = ctx.obj['config']
    try:
        result = asyncio.run(run_crawl(cfg, url))
    except Exception as e:
        print_error(f'Ошибка при обходе: {e}')
    click.echo(
        f'Scanned {result.metadata.scanned_url_count} pages, '
        f'downloaded {result.metadata.downloaded_script_count} scripts.'
    )


@cli.command('dead-domains', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def dead_domains(ctx):
    """Проверить найденные домены на NXDOMAIN."""
    cfg = ctx.obj['config']
    try:
        report = asyncio.run(run_dead_domain_check(cfg))
    except Exception as e:
        print_error(f'Ошибка проверки доменов: {e}')
    if report.dead_domains:
        click.secho(
            'FAILURE: Dead domains detected. Fix these to prevent takeover risks.',
            fg='red', err=True
        )
        ctx.exit(1)
    click.echo(f'SUCCESS: No dead domains found ({report.total_checked} checked).')


@cli.command('blacklist', context_settings=CONTEXT_SETTINGS)
@click.argument('target', required=False, envvar='TARGET_URL')
@click.pass_context
def blacklist(ctx, target):
    """Проверить домен по DNS-блоклистам."""
    target = require_target(target, 'blacklist <URL_OR_DOMAIN>')
    cfg = ctx.obj['config']
    try:
        finding = asyncio.run(run_blacklist_check(cfg, target))
    except Exception as e:
        print_error(f'Ошибка проверки блоклистов: {e}')
    click.echo(f'{finding.domain}: {finding.status} ({finding.details})')
    if finding.listed:
        ctx.exit(1)


@cli.command('safebrowsing', context_settings=CONTEXT_SETTINGS)
@click.argument('target', required=False, envvar='TARGET_URL')
@click.pass_context
def safebrowsing(ctx, target):
    """Проверить URL в Google Safe Browsing."""
    target = require_target(target, 'safebrowsing <URL_OR_DOMAIN>')
    cfg = ctx.obj['config']
    try:
        finding = asyncio.run(run_safebrowsing_check(cfg, target))
    except Exception as e:
        print_error(f'Ошибка проверки Safe Browsing: {e}')
    click.echo(f'{finding.url}: {finding.status} ({finding.details})')
    if finding.unsafe:
        ctx.exit(1)


@cli.command('report', context_settings=CONTEXT_SETTINGS)
@click.option('--target', 'target', default='', envvar='TARGET_URL', help='URL для заголовка отчёта')
@click.pass_context
def report(ctx, target):
    """Собрать сводный отчёт из JSON-артефактов."""
    cfg = ctx.obj['config']
    try:
        scan_report = build_report(cfg, target)
    except Exception as e:
        print_error(f'Ошибка сборки отчёта: {e}')
    click.echo(f'{scan_report.subject} ({scan_report.total_issues} issues)')


@cli.command('scan', context_settings=CONTEXT_SETTINGS)
@click.argument('url', required=False, envvar='TARGET_URL')
@click.option(
    '--scan-timeout', 'scan_timeout',
    type=float,
    default=None,
    help='Таймаут всего сканирования (секунд)'
)
@click.pass_context
def scan(ctx, url, scan_timeout):
    """Полный прогон: обход, проверки, отчёт."""
    url = require_target(url, 'scan <URL>')
    cfg = ctx.obj['config']
    click.echo(f'Starting scan of {url}')
    try:
        if scan_timeout:
            scan_report = asyncio.run(
                asyncio.wait_for(run_pipeline(cfg, url), timeout=scan_timeout)
            )
        else:
            scan_report = asyncio.run(run_pipeline(cfg, url))
    except asyncio.TimeoutError:
        print_error(f'Сканирование не завершено за {scan_timeout} секунд')
    except Exception as e:
        print_error(f'Ошибка сканирования: {e}')
    click.echo(f'{scan_report.subject} ({scan_report.total_issues} issues)')
    if scan_report.status == STATUS_ISSUES:
        ctx.exit(1)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
