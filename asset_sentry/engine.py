# File: asset_sentry/engine.py
"""asset_sentry.engine: Orchestration layer: обход, проверки и сборка отчёта.

Каждый шаг читает и пишет файлы-артефакты, поэтому шаги можно запускать
по одному из CLI или все вместе через :func:`run_pipeline`.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import List, Optional

from aiohttp import ClientSession, ClientTimeout

from asset_sentry.aggregator import (
    ExternalScanSummary,
    ScanReport,
    aggregate,
    parse_clamav_report,
    parse_retire_report,
)
from asset_sentry.config import ScannerConfig
from asset_sentry.crawler.crawler import CrawlSession
from asset_sentry.crawler.fetcher import PageFetcher, PlaywrightPageFetcher
from asset_sentry.crawler.models import CrawlResult
from asset_sentry.liveness import (
    LivenessReport,
    check_liveness,
    collect_domain_sources,
)
from asset_sentry.logger import logger
from asset_sentry.oracles.dnsbl import ARecordResolver, BlacklistChecker, BlacklistFinding, build_oracles
from asset_sentry.oracles.resolver import DNSResolver
from asset_sentry.oracles.safebrowsing import SafeBrowsingChecker, SafeBrowsingFinding
from asset_sentry.parser.sitemap_parser import build_page_list, resolve_sitemap, sitemap_url_for
from asset_sentry.report import json_report
from asset_sentry.report.html_report import render_html
from asset_sentry.utils import extract_hostname

__all__ = [
    "run_crawl",
    "run_dead_domain_check",
    "run_blacklist_check",
    "run_safebrowsing_check",
    "build_report",
    "run_pipeline",
]


def _http_session(cfg: ScannerConfig) -> ClientSession:
    return ClientSession(
        timeout=ClientTimeout(total=cfg.download_timeout),
        headers={"User-Agent": cfg.user_agent},
        raise_for_status=False,
    )


async def run_crawl(
    cfg: ScannerConfig, target_url: str, fetcher: Optional[PageFetcher] = None
) -> CrawlResult:
    """Sitemap → список страниц → обход → found_urls.json / downloaded_scripts.json / scan-metadata.json."""
    async with AsyncExitStack() as stack:
        if fetcher is None:
            logger.info("Launching browser...")
            fetcher = await stack.enter_async_context(
                PlaywrightPageFetcher(
                    user_agent=cfg.user_agent,
                    sitemap_timeout_ms=int(cfg.navigation_timeout * 1000),
                )
            )
        http = await stack.enter_async_context(_http_session(cfg))

        sitemap_url = sitemap_url_for(target_url)
        logger.info("Attempting to find sitemap at %s...", sitemap_url)
        resolved = await resolve_sitemap(
            fetcher,
            sitemap_url,
            max_depth=cfg.sitemap_max_depth,
            max_nodes=cfg.sitemap_max_nodes,
        )
        if resolved:
            logger.info("Found %d pages in sitemap.", len(resolved))
        else:
            logger.info("No pages found in sitemap or sitemap failed. Scanning homepage only.")
        pages = build_page_list(target_url, resolved, cfg.max_pages)

        session = CrawlSession(
            fetcher,
            http,
            cfg.assets_dir,
            skip_prefixes=cfg.skip_url_prefixes,
            include_prefixes=cfg.include_url_prefixes,
            script_skip_domains=cfg.skip_script_domains,
            navigation_timeout=cfg.navigation_timeout,
            download_timeout=cfg.download_timeout,
            wait_until=cfg.wait_until,
        )
        result = await session.crawl(pages)

    json_report.write_crawl_artifacts(result, cfg.output_dir, cfg.reports_dir)
    logger.info("Scanned %d pages.", result.metadata.scanned_url_count)
    logger.info("Downloaded %d unique scripts.", result.metadata.downloaded_script_count)
    return result


async def run_dead_domain_check(
    cfg: ScannerConfig, resolver: Optional[ARecordResolver] = None
) -> LivenessReport:
    """Читает артефакты обхода и скачанные скрипты, пишет dead-domains.json."""
    logger.info("--- Dead Domain Scanner ---")
    found_urls = json_report.load_found_urls(cfg.output_dir)
    legacy = None
    if found_urls is None:
        legacy = json_report.load_legacy_urls(cfg.output_dir)
        if legacy is not None:
            logger.info("Reading URLs from crawl (Legacy TXT)...")
    else:
        logger.info("Reading URLs from crawl (JSON)...")

    sources = collect_domain_sources(
        found_urls,
        json_report.load_scripts_meta(cfg.output_dir),
        cfg.assets_dir,
        legacy_urls=legacy,
    )
    resolver = resolver or DNSResolver(timeout=cfg.dns_timeout)
    report = await check_liveness(sources, resolver, concurrency=cfg.dns_concurrency)
    json_report.write_dead_domains(report, cfg.reports_dir)

    if report.dead_domains:
        logger.error("[CRITICAL] Found potentially dead domains/DNS entries:")
        for dead in report.dead_domains:
            logger.error("Domain: %s (%s)", dead.domain, dead.error)
            for source in dead.sources:
                logger.error("  - %s", source)
    else:
        logger.info("SUCCESS: No dead domains found.")
    return report


async def run_blacklist_check(
    cfg: ScannerConfig, target: str, resolver: Optional[ARecordResolver] = None
) -> BlacklistFinding:
    """Проверяет домен цели по всем настроенным DNSBL, пишет blacklist-report.json."""
    domain = extract_hostname(target) or target
    resolver = resolver or DNSResolver(timeout=cfg.dns_timeout)
    checker = BlacklistChecker(build_oracles(cfg.oracles, resolver), resolver)
    finding = await checker.check(domain)
    json_report.write_blacklist(finding, cfg.reports_dir)
    return finding


async def run_safebrowsing_check(cfg: ScannerConfig, target: str) -> SafeBrowsingFinding:
    """Проверяет полный URL цели в Safe Browsing, пишет safebrowsing-report.json."""
    if not cfg.safe_browsing_key:
        finding = await SafeBrowsingChecker(None).check(target)
    else:
        async with _http_session(cfg) as http:
            checker = SafeBrowsingChecker(
                cfg.safe_browsing_key, http, endpoint=cfg.safe_browsing_endpoint
            )
            finding = await checker.check(target)
    path = json_report.write_safebrowsing(finding, cfg.reports_dir)
    logger.info("Report written to: %s", path)
    return finding


def _external_summaries(cfg: ScannerConfig) -> List[ExternalScanSummary]:
    summaries: List[ExternalScanSummary] = []
    retire = json_report.read_json(cfg.reports_dir / json_report.RETIRE_REPORT)
    if retire is not None:
        summaries.append(parse_retire_report(retire))
    clamav_path = cfg.reports_dir / json_report.CLAMAV_REPORT
    if clamav_path.is_file():
        summaries.append(parse_clamav_report(clamav_path.read_text(encoding="utf-8", errors="replace")))
    return summaries


def build_report(cfg: ScannerConfig, target_url: str = "") -> ScanReport:
    """Собирает ScanReport из артефактов и пишет security-report.json / .html."""
    reports_dir = cfg.reports_dir
    dead, dead_error = json_report.load_dead_domains(reports_dir)

    report = aggregate(
        dead,
        json_report.load_blacklist(reports_dir),
        json_report.load_safebrowsing(reports_dir),
        json_report.load_scan_metadata(reports_dir),
        _external_summaries(cfg),
        target_url=target_url,
        dead_domains_error=dead_error,
    )
    timestamp = json_report.utc_timestamp()
    json_report.write_json(report.to_dict(timestamp), reports_dir / json_report.SUMMARY_REPORT)
    render_html(report, reports_dir / json_report.HTML_REPORT)
    logger.info("%s (%d issues)", report.subject, report.total_issues)
    return report


async def run_pipeline(
    cfg: ScannerConfig,
    target_url: str,
    *,
    fetcher: Optional[PageFetcher] = None,
    resolver: Optional[ARecordResolver] = None,
) -> ScanReport:
    """Полный прогон; сбой одного шага логируется, следующие шаги всё равно выполняются.

    Артефакты прошлого прогона удаляются в начале, а упавшая проверка
    записывает свой файл со статусом ошибки, так что в отчёт попадает
    только результат текущего запуска.
    """
    json_report.clear_stage_artifacts(cfg.output_dir, cfg.reports_dir)

    logger.info("[1/5] Starting asset download for %s...", target_url)
    try:
        await run_crawl(cfg, target_url, fetcher)
    except Exception as exc:
        logger.error("Crawl failed: %s", exc)

    logger.info("[2/5] Running dead domain scan...")
    try:
        await run_dead_domain_check(cfg, resolver)
    except Exception as exc:
        logger.error("Dead domain scan failed: %s", exc)
        json_report.write_dead_domains(LivenessReport.failed(exc), cfg.reports_dir)

    logger.info("[3/5] Running blacklist scan...")
    try:
        await run_blacklist_check(cfg, target_url, resolver)
    except Exception as exc:
        logger.error("Blacklist scan failed: %s", exc)
        domain = extract_hostname(target_url) or target_url
        json_report.write_blacklist(BlacklistFinding.failed(domain, exc), cfg.reports_dir)

    logger.info("[4/5] Running Google Safe Browsing scan...")
    try:
        await run_safebrowsing_check(cfg, target_url)
    except Exception as exc:
        logger.error("Safe Browsing scan failed: %s", exc)
        json_report.write_safebrowsing(
            SafeBrowsingFinding(target_url, "error", details=str(exc) or type(exc).__name__),
            cfg.reports_dir,
        )

    logger.info("[5/5] Building report...")
    return build_report(cfg, target_url)
