# === FILE: asset_sentry/crawler/crawler.py ===
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence, Set
from urllib.parse import urljoin, urlsplit

from aiohttp import ClientError, ClientSession, ClientTimeout

from asset_sentry.crawler.fetcher import (
    LINK_ATTRIBUTES_JS,
    PAGE_MARKUP_JS,
    SCRIPT_SOURCES_JS,
    NavigationError,
    PageFetcher,
)
from asset_sentry.crawler.models import CrawlResult, PageExtraction, ScanMetadata, ScriptAsset
from asset_sentry.utils import find_urls, host_matches, path_excluded, unique_script_name

__all__ = ("CrawlSession",)


class CrawlSession:
    """
    Один прогон обхода: посещает каждую страницу не больше одного раза,
    собирает ссылки и скачивает скрипты. Всё состояние (seen-множества,
    результаты) принадлежит сессии.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        http_session: ClientSession,
        assets_dir: Path | str,
        *,
        skip_prefixes: Sequence[str] = (),
        include_prefixes: Sequence[str] = (),
        script_skip_domains: Sequence[str] = (),
        navigation_timeout: float = 30.0,
        download_timeout: float = 30.0,
        wait_until: str = "domcontentloaded",
    ) -> None:
        self.fetcher = fetcher
        self.http = http_session
        self.assets_dir = Path(assets_dir)
        self.skip_prefixes = list(skip_prefixes)
        self.include_prefixes = list(include_prefixes)
        self.script_skip_domains = list(script_skip_domains)
        self.navigation_timeout = navigation_timeout
        self.download_timeout = download_timeout
        self.wait_until = wait_until

        self.seen_pages: Set[str] = set()
        self.seen_scripts: Set[str] = set()
        self.pages: List[PageExtraction] = []
        self.scripts: List[ScriptAsset] = []
        self.logger = logging.getLogger("AssetSentry")

    def filter_pages(self, urls: Sequence[str]) -> List[str]:
        if not self.skip_prefixes:
            return list(urls)
        self.logger.info("Skipping URLs starting with: %s", ", ".join(self.skip_prefixes))
        if self.include_prefixes:
            self.logger.info("...unless they start with: %s", ", ".join(self.include_prefixes))
        kept: List[str] = []
        for url in urls:
            if path_excluded(url, self.skip_prefixes, self.include_prefixes):
                self.logger.info("Skipping %s (matches prefix)", url)
                continue
            kept.append(url)
        self.logger.info("Filtered out %d pages based on skip prefixes.", len(urls) - len(kept))
        return kept

    async def crawl(self, urls: Sequence[str]) -> CrawlResult:
        start = time.monotonic()
        self.assets_dir.mkdir(parents=True, exist_ok=True)
        for url in self.filter_pages(urls):
            if url in self.seen_pages:
                continue
            self.seen_pages.add(url)
            extraction = await self.visit(url)
            if extraction is None:
                continue
            self.pages.append(extraction)
            for script_url in extraction.scripts:
                await self.download_script(script_url, url)

        metadata = ScanMetadata(
            scanned_url_count=len(self.seen_pages),
            downloaded_script_count=len(self.scripts),
        )
        self.logger.info(
            "Crawl complete: %d pages, %d scripts downloaded in %.2f s",
            metadata.scanned_url_count,
            metadata.downloaded_script_count,
            time.monotonic() - start,
        )
        return CrawlResult(pages=list(self.pages), scripts=list(self.scripts), metadata=metadata)

    async def visit(self, url: str) -> Optional[PageExtraction]:
        self.logger.info("Visiting %s...", url)
        try:
            await self.fetcher.navigate(
                url, wait_until=self.wait_until, timeout_ms=int(self.navigation_timeout * 1000)
            )
            attributes = await self.fetcher.evaluate(LINK_ATTRIBUTES_JS)
            markup = await self.fetcher.evaluate(PAGE_MARKUP_JS)
            scripts = await self.fetcher.evaluate(SCRIPT_SOURCES_JS)
        except NavigationError as exc:
            self.logger.error("Error visiting %s: %s", url, exc.reason)
            return None
        except Exception as exc:
            self.logger.error("Error extracting from %s: %s", url, exc)
            return None

        found: Set[str] = set(self._resolve_attributes(url, attributes))
        if isinstance(markup, str):
            found.update(find_urls(markup))
        script_urls = [s for s in (scripts or []) if isinstance(s, str) and s]
        self.logger.debug("%s: %d URLs, %d scripts", url, len(found), len(script_urls))
        return PageExtraction(page=url, urls=sorted(found), scripts=script_urls)

    @staticmethod
    def _resolve_attributes(page_url: str, attributes: Any) -> List[str]:
        if not isinstance(attributes, dict):
            return []
        base = attributes.get("base") or page_url
        urls: List[str] = []
        for value in attributes.get("values") or []:
            if not isinstance(value, str) or not value.strip():
                continue
            try:
                absolute = urljoin(base, value.strip())
                parts = urlsplit(absolute)
            except ValueError:
                continue
            if parts.scheme in ("http", "https") and parts.hostname:
                urls.append(absolute)
        return urls

    async def download_script(self, script_url: str, page_url: str) -> Optional[ScriptAsset]:
        # check и mark без await между ними
        if script_url in self.seen_scripts:
            return None
        self.seen_scripts.add(script_url)

        try:
            host = urlsplit(script_url).hostname or ""
        except ValueError:
            host = ""
        if host and host_matches(host, self.script_skip_domains):
            self.logger.info("Skipping script from skipped domain: %s", script_url)
            return None

        filename = unique_script_name(script_url)
        dest = self.assets_dir / filename
        self.logger.info("--> Downloading %s", script_url)
        try:
            async with self.http.get(
                script_url, timeout=ClientTimeout(total=self.download_timeout)
            ) as resp:
                if resp.status != 200:
                    raise ClientError(f"Failed to download {script_url}: {resp.status}")
                body = await resp.read()
            dest.write_bytes(body)
        except (ClientError, asyncio.TimeoutError, ValueError, OSError) as exc:
            self.logger.error("Failed to handle script url %s: %s", script_url, str(exc) or type(exc).__name__)
            return None

        asset = ScriptAsset(
            filename=filename, original_url=script_url, found_on_page=page_url, path=dest
        )
        self.scripts.append(asset)
        return asset
