# File: asset_sentry/crawler/__init__.py
"""asset_sentry.crawler: Обход страниц, извлечение ссылок и скачивание скриптов."""

from .crawler import CrawlSession
from .fetcher import NavigationError, PageFetcher, PlaywrightPageFetcher, StaticPageFetcher
from .models import CrawlResult, PageExtraction, ResourceReference, ScanMetadata, ScriptAsset

__all__ = [
    "CrawlSession",
    "NavigationError",
    "PageFetcher",
    "PlaywrightPageFetcher",
    "StaticPageFetcher",
    "CrawlResult",
    "PageExtraction",
    "ResourceReference",
    "ScanMetadata",
    "ScriptAsset",
]
