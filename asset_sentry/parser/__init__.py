# File: asset_sentry/parser/__init__.py
"""asset_sentry.parser: Разбор sitemap.xml."""

from .sitemap_parser import (
    SitemapDocument,
    SitemapError,
    build_page_list,
    parse_sitemap,
    resolve_sitemap,
    sitemap_url_for,
)

__all__ = [
    "SitemapDocument",
    "SitemapError",
    "build_page_list",
    "parse_sitemap",
    "resolve_sitemap",
    "sitemap_url_for",
]
