# File: asset_sentry/parser/sitemap_parser.py
"""asset_sentry.parser.sitemap_parser: Парсинг sitemap.xml и рекурсивный обход sitemap index."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Protocol, Set

from lxml import etree

from asset_sentry.utils import remove_duplicates

logger = logging.getLogger("AssetSentry")

SitemapKind = Literal["index", "urlset", "unknown"]


class SitemapError(ValueError):
    """Содержимое не удалось разобрать как XML."""


class TextFetcher(Protocol):
    async def fetch_text(self, url: str) -> str: ...


@dataclass(frozen=True, slots=True)
class SitemapDocument:
    kind: SitemapKind
    locs: List[str]


def _local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname.lower()


def parse_sitemap(xml_content: str) -> SitemapDocument:
    """Разбирает XML sitemap и возвращает его тип и список <loc>.

    Args:
        xml_content: строка с содержимым sitemap.xml.

    Returns:
        SitemapDocument: ``kind == "index"`` для <sitemapindex> (locs: дочерние
        sitemap), ``"urlset"`` для <urlset> (locs: страницы).

    Пример:
    ```python
    doc = parse_sitemap(open("sitemap.xml", encoding="utf-8").read())
    if doc.kind == "urlset":
        print(doc.locs)
    ```
    """
    parser = etree.XMLParser(ns_clean=True, recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(xml_content.strip().encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as exc:
        raise SitemapError(f"Invalid sitemap XML: {exc}") from exc
    if root is None:
        raise SitemapError("Empty or non-XML sitemap document")

    root_name = _local_name(root.tag)
    if root_name == "sitemapindex":
        kind: SitemapKind = "index"
        child_name = "sitemap"
    elif root_name == "urlset":
        kind = "urlset"
        child_name = "url"
    else:
        return SitemapDocument(kind="unknown", locs=[])

    locs: List[str] = []
    for child in root:
        if _local_name(child.tag) != child_name:
            continue
        for loc in child:
            if _local_name(loc.tag) == "loc" and loc.text and loc.text.strip():
                locs.append(loc.text.strip())
                break
    return SitemapDocument(kind=kind, locs=locs)


@dataclass
class _ResolveState:
    max_depth: int
    max_nodes: int
    fetched: int = 0
    seen: Set[str] = field(default_factory=set)


async def resolve_sitemap(
    fetcher: TextFetcher,
    sitemap_url: str,
    *,
    max_depth: int = 5,
    max_nodes: int = 50,
) -> List[str]:
    """Рекурсивно раскрывает sitemap index в плоский список URL страниц.

    Ошибка загрузки или разбора одного узла даёт пустой список для этого узла,
    остальные узлы продолжают обрабатываться. Глубина, общее число загрузок и
    повторные URL (циклы) ограничены.
    """
    state = _ResolveState(max_depth=max_depth, max_nodes=max_nodes)
    return await _resolve_node(fetcher, sitemap_url, 0, state)


async def _resolve_node(
    fetcher: TextFetcher, url: str, depth: int, state: _ResolveState
) -> List[str]:
    if url in state.seen:
        logger.warning("Sitemap %s already visited, skipping (cycle)", url)
        return []
    if depth > state.max_depth:
        logger.warning("Sitemap %s exceeds max depth %d, skipping", url, state.max_depth)
        return []
    if state.fetched >= state.max_nodes:
        logger.warning("Sitemap node limit %d reached, skipping %s", state.max_nodes, url)
        return []
    state.seen.add(url)
    state.fetched += 1

    logger.info("Fetching sitemap: %s", url)
    try:
        content = await fetcher.fetch_text(url)
        doc = parse_sitemap(content)
    except Exception as exc:
        logger.warning("Error parsing sitemap %s: %s", url, exc)
        return []

    if doc.kind == "index":
        urls: List[str] = []
        for child in doc.locs:
            urls.extend(await _resolve_node(fetcher, child, depth + 1, state))
        return urls
    if doc.kind == "urlset":
        return list(doc.locs)
    logger.warning("Sitemap %s is neither <sitemapindex> nor <urlset>", url)
    return []


def sitemap_url_for(target_url: str) -> str:
    """``https://site`` и ``https://site/`` → ``https://site/sitemap.xml``."""
    return f"{target_url}sitemap.xml" if target_url.endswith("/") else f"{target_url}/sitemap.xml"


def build_page_list(seed: str, resolved: List[str], max_pages: Optional[int]) -> List[str]:
    """Seed + найденные URL без дубликатов, первые ``max_pages`` в порядке обнаружения."""
    pages = remove_duplicates([seed, *resolved])
    if max_pages is not None and len(pages) > max_pages:
        logger.info("Limiting scan to first %d pages (of %d)", max_pages, len(pages))
        pages = pages[:max_pages]
    return pages
