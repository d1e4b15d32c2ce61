# File: asset_sentry/liveness.py
"""asset_sentry.liveness: Поиск «мёртвых» доменов (NXDOMAIN) среди найденных при обходе.

Домены собираются из двух источников: ссылки со страниц (found_urls.json) и
URL-подобные строки в скачанных скриптах. Для каждого домена хранится множество
строк-источников, чтобы по отчёту можно было найти и убрать висящую ссылку.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Collection, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Union

from asset_sentry.crawler.models import PageExtraction
from asset_sentry.oracles.dnsbl import ARecordResolver
from asset_sentry.oracles.resolver import DNSNotFound
from asset_sentry.utils import extract_hostname, find_urls, is_checkable_domain

__all__ = (
    "DomainSources",
    "DeadDomainFinding",
    "LivenessReport",
    "SCRIPT_SUFFIXES",
    "collect_domain_sources",
    "check_liveness",
    "page_source",
    "script_source",
)

logger = logging.getLogger("AssetSentry")

SCRIPT_SUFFIXES = (".js", ".json", ".map")
LEGACY_SOURCE = "Found during Crawl (Source Unknown)"


def page_source(page: str) -> str:
    return f"Found on Page: {page}"


def script_source(filename: str, meta: Optional[Mapping[str, Any]]) -> str:
    if meta:
        return f"Found in Script: {meta.get('originalUrl')} (loaded by {meta.get('foundOnPage')})"
    return f"Found in Script File: {filename} (source unknown)"


class DomainSources:
    """domain → множество описаний источников, в порядке первого обнаружения домена."""

    def __init__(self) -> None:
        self._sources: Dict[str, Set[str]] = {}

    def add(self, url: str, source: str) -> Optional[str]:
        domain = extract_hostname(url)
        if not domain:
            return None
        self._sources.setdefault(domain, set()).add(source)
        return domain

    def sources(self, domain: str) -> List[str]:
        return sorted(self._sources.get(domain, ()))

    def domains(self) -> List[str]:
        return list(self._sources)

    def __contains__(self, domain: object) -> bool:
        return domain in self._sources

    def __iter__(self) -> Iterator[str]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)


@dataclass(frozen=True, slots=True)
class DeadDomainFinding:
    domain: str
    error: str
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"domain": self.domain, "error": self.error, "sources": list(self.sources)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeadDomainFinding:
        return cls(
            domain=str(data.get("domain", "")),
            error=str(data.get("error", "")),
            sources=[str(s) for s in data.get("sources") or []],
        )


@dataclass(slots=True)
class LivenessReport:
    dead_domains: List[DeadDomainFinding]
    total_checked: int
    #: текст ошибки, если проверка не выполнилась целиком
    error: Optional[str] = None

    def to_dict(self, timestamp: str) -> Dict[str, Any]:
        return {
            "deadDomains": [d.to_dict() for d in self.dead_domains],
            "totalChecked": self.total_checked,
            "error": self.error,
            "timestamp": timestamp,
        }

    @classmethod
    def failed(cls, exc: BaseException) -> LivenessReport:
        return cls(dead_domains=[], total_checked=0, error=str(exc) or type(exc).__name__)


def _iter_script_files(assets_dir: Path, listed: Collection[str]) -> Iterable[Path]:
    """Файлы из downloaded_scripts.json читаются всегда, остальные только по расширению."""
    for path in sorted(assets_dir.rglob("*")):
        if not path.is_file():
            continue
        if path.name in listed or path.suffix.lower() in SCRIPT_SUFFIXES:
            yield path


def collect_domain_sources(
    found_urls: Optional[Iterable[Mapping[str, Any]]] = None,
    scripts_meta: Optional[Iterable[Mapping[str, Any]]] = None,
    assets_dir: Union[Path, str, None] = None,
    *,
    legacy_urls: Optional[Iterable[str]] = None,
) -> DomainSources:
    """Собирает домены со страниц и из текста скачанных скриптов."""
    sources = DomainSources()

    for item in found_urls or []:
        page = PageExtraction.from_dict(item)
        if page is None:
            continue
        for ref in page.references():
            sources.add(ref.url, page_source(ref.found_on_page))

    for line in legacy_urls or []:
        if line.strip():
            sources.add(line.strip(), LEGACY_SOURCE)

    by_filename: Dict[str, Mapping[str, Any]] = {}
    for meta in scripts_meta or []:
        name = meta.get("filename")
        if isinstance(name, str):
            by_filename[name] = meta

    if assets_dir is not None and Path(assets_dir).is_dir():
        logger.info("Scanning JS assets for URLs...")
        for path in _iter_script_files(Path(assets_dir), by_filename):
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.error("Error reading %s: %s", path, exc)
                continue
            description = script_source(path.name, by_filename.get(path.name))
            for match in find_urls(content):
                sources.add(match, description)

    return sources


async def check_liveness(
    sources: DomainSources,
    resolver: ARecordResolver,
    *,
    concurrency: Optional[int] = None,
) -> LivenessReport:
    """Один DNS-запрос на домен; «мёртвый» только при NXDOMAIN.

    Таймауты, SERVFAIL и прочие ошибки резолвера признаком takeover-риска
    не считаются и в отчёт не попадают.
    """
    domains = [d for d in sources.domains() if is_checkable_domain(d)]
    logger.info("Checking DNS for %d unique domains...", len(domains))
    semaphore = asyncio.Semaphore(concurrency) if concurrency else None

    async def _probe(domain: str) -> None:
        if semaphore is None:
            await resolver.resolve_a(domain)
            return
        async with semaphore:
            await resolver.resolve_a(domain)

    results = await asyncio.gather(*(_probe(d) for d in domains), return_exceptions=True)

    dead: List[DeadDomainFinding] = []
    for domain, result in zip(domains, results):
        if isinstance(result, DNSNotFound):
            dead.append(DeadDomainFinding(domain, result.code, sources.sources(domain)))
        elif isinstance(result, Exception):
            logger.debug("DNS lookup for %s failed without NXDOMAIN: %s", domain, result)
        elif isinstance(result, BaseException):
            raise result
    return LivenessReport(dead_domains=dead, total_checked=len(domains))
