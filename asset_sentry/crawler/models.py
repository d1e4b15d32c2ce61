# asset_sentry/crawler/models.py
"""
Data models for the AssetSentry crawler.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union


@dataclass(frozen=True, slots=True)
class ResourceReference:
    """A URL seen on a page (href/src/action attribute or pattern match)."""

    url: str
    found_on_page: str


@dataclass(slots=True)
class PageExtraction:
    """Everything extracted from one visited page."""

    page: str
    urls: List[str] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)

    def references(self) -> Iterator[ResourceReference]:
        for url in self.urls:
            yield ResourceReference(url=url, found_on_page=self.page)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional[PageExtraction]:
        """Запись из found_urls.json; None, если ``urls`` не список."""
        urls = data.get("urls")
        if not isinstance(urls, list):
            return None
        return cls(page=str(data.get("page")), urls=[u for u in urls if isinstance(u, str)])


@dataclass(frozen=True, slots=True)
class ScriptAsset:
    """A downloaded script file and where it came from."""

    filename: str
    original_url: str
    found_on_page: str
    path: Optional[Path] = None

    def to_dict(self) -> Dict[str, str]:
        return {
            "filename": self.filename,
            "originalUrl": self.original_url,
            "foundOnPage": self.found_on_page,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str], assets_dir: Union[Path, str, None] = None) -> ScriptAsset:
        filename = str(data["filename"])
        return cls(
            filename=filename,
            original_url=str(data.get("originalUrl", "")),
            found_on_page=str(data.get("foundOnPage", "")),
            path=Path(assets_dir) / filename if assets_dir is not None else None,
        )


@dataclass(frozen=True, slots=True)
class ScanMetadata:
    """Counters describing one crawl run."""

    scanned_url_count: int
    downloaded_script_count: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "scannedUrlCount": self.scanned_url_count,
            "downloadedScriptCount": self.downloaded_script_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> ScanMetadata:
        return cls(
            scanned_url_count=int(data.get("scannedUrlCount", 0)),
            downloaded_script_count=int(data.get("downloadedScriptCount", 0)),
        )


@dataclass(slots=True)
class CrawlResult:
    """Output of :meth:`CrawlSession.crawl`."""

    pages: List[PageExtraction]
    scripts: List[ScriptAsset]
    metadata: ScanMetadata

    def references(self) -> List[ResourceReference]:
        return [ref for page in self.pages for ref in page.references()]

    def found_urls(self) -> List[Dict[str, object]]:
        return [{"page": page.page, "urls": list(page.urls)} for page in self.pages]
