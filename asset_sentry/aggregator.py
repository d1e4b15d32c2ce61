# File: asset_sentry/aggregator.py
"""asset_sentry.aggregator: Модуль агрегатора результатов проверок в итоговый отчёт."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from asset_sentry.crawler.models import ScanMetadata
from asset_sentry.liveness import DeadDomainFinding
from asset_sentry.oracles.dnsbl import BlacklistFinding
from asset_sentry.oracles.safebrowsing import SafeBrowsingFinding

__all__ = (
    "ExternalScanSummary",
    "ScanReport",
    "aggregate",
    "parse_clamav_report",
    "parse_retire_report",
    "STATUS_CLEAN",
    "STATUS_ISSUES",
)

STATUS_CLEAN = "Clean"
STATUS_ISSUES = "Issues Found"

_CLAMAV_SUMMARY_MARKER = "----------- SCAN SUMMARY -----------"
_CLAMAV_INFECTED_RE = re.compile(r"Infected files:\s*(\d+)")


@dataclass(slots=True)
class ExternalScanSummary:
    """Итог стороннего сканера (Retire.js, ClamAV): число проблем и строки для отчёта."""

    name: str
    issues: int = 0
    lines: List[str] = field(default_factory=list)


def parse_retire_report(data: Any) -> ExternalScanSummary:
    """JSON Retire.js: ``[{file, results: [{component, version}, ...]}, ...]``."""
    summary = ExternalScanSummary(name="Retire.js")
    if isinstance(data, dict):
        data = data.get("data", [])
    if not isinstance(data, list):
        return summary
    for entry in data:
        if not isinstance(entry, dict):
            continue
        results = entry.get("results") or []
        if not results:
            continue
        summary.issues += len(results)
        for result in results:
            if isinstance(result, dict):
                summary.lines.append(
                    f"{entry.get('file', '?')}: {result.get('component', '?')} {result.get('version', '?')}"
                )
    return summary


def parse_clamav_report(text: str) -> ExternalScanSummary:
    """Текстовый вывод clamscan: счётчик ``Infected files: N`` и строки с ``FOUND``."""
    summary = ExternalScanSummary(name="ClamAV")
    idx = text.find(_CLAMAV_SUMMARY_MARKER)
    tail = text[idx:] if idx >= 0 else text
    match = _CLAMAV_INFECTED_RE.search(tail)
    if match and int(match.group(1)) > 0:
        summary.issues = int(match.group(1))
        summary.lines = [line.strip() for line in text.splitlines() if line.rstrip().endswith("FOUND")]
    return summary


@dataclass(slots=True)
class ScanReport:
    """Сводный отчёт по всем категориям проверок."""

    dead_domains: List[DeadDomainFinding] = field(default_factory=list)
    blacklist: Optional[BlacklistFinding] = None
    safebrowsing: Optional[SafeBrowsingFinding] = None
    metadata: Optional[ScanMetadata] = None
    external: List[ExternalScanSummary] = field(default_factory=list)
    target_url: str = ""
    #: ошибка проверки мёртвых доменов, если она не завершилась
    dead_domains_error: Optional[str] = None

    @property
    def blacklist_issues(self) -> int:
        return 1 if self.blacklist is not None and self.blacklist.listed else 0

    @property
    def safebrowsing_issues(self) -> int:
        return 1 if self.safebrowsing is not None and self.safebrowsing.unsafe else 0

    @property
    def total_issues(self) -> int:
        return (
            len(self.dead_domains)
            + self.blacklist_issues
            + self.safebrowsing_issues
            + sum(e.issues for e in self.external)
        )

    @property
    def status(self) -> str:
        return STATUS_CLEAN if self.total_issues == 0 else STATUS_ISSUES

    @property
    def subject(self) -> str:
        return f"WebsiteSecurity Report: {self.status}"

    def to_dict(self, timestamp: str) -> Dict[str, Any]:
        return {
            "targetUrl": self.target_url,
            "status": self.status,
            "totalIssues": self.total_issues,
            "scanMetadata": self.metadata.to_dict() if self.metadata else None,
            "deadDomains": [d.to_dict() for d in self.dead_domains],
            "deadDomainsError": self.dead_domains_error,
            "blacklist": self.blacklist.to_dict(timestamp) if self.blacklist else None,
            "safebrowsing": self.safebrowsing.to_dict(timestamp) if self.safebrowsing else None,
            "external": [
                {"name": e.name, "issues": e.issues, "lines": list(e.lines)} for e in self.external
            ],
            "timestamp": timestamp,
        }

    def json(self, timestamp: str, *, pretty: bool = False) -> str:
        return json.dumps(self.to_dict(timestamp), ensure_ascii=False, indent=2 if pretty else None)


def aggregate(
    dead_domains: Sequence[DeadDomainFinding],
    blacklist: Optional[BlacklistFinding],
    safebrowsing: Optional[SafeBrowsingFinding],
    metadata: Optional[ScanMetadata],
    external: Sequence[ExternalScanSummary] = (),
    *,
    target_url: str = "",
    dead_domains_error: Optional[str] = None,
) -> ScanReport:
    """Собирает все части отчёта в ScanReport."""
    return ScanReport(
        dead_domains=list(dead_domains),
        blacklist=blacklist,
        safebrowsing=safebrowsing,
        metadata=metadata,
        external=list(external),
        target_url=target_url,
        dead_domains_error=dead_domains_error,
    )
