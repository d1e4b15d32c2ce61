# asset_sentry/report/json_report.py

"""
Запись и чтение JSON-артефактов AssetSentry.

Каждая проверка пишет свой файл; итоговый отчёт потом собирается из них,
поэтому шаги конвейера можно запускать по отдельности.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from asset_sentry.crawler.models import CrawlResult, ScanMetadata
from asset_sentry.liveness import DeadDomainFinding, LivenessReport
from asset_sentry.oracles.dnsbl import BlacklistFinding
from asset_sentry.oracles.safebrowsing import SafeBrowsingFinding

logger = logging.getLogger("AssetSentry")

FOUND_URLS = "found_urls.json"
FOUND_URLS_LEGACY = "found_urls.txt"
DOWNLOADED_SCRIPTS = "downloaded_scripts.json"
SCAN_METADATA = "scan-metadata.json"
DEAD_DOMAINS = "dead-domains.json"
BLACKLIST_REPORT = "blacklist-report.json"
SAFEBROWSING_REPORT = "safebrowsing-report.json"
RETIRE_REPORT = "retire-report.json"
CLAMAV_REPORT = "clamav-report.txt"
HTML_REPORT = "security-report.html"
SUMMARY_REPORT = "security-report.json"


def utc_timestamp() -> str:
    """ISO 8601 в UTC с миллисекундами: ``2024-05-01T12:00:00.000Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def write_json(data: Any, output_path: Union[Path, str]) -> Path:
    """
    Сохраняет data в формате JSON по указанному пути.

    :param data: сериализуемый объект
    :param output_path: путь к JSON-файлу
    :return: Path сохранённого файла
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    return output


def read_json(path: Union[Path, str]) -> Optional[Any]:
    """Содержимое JSON-файла или None, если файла нет или он повреждён."""
    p = Path(path)
    if not p.is_file():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Error parsing %s: %s", p.name, exc)
        return None


def write_crawl_artifacts(result: CrawlResult, output_dir: Path, reports_dir: Path) -> List[Path]:
    """found_urls.json и downloaded_scripts.json в output_dir, scan-metadata.json в reports_dir."""
    return [
        write_json(result.found_urls(), output_dir / FOUND_URLS),
        write_json([s.to_dict() for s in result.scripts], output_dir / DOWNLOADED_SCRIPTS),
        write_json(result.metadata.to_dict(), reports_dir / SCAN_METADATA),
    ]


def clear_stage_artifacts(output_dir: Path, reports_dir: Path) -> List[Path]:
    """Удаляет результаты прошлого прогона, чтобы упавший шаг не оставил их в отчёте.

    Файлы сторонних сканеров (Retire.js, ClamAV) и found_urls.txt не трогаются.
    """
    removed: List[Path] = []
    for path in (
        output_dir / FOUND_URLS,
        output_dir / DOWNLOADED_SCRIPTS,
        reports_dir / SCAN_METADATA,
        reports_dir / DEAD_DOMAINS,
        reports_dir / BLACKLIST_REPORT,
        reports_dir / SAFEBROWSING_REPORT,
        reports_dir / SUMMARY_REPORT,
        reports_dir / HTML_REPORT,
    ):
        if path.is_file():
            path.unlink()
            removed.append(path)
    return removed


def write_dead_domains(report: LivenessReport, reports_dir: Path) -> Path:
    return write_json(report.to_dict(utc_timestamp()), reports_dir / DEAD_DOMAINS)


def write_blacklist(finding: BlacklistFinding, reports_dir: Path) -> Path:
    return write_json(finding.to_dict(utc_timestamp()), reports_dir / BLACKLIST_REPORT)


def write_safebrowsing(finding: SafeBrowsingFinding, reports_dir: Path) -> Path:
    return write_json(finding.to_dict(utc_timestamp()), reports_dir / SAFEBROWSING_REPORT)


def _as_list(data: Any) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(data, list):
        return None
    return [item for item in data if isinstance(item, dict)]


def load_found_urls(output_dir: Path) -> Optional[List[Dict[str, Any]]]:
    return _as_list(read_json(output_dir / FOUND_URLS))


def load_legacy_urls(output_dir: Path) -> Optional[List[str]]:
    path = output_dir / FOUND_URLS_LEGACY
    if not path.is_file():
        return None
    return [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def load_scripts_meta(output_dir: Path) -> List[Dict[str, Any]]:
    return _as_list(read_json(output_dir / DOWNLOADED_SCRIPTS)) or []


def load_dead_domains(reports_dir: Path) -> Tuple[List[DeadDomainFinding], Optional[str]]:
    """(мёртвые домены, ошибка проверки) из dead-domains.json."""
    data = read_json(reports_dir / DEAD_DOMAINS)
    if not isinstance(data, dict):
        return [], None
    dead = [DeadDomainFinding.from_dict(d) for d in data.get("deadDomains") or [] if isinstance(d, dict)]
    error = data.get("error")
    return dead, str(error) if error else None


def load_scan_metadata(reports_dir: Path) -> Optional[ScanMetadata]:
    data = read_json(reports_dir / SCAN_METADATA)
    if not isinstance(data, dict):
        return None
    return ScanMetadata.from_dict(data)


def load_blacklist(reports_dir: Path) -> Optional[BlacklistFinding]:
    data = read_json(reports_dir / BLACKLIST_REPORT)
    if not isinstance(data, dict):
        return None
    try:
        return BlacklistFinding.from_dict(data)
    except ValueError as exc:
        logger.error("Error parsing %s: %s", BLACKLIST_REPORT, exc)
        return None


def load_safebrowsing(reports_dir: Path) -> Optional[SafeBrowsingFinding]:
    data = read_json(reports_dir / SAFEBROWSING_REPORT)
    if not isinstance(data, dict):
        return None
    return SafeBrowsingFinding.from_dict(data)
