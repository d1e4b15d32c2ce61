# File: asset_sentry/report/html_report.py
"""asset_sentry.report.html_report: Сводный HTML-отчёт (security-report.html) на Jinja2."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from asset_sentry.aggregator import ScanReport

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "report.html.j2"


def report_context(report: ScanReport) -> Dict[str, Any]:
    """Переменные шаблона. Отсутствующие разделы передаются как None."""
    return {
        "report": report,
        "target_url": report.target_url or "Unknown Website",
        "status": report.status,
        "total_issues": report.total_issues,
        "metadata": report.metadata,
        "dead_domains": report.dead_domains,
        "dead_domains_error": report.dead_domains_error,
        "blacklist": report.blacklist,
        "safebrowsing": report.safebrowsing,
        "external": report.external,
    }


def render_html_string(report: ScanReport, template_dir: Optional[Union[Path, str]] = None) -> str:
    env = Environment(
        loader=FileSystemLoader(str(template_dir or DEFAULT_TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml", "j2"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    return env.get_template(TEMPLATE_NAME).render(**report_context(report))


def render_html(
    report: ScanReport,
    output_path: Union[Path, str],
    template_dir: Optional[Union[Path, str]] = None,
) -> Path:
    """Рендерит сводный отчёт и сохраняет его по указанному пути.

    Args:
        report: объект ScanReport.
        output_path: путь к итоговому HTML-файлу (каталоги создаются).
        template_dir: каталог со своим ``report.html.j2``; по умолчанию шаблон из пакета.

    Пример:
    ```python
    from asset_sentry.report.html_report import render_html
    render_html(report, "reports/security-report.html")
    ```
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_html_string(report, template_dir), encoding="utf-8")
    return output_path
