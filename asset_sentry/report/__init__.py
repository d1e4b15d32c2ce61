# File: asset_sentry/report/__init__.py
"""asset_sentry.report: Запись JSON-артефактов и HTML-отчёта, используемые CLI и тестами."""

from __future__ import annotations

from .html_report import render_html
from .json_report import read_json, utc_timestamp, write_json

__all__ = ["render_html", "read_json", "utc_timestamp", "write_json"]
