# File: tests/test_aggregator.py
"""Тесты для агрегатора и генерации отчётов (JSON + HTML)."""
from __future__ import annotations

import json

import pytest

from asset_sentry.aggregator import (
    STATUS_CLEAN,
    STATUS_ISSUES,
    aggregate,
    parse_clamav_report,
    parse_retire_report,
)
from asset_sentry.crawler.models import ScanMetadata
from asset_sentry.liveness import DeadDomainFinding
from asset_sentry.oracles.base import Classification, OracleVerdict, classify_codes
from asset_sentry.oracles.dnsbl import BlacklistFinding
from asset_sentry.oracles.safebrowsing import SafeBrowsingFinding
from asset_sentry.report import json_report
from asset_sentry.report.html_report import render_html, render_html_string


@pytest.fixture()
def listed_blacklist():
    return BlacklistFinding(
        domain="shop.test",
        verdicts=[
            classify_codes("A", "shop.test", ["127.255.255.254"], ["127.255.255.254"]),
            classify_codes("B", "shop.test", ["127.0.1.2"], []),
        ],
    )


def test_clean_report():
    report = aggregate(
        [],
        BlacklistFinding(domain="shop.test", verdicts=[OracleVerdict("A", "shop.test", Classification.CLEAN)]),
        SafeBrowsingFinding("https://shop.test", "clean"),
        ScanMetadata(3, 2),
        target_url="https://shop.test",
    )
    assert report.total_issues == 0
    assert report.status == STATUS_CLEAN
    assert report.subject == "WebsiteSecurity Report: Clean"


def test_skipped_and_blocked_do_not_count():
    blocked = BlacklistFinding(
        domain="shop.test",
        verdicts=[classify_codes("A", "shop.test", ["127.255.255.254"], ["127.255.255.254"])],
    )
    report = aggregate([], blocked, SafeBrowsingFinding("https://shop.test", "skipped"), None)
    assert report.blacklist_issues == 0
    assert report.safebrowsing_issues == 0
    assert report.status == STATUS_CLEAN


def test_issue_counting(listed_blacklist):
    dead = [
        DeadDomainFinding("a.dead.test", "ENOTFOUND", ["Found on Page: https://shop.test/"]),
        DeadDomainFinding("b.dead.test", "ENOTFOUND"),
    ]
    unsafe = SafeBrowsingFinding("https://shop.test", "unsafe", matches=[{"threatType": "MALWARE"}])
    retire = parse_retire_report([{"file": "x.js", "results": [{"component": "jquery", "version": "1.2"}]}])

    report = aggregate(dead, listed_blacklist, unsafe, ScanMetadata(5, 4), [retire])

    assert report.total_issues == 2 + 1 + 1 + 1
    assert report.status == STATUS_ISSUES
    data = json.loads(report.json("2024-01-01T00:00:00.000Z"))
    assert data["totalIssues"] == 5
    assert data["scanMetadata"] == {"scannedUrlCount": 5, "downloadedScriptCount": 4}
    assert data["blacklist"]["status"] == "listed"
    assert data["external"][0]["lines"] == ["x.js: jquery 1.2"]


def test_missing_sections_are_clean():
    report = aggregate([], None, None, None)
    assert report.total_issues == 0
    assert report.to_dict("t")["blacklist"] is None


def test_parse_retire_variants():
    assert parse_retire_report({"data": [{"file": "a.js", "results": []}]}).issues == 0
    assert parse_retire_report("garbage").issues == 0
    summary = parse_retire_report(
        {"data": [{"file": "a.js", "results": [{"component": "x", "version": "1"}, {"component": "y"}]}]}
    )
    assert summary.issues == 2
    assert summary.lines[1] == "a.js: y ?"


def test_parse_clamav():
    text = (
        "/scan/js_assets/evil.js: JS.Trojan-1 FOUND\n"
        "/scan/js_assets/ok.js: OK\n\n"
        "----------- SCAN SUMMARY -----------\n"
        "Scanned files: 2\nInfected files: 1\n"
    )
    summary = parse_clamav_report(text)
    assert summary.issues == 1
    assert summary.lines == ["/scan/js_assets/evil.js: JS.Trojan-1 FOUND"]
    assert parse_clamav_report("Infected files: 0").issues == 0


def test_render_html_escapes_and_lists(tmp_path, listed_blacklist):
    dead = [DeadDomainFinding("gone.test", "ENOTFOUND", ["Found on Page: https://shop.test/?q=<x>"])]
    report = aggregate(
        dead,
        listed_blacklist,
        SafeBrowsingFinding("https://shop.test", "skipped", details="Missing GOOGLE_SAFE_BROWSING_KEY"),
        ScanMetadata(7, 3),
        target_url="https://shop.test",
    )
    path = render_html(report, tmp_path / "out" / "security-report.html")
    html = path.read_text(encoding="utf-8")

    assert "WebsiteSecurity Report: Issues Found" in html
    assert "gone.test" in html
    assert "&lt;x&gt;" in html and "<x>" not in html
    assert "Listed in B (127.0.1.2)" in html
    assert "skipped" in html
    assert "Pages Scanned:</strong> 7" in html


def test_render_html_without_data(tmp_path):
    html = render_html(aggregate([], None, None, None), tmp_path / "r.html").read_text(encoding="utf-8")
    assert "Unknown Website" in html
    assert "No dead domains found." in html
    assert "Blocklist check was not run." in html


# --------------------------------------------------------------------------- #
#                              JSON artefacts                                 #
# --------------------------------------------------------------------------- #


def test_read_json_tolerates_missing_and_corrupt(tmp_path):
    assert json_report.read_json(tmp_path / "nope.json") is None
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert json_report.read_json(bad) is None


def test_loaders_roundtrip(tmp_path, listed_blacklist):
    json_report.write_blacklist(listed_blacklist, tmp_path)
    json_report.write_safebrowsing(SafeBrowsingFinding("https://shop.test", "skipped"), tmp_path)
    json_report.write_json(ScanMetadata(2, 1).to_dict(), tmp_path / json_report.SCAN_METADATA)

    assert json_report.load_blacklist(tmp_path).listed_codes() == {"B": ["127.0.1.2"]}
    assert json_report.load_safebrowsing(tmp_path).status == "skipped"
    assert json_report.load_scan_metadata(tmp_path) == ScanMetadata(2, 1)


def test_loaders_ignore_wrong_shapes(tmp_path):
    json_report.write_json({"not": "a list"}, tmp_path / json_report.FOUND_URLS)
    json_report.write_json(["x", {"filename": "a.js"}], tmp_path / json_report.DOWNLOADED_SCRIPTS)
    json_report.write_json([], tmp_path / json_report.BLACKLIST_REPORT)

    assert json_report.load_found_urls(tmp_path) is None
    assert json_report.load_scripts_meta(tmp_path) == [{"filename": "a.js"}]
    assert json_report.load_blacklist(tmp_path) is None
    assert json_report.load_legacy_urls(tmp_path) is None


def test_utc_timestamp_format():
    stamp = json_report.utc_timestamp()
    assert stamp.endswith("Z")
    assert len(stamp) == len("2024-01-01T00:00:00.000Z")


def test_render_with_custom_template(tmp_path):
    (tmp_path / "report.html.j2").write_text("{{ status }}|{{ total_issues }}|{{ target_url }}", encoding="utf-8")
    report = aggregate([DeadDomainFinding("gone.test", "ENOTFOUND")], None, None, None, target_url="https://a&b.test")
    assert render_html_string(report, tmp_path) == "Issues Found|1|https://a&amp;b.test"
