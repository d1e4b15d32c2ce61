# File: tests/test_oracles.py
from __future__ import annotations

import json

import pytest
from aiohttp import ClientSession, web

from asset_sentry.config import OracleConfig, ScannerConfig
from asset_sentry.oracles.base import Classification, OracleVerdict, classify_codes
from asset_sentry.oracles.dnsbl import BlacklistChecker, BlacklistFinding, DNSBLOracle, build_oracles
from asset_sentry.oracles.resolver import DNSLookupError, reverse_ipv4
from asset_sentry.oracles.safebrowsing import SafeBrowsingChecker, SafeBrowsingFinding

SPAMHAUS_IGNORE = ["127.255.255.252", "127.255.255.254", "127.255.255.255"]


# --------------------------------------------------------------------------- #
#                              Classification                                 #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "codes,expected,listed,ignored",
    [
        ([], Classification.CLEAN, [], []),
        (["127.0.1.2"], Classification.LISTED, ["127.0.1.2"], []),
        (["127.255.255.254"], Classification.BLOCKED, [], ["127.255.255.254"]),
        (["127.255.255.254", "127.0.1.2"], Classification.LISTED, ["127.0.1.2"], ["127.255.255.254"]),
    ],
)
def test_classify_codes(codes, expected, listed, ignored):
    verdict = classify_codes("Spamhaus DBL", "example.com", codes, SPAMHAUS_IGNORE)
    assert verdict.classification is expected
    assert verdict.listed_codes == listed
    assert verdict.ignored_codes == ignored
    assert verdict.codes == codes


def test_verdict_dict_roundtrip_keeps_status():
    verdict = classify_codes("SURBL", "example.com", ["127.0.0.1", "127.0.0.8"], ["127.0.0.1"])
    data = verdict.to_dict()
    assert data["status"] == "listed"
    assert data["listedCodes"] == ["127.0.0.8"]
    assert OracleVerdict.from_dict(data) == verdict


def test_reverse_ipv4():
    assert reverse_ipv4("1.2.3.4") == "4.3.2.1"
    with pytest.raises(ValueError):
        reverse_ipv4("::1")
    with pytest.raises(ValueError):
        reverse_ipv4("not-an-ip")


# --------------------------------------------------------------------------- #
#                               DNSBL oracles                                 #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_domain_oracle_queries(fake_resolver_cls, timeout_error):
    resolver = fake_resolver_cls(
        {
            "listed.test.dbl.example": ["127.0.1.2"],
            "slow.test.dbl.example": timeout_error("slow.test.dbl.example"),
        }
    )
    oracle = DNSBLOracle("DBL", "dbl.example.", resolver, ignore_codes=SPAMHAUS_IGNORE)

    assert oracle.query_name("listed.test") == "listed.test.dbl.example"
    assert (await oracle.check("listed.test")).listed
    assert (await oracle.check("clean.test")).classification is Classification.CLEAN

    failed = await oracle.check("slow.test")
    assert failed.classification is Classification.ERROR
    assert failed.error == "DNS lookup failed: ETIMEOUT"


@pytest.mark.asyncio()
async def test_ip_oracle_rejects_non_ipv4(fake_resolver_cls):
    oracle = DNSBLOracle("ZEN", "zen.example", fake_resolver_cls(), kind="ip")
    assert oracle.query_name("10.0.0.1") == "1.0.0.10.zen.example"
    verdict = await oracle.check("example.com")
    assert verdict.classification is Classification.ERROR


@pytest.mark.asyncio()
async def test_ignore_code_does_not_mask_real_listing(fake_resolver_cls):
    resolver = fake_resolver_cls(
        {
            "shop.test.a.example": ["127.255.255.254"],
            "shop.test.b.example": ["127.0.1.2"],
        }
    )
    oracles = [
        DNSBLOracle("A", "a.example", resolver, ignore_codes=SPAMHAUS_IGNORE),
        DNSBLOracle("B", "b.example", resolver, ignore_codes=SPAMHAUS_IGNORE),
    ]
    finding = await BlacklistChecker(oracles, resolver).check("shop.test")

    assert finding.status == "listed"
    assert finding.listed
    assert finding.listed_codes() == {"B": ["127.0.1.2"]}
    assert finding.blocked_oracles() == ["A"]
    assert finding.details == "Listed in B (127.0.1.2)"


@pytest.mark.asyncio()
async def test_only_ignore_codes_is_blocked_not_listed(fake_resolver_cls):
    resolver = fake_resolver_cls({"shop.test.a.example": ["127.255.255.254"]})
    oracles = [DNSBLOracle("A", "a.example", resolver, ignore_codes=SPAMHAUS_IGNORE)]
    finding = await BlacklistChecker(oracles, resolver).check("shop.test")

    assert finding.status == "blocked"
    assert not finding.listed
    assert finding.details.startswith("Query blocked by resolver")


@pytest.mark.asyncio()
async def test_status_precedence_error_over_clean(fake_resolver_cls, timeout_error):
    resolver = fake_resolver_cls({"shop.test.b.example": timeout_error("shop.test.b.example")})
    oracles = [
        DNSBLOracle("A", "a.example", resolver),
        DNSBLOracle("B", "b.example", resolver),
    ]
    finding = await BlacklistChecker(oracles, resolver).check("shop.test")

    assert finding.status == "error"
    assert not finding.listed
    assert "B: DNS lookup failed: ETIMEOUT" in finding.details


@pytest.mark.asyncio()
async def test_ip_oracles_use_first_address(fake_resolver_cls):
    resolver = fake_resolver_cls(
        {
            "shop.test": ["192.0.2.10", "192.0.2.11"],
            "10.2.0.192.zen.example": ["127.0.0.4"],
        }
    )
    config = [
        OracleConfig(name="DBL", zone="dbl.example"),
        OracleConfig(name="ZEN", zone="zen.example", kind="ip"),
    ]
    finding = await BlacklistChecker(build_oracles(config, resolver), resolver).check("shop.test")

    assert finding.ip == "192.0.2.10"
    assert "11.2.0.192.zen.example" not in resolver.queries
    assert finding.listed_codes() == {"ZEN": ["127.0.0.4"]}


@pytest.mark.asyncio()
async def test_unresolvable_domain_skips_ip_oracles(fake_resolver_cls):
    resolver = fake_resolver_cls({"gone.test": DNSLookupError("gone.test", "ESERVFAIL")})
    oracles = [
        DNSBLOracle("DBL", "dbl.example", resolver),
        DNSBLOracle("ZEN", "zen.example", resolver, kind="ip"),
    ]
    finding = await BlacklistChecker(oracles, resolver).check("gone.test")

    assert finding.ip is None
    assert finding.ip_error == "ESERVFAIL"
    assert [v.oracle for v in finding.verdicts] == ["DBL"]
    assert finding.status == "clean"


@pytest.mark.asyncio()
async def test_unexpected_resolver_error_only_skips_ip_oracles(fake_resolver_cls):
    resolver = fake_resolver_cls({"shop.test": OSError("resolver socket failure")})
    oracles = [
        DNSBLOracle("DBL", "dbl.example", resolver),
        DNSBLOracle("ZEN", "zen.example", resolver, kind="ip"),
    ]
    finding = await BlacklistChecker(oracles, resolver).check("shop.test")

    assert finding.ip is None
    assert finding.ip_error == "resolver socket failure"
    assert [v.oracle for v in finding.verdicts] == ["DBL"]
    assert finding.status == "clean"


def test_failed_blacklist_finding_is_error_not_listed():
    finding = BlacklistFinding.failed("shop.test", RuntimeError("no resolv.conf"))
    assert finding.status == "error"
    assert not finding.listed
    assert finding.details == "Lookup failed for blacklist: no resolv.conf"
    restored = BlacklistFinding.from_dict(json.loads(json.dumps(finding.to_dict("t"))))
    assert restored.status == "error"


@pytest.mark.asyncio()
async def test_crashing_oracle_becomes_error_verdict(fake_resolver_cls):
    class Exploding(DNSBLOracle):
        async def check(self, target):
            raise RuntimeError("boom")

    resolver = fake_resolver_cls({"shop.test.ok.example": ["127.0.0.2"]})
    oracles = [Exploding("X", "x.example", resolver), DNSBLOracle("OK", "ok.example", resolver)]
    finding = await BlacklistChecker(oracles, resolver).check("shop.test")

    assert [v.classification for v in finding.verdicts] == [Classification.ERROR, Classification.LISTED]
    assert finding.verdicts[0].error == "boom"
    assert finding.status == "listed"


def test_blacklist_finding_dict_roundtrip():
    finding = BlacklistFinding(
        domain="shop.test",
        ip="192.0.2.1",
        verdicts=[classify_codes("A", "shop.test", ["127.0.1.2"], SPAMHAUS_IGNORE)],
    )
    data = finding.to_dict("2024-01-01T00:00:00.000Z")
    assert data["status"] == "listed"
    assert data["timestamp"] == "2024-01-01T00:00:00.000Z"
    restored = BlacklistFinding.from_dict(json.loads(json.dumps(data)))
    assert restored.status == "listed"
    assert restored.listed_codes() == {"A": ["127.0.1.2"]}


def test_default_oracles_cover_domain_and_ip():
    cfg = ScannerConfig()
    assert {o.name for o in cfg.domain_oracles} >= {"Spamhaus DBL", "SURBL", "URIBL"}
    assert [o.name for o in cfg.ip_oracles] == ["Spamhaus ZEN"]


# --------------------------------------------------------------------------- #
#                              Safe Browsing                                  #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_safebrowsing_without_key_is_skipped():
    finding = await SafeBrowsingChecker(None).check("https://example.com")
    assert finding.status == "skipped"
    assert not finding.unsafe
    assert finding.details == "Missing GOOGLE_SAFE_BROWSING_KEY"


async def _safebrowsing_api(start_server, status=200, payload=None, raw=None):
    received = []
    app = web.Application()

    async def handle_find(request):
        received.append({"key": request.query.get("key"), "body": await request.json()})
        if raw is not None:
            return web.Response(status=status, text=raw)
        return web.json_response(payload if payload is not None else {}, status=status)

    app.router.add_post("/v4/threatMatches:find", handle_find)
    base = await start_server(app)
    return f"{base}/v4/threatMatches:find", received


@pytest.mark.asyncio()
async def test_safebrowsing_clean(start_server):
    endpoint, received = await _safebrowsing_api(start_server, payload={})
    async with ClientSession() as http:
        finding = await SafeBrowsingChecker("k3y", http, endpoint=endpoint).check("example.com")

    assert finding.status == "clean"
    assert finding.details == "No threats found"
    assert received[0]["key"] == "k3y"
    entries = received[0]["body"]["threatInfo"]["threatEntries"]
    assert entries == [{"url": "https://example.com"}]


@pytest.mark.asyncio()
async def test_safebrowsing_unsafe(start_server):
    matches = [{"threatType": "MALWARE", "threat": {"url": "https://bad.test/"}}]
    endpoint, _ = await _safebrowsing_api(start_server, payload={"matches": matches})
    async with ClientSession() as http:
        finding = await SafeBrowsingChecker("k3y", http, endpoint=endpoint).check("https://bad.test/")

    assert finding.unsafe
    assert finding.threat_types() == ["MALWARE"]
    assert SafeBrowsingFinding.from_dict(finding.to_dict("t")).matches == matches


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "status,raw,details",
    [
        (403, "{}", "API returned 403"),
        (200, "not json", "Parse error"),
    ],
)
async def test_safebrowsing_errors(start_server, status, raw, details):
    endpoint, _ = await _safebrowsing_api(start_server, status=status, raw=raw)
    async with ClientSession() as http:
        finding = await SafeBrowsingChecker("k3y", http, endpoint=endpoint).check("https://example.com")

    assert finding.status == "error"
    assert finding.details.startswith(details)
    assert not finding.unsafe


@pytest.mark.asyncio()
async def test_safebrowsing_network_error(unused_tcp_port):
    endpoint = f"http://localhost:{unused_tcp_port}/v4/threatMatches:find"
    async with ClientSession() as http:
        finding = await SafeBrowsingChecker("k3y", http, endpoint=endpoint, timeout=2.0).check("https://example.com")
    assert finding.status == "error"
