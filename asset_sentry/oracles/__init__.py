# File: asset_sentry/oracles/__init__.py
"""asset_sentry.oracles: Проверки репутации доменов, IP и URL."""

from .base import Classification, Oracle, OracleVerdict, classify_codes
from .dnsbl import BlacklistChecker, BlacklistFinding, DNSBLOracle, build_oracles
from .resolver import DNSLookupError, DNSNotFound, DNSResolver, reverse_ipv4
from .safebrowsing import SafeBrowsingChecker, SafeBrowsingFinding

__all__ = [
    "Classification",
    "Oracle",
    "OracleVerdict",
    "classify_codes",
    "BlacklistChecker",
    "BlacklistFinding",
    "DNSBLOracle",
    "build_oracles",
    "DNSLookupError",
    "DNSNotFound",
    "DNSResolver",
    "reverse_ipv4",
    "SafeBrowsingChecker",
    "SafeBrowsingFinding",
]
