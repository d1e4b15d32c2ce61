# File: asset_sentry/oracles/dnsbl.py
"""asset_sentry.oracles.dnsbl: DNS-блоклисты (Spamhaus, SURBL, URIBL) и агрегатор их вердиктов."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Literal, Optional, Protocol, Sequence

from asset_sentry.config import OracleConfig
from asset_sentry.oracles.base import Classification, Oracle, OracleVerdict, classify_codes
from asset_sentry.oracles.resolver import DNSLookupError, DNSNotFound, reverse_ipv4

__all__ = ("ARecordResolver", "DNSBLOracle", "BlacklistFinding", "BlacklistChecker", "build_oracles")

logger = logging.getLogger("AssetSentry")


class ARecordResolver(Protocol):
    async def resolve_a(self, name: str) -> List[str]: ...


class DNSBLOracle(Oracle):
    """Запрос ``<target>.<zone>``; NXDOMAIN значит «не в списке», адрес в ответе является кодом статуса."""

    def __init__(
        self,
        name: str,
        zone: str,
        resolver: ARecordResolver,
        *,
        kind: Literal["domain", "ip"] = "domain",
        ignore_codes: Collection[str] = (),
    ) -> None:
        self.name = name
        self.zone = zone.strip(".")
        self.kind = kind
        self.ignore_codes = frozenset(ignore_codes)
        self.resolver = resolver

    def query_name(self, target: str) -> str:
        if self.kind == "ip":
            return f"{reverse_ipv4(target)}.{self.zone}"
        return f"{target.rstrip('.')}.{self.zone}"

    async def check(self, target: str) -> OracleVerdict:
        try:
            query = self.query_name(target)
        except ValueError as exc:
            return OracleVerdict(self.name, target, Classification.ERROR, error=str(exc))
        logger.info("Checking %s against %s (Query: %s)...", target, self.name, query)
        try:
            codes = await self.resolver.resolve_a(query)
        except DNSNotFound:
            return OracleVerdict(self.name, target, Classification.CLEAN)
        except DNSLookupError as exc:
            return OracleVerdict(
                self.name, target, Classification.ERROR, error=f"DNS lookup failed: {exc.code}"
            )
        return classify_codes(self.name, target, codes, self.ignore_codes)


@dataclass(slots=True)
class BlacklistFinding:
    """Все вердикты по одному домену и его первому IPv4-адресу."""

    domain: str
    ip: Optional[str] = None
    verdicts: List[OracleVerdict] = field(default_factory=list)
    ip_error: Optional[str] = None

    @property
    def listed(self) -> bool:
        return any(v.listed for v in self.verdicts)

    @property
    def status(self) -> str:
        classes = {v.classification for v in self.verdicts}
        for candidate in (Classification.LISTED, Classification.BLOCKED, Classification.ERROR):
            if candidate in classes:
                return candidate.value
        return Classification.CLEAN.value

    def listed_codes(self) -> Dict[str, List[str]]:
        """oracle → коды, из-за которых цель считается listed."""
        return {v.oracle: list(v.listed_codes) for v in self.verdicts if v.listed}

    def blocked_oracles(self) -> List[str]:
        return [v.oracle for v in self.verdicts if v.classification is Classification.BLOCKED]

    @property
    def details(self) -> str:
        status = self.status
        if status == "listed":
            parts = [f"{name} ({', '.join(codes)})" for name, codes in self.listed_codes().items()]
            return "Listed in " + "; ".join(parts)
        if status == "blocked":
            return "Query blocked by resolver: " + ", ".join(self.blocked_oracles())
        if status == "error":
            failed = [f"{v.oracle}: {v.error}" for v in self.verdicts if v.classification is Classification.ERROR]
            return "Lookup failed for " + "; ".join(failed)
        return "Domain is not listed."

    def to_dict(self, timestamp: str) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "ip": self.ip,
            "status": self.status,
            "details": self.details,
            "oracles": [v.to_dict() for v in self.verdicts],
            "timestamp": timestamp,
        }

    @classmethod
    def failed(cls, domain: str, exc: BaseException) -> BlacklistFinding:
        """Проверка не выполнилась: одна запись со статусом error вместо вердиктов оракулов."""
        error = str(exc) or type(exc).__name__
        verdict = OracleVerdict("blacklist", domain, Classification.ERROR, error=error)
        return cls(domain=domain, verdicts=[verdict])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BlacklistFinding:
        return cls(
            domain=str(data.get("domain", "")),
            ip=data.get("ip"),
            verdicts=[OracleVerdict.from_dict(v) for v in data.get("oracles") or []],
        )


class BlacklistChecker:
    """Параллельно опрашивает все оракулы для одного домена и собирает результат."""

    def __init__(self, oracles: Sequence[Oracle], resolver: ARecordResolver) -> None:
        self.oracles = list(oracles)
        self.resolver = resolver

    async def _first_ip(self, domain: str) -> tuple[Optional[str], Optional[str]]:
        try:
            ips = await self.resolver.resolve_a(domain)
        except DNSLookupError as exc:
            return None, exc.code
        except Exception as exc:
            logger.error("[ERROR] Resolving %s failed: %s", domain, exc)
            return None, str(exc) or type(exc).__name__
        if not ips:
            return None, "ENODATA"
        return ips[0], None

    async def check(self, domain: str) -> BlacklistFinding:
        finding = BlacklistFinding(domain=domain)
        jobs: List[tuple[Oracle, str]] = [(o, domain) for o in self.oracles if o.kind == "domain"]

        ip_oracles = [o for o in self.oracles if o.kind == "ip"]
        if ip_oracles:
            finding.ip, finding.ip_error = await self._first_ip(domain)
            if finding.ip is None:
                logger.warning(
                    "[WARN] Could not resolve %s (%s); skipping IP blocklists.", domain, finding.ip_error
                )
            else:
                jobs.extend((o, finding.ip) for o in ip_oracles)

        results = await asyncio.gather(*(o.check(t) for o, t in jobs), return_exceptions=True)
        for (oracle, target), result in zip(jobs, results):
            if isinstance(result, Exception):
                logger.error("[ERROR] %s check for %s crashed: %s", oracle.name, target, result)
                result = OracleVerdict(oracle.name, target, Classification.ERROR, error=str(result))
            elif isinstance(result, BaseException):
                raise result
            finding.verdicts.append(result)
            self._log_verdict(result)
        return finding

    @staticmethod
    def _log_verdict(verdict: OracleVerdict) -> None:
        if verdict.listed:
            logger.error(
                "[FAIL] %s IS LISTED in %s! Return codes: %s",
                verdict.target, verdict.oracle, ", ".join(verdict.listed_codes),
            )
        if verdict.ignored_codes:
            logger.warning(
                "[WARN] %s query for %s was BLOCKED. Return codes: %s",
                verdict.oracle, verdict.target, ", ".join(verdict.ignored_codes),
            )
        if verdict.classification is Classification.ERROR:
            logger.error("[ERROR] %s: %s", verdict.oracle, verdict.error)
        elif verdict.classification is Classification.CLEAN:
            logger.info("[PASS] %s is NOT listed in %s.", verdict.target, verdict.oracle)


def build_oracles(configs: Sequence[OracleConfig], resolver: ARecordResolver) -> List[DNSBLOracle]:
    return [
        DNSBLOracle(c.name, c.zone, resolver, kind=c.kind, ignore_codes=c.ignore_codes)
        for c in configs
    ]
