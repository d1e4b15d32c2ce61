# File: asset_sentry/oracles/resolver.py
"""asset_sentry.oracles.resolver: Асинхронные DNS-запросы (dnspython) с типизированными ошибками."""

from __future__ import annotations

import ipaddress
from typing import List, Optional, Sequence

import dns.asyncresolver
import dns.exception
import dns.resolver

__all__ = ("DNSResolver", "DNSLookupError", "DNSNotFound", "reverse_ipv4")


class DNSLookupError(Exception):
    """Любая ошибка резолвинга, кроме NXDOMAIN. ``code``: короткий код в стиле errno."""

    def __init__(self, name: str, code: str, message: str = "") -> None:
        super().__init__(f"{name}: {code}" + (f" ({message})" if message else ""))
        self.name = name
        self.code = code


class DNSNotFound(DNSLookupError):
    """Имя не существует (NXDOMAIN)."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(name, "ENOTFOUND", message)


class DNSResolver:
    """Обёртка над :class:`dns.asyncresolver.Resolver` с таймаутом на весь запрос."""

    def __init__(self, timeout: float = 5.0, nameservers: Optional[Sequence[str]] = None) -> None:
        self.timeout = timeout
        self._resolver = dns.asyncresolver.Resolver(configure=nameservers is None)
        if nameservers is not None:
            self._resolver.nameservers = list(nameservers)
        self._resolver.timeout = timeout
        self._resolver.lifetime = timeout

    async def resolve_a(self, name: str) -> List[str]:
        """IPv4-адреса имени в порядке ответа сервера."""
        try:
            answer = await self._resolver.resolve(name, "A")
        except dns.resolver.NXDOMAIN as exc:
            raise DNSNotFound(name, str(exc)) from exc
        except dns.resolver.NoAnswer as exc:
            raise DNSLookupError(name, "ENODATA", str(exc)) from exc
        except dns.resolver.NoNameservers as exc:
            raise DNSLookupError(name, "ESERVFAIL", str(exc)) from exc
        except dns.exception.Timeout as exc:
            raise DNSLookupError(name, "ETIMEOUT", str(exc)) from exc
        except dns.resolver.YXDOMAIN as exc:
            raise DNSLookupError(name, "EBADNAME", str(exc)) from exc
        except dns.exception.DNSException as exc:
            raise DNSLookupError(name, "EFORMERR", str(exc)) from exc
        return [rdata.address for rdata in answer]


def reverse_ipv4(ip: str) -> str:
    """``"1.2.3.4"`` → ``"4.3.2.1"`` (формат запроса к IP-блоклистам)."""
    addr = ipaddress.ip_address(ip)
    if addr.version != 4:
        raise ValueError(f"Not an IPv4 address: {ip}")
    return ".".join(reversed(str(addr).split(".")))
