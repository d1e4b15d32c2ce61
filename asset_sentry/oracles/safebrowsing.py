# File: asset_sentry/oracles/safebrowsing.py
"""asset_sentry.oracles.safebrowsing: Проверка полного URL через Google Safe Browsing v4."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from asset_sentry.config import SAFE_BROWSING_ENDPOINT

__all__ = ("SafeBrowsingChecker", "SafeBrowsingFinding", "THREAT_TYPES")

logger = logging.getLogger("AssetSentry")

THREAT_TYPES = ["MALWARE", "SOCIAL_ENGINEERING", "UNWANTED_SOFTWARE", "POTENTIALLY_HARMFUL_APPLICATION"]

SafeBrowsingStatus = Literal["clean", "unsafe", "error", "skipped"]


@dataclass(slots=True)
class SafeBrowsingFinding:
    """Вердикт по одному URL. ``skipped`` значит, что проверка не выполнялась; это не ``clean``."""

    url: str
    status: SafeBrowsingStatus
    matches: List[Dict[str, Any]] = field(default_factory=list)
    details: str = ""

    @property
    def unsafe(self) -> bool:
        return self.status == "unsafe"

    def threat_types(self) -> List[str]:
        return sorted({str(m.get("threatType", "UNKNOWN")) for m in self.matches})

    def to_dict(self, timestamp: str) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status,
            "matches": list(self.matches),
            "details": self.details,
            "timestamp": timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SafeBrowsingFinding:
        status = data.get("status", "error")
        if status not in ("clean", "unsafe", "error", "skipped"):
            status = "error"
        return cls(
            url=str(data.get("url", "")),
            status=status,
            matches=list(data.get("matches") or []),
            details=str(data.get("details", "")),
        )


class SafeBrowsingChecker:
    """Один POST threatMatches:find на URL. Без ключа возвращает ``skipped``."""

    def __init__(
        self,
        api_key: Optional[str],
        session: Optional[ClientSession] = None,
        *,
        endpoint: str = SAFE_BROWSING_ENDPOINT,
        client_id: str = "asset-sentry",
        client_version: str = "0.1.0",
        timeout: float = 15.0,
    ) -> None:
        self.api_key = api_key
        self.session = session
        self.endpoint = endpoint
        self.client_id = client_id
        self.client_version = client_version
        self.timeout = timeout

    def request_body(self, url: str) -> Dict[str, Any]:
        return {
            "client": {"clientId": self.client_id, "clientVersion": self.client_version},
            "threatInfo": {
                "threatTypes": THREAT_TYPES,
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url}],
            },
        }

    async def check(self, url: str) -> SafeBrowsingFinding:
        if not self.api_key:
            logger.error("[ERROR] GOOGLE_SAFE_BROWSING_KEY environment variable is missing.")
            return SafeBrowsingFinding(url, "skipped", details="Missing GOOGLE_SAFE_BROWSING_KEY")
        if self.session is None:
            raise RuntimeError("SafeBrowsingChecker needs an aiohttp session to query the API")

        check_url = url if url.startswith(("http://", "https://")) else f"https://{url}"
        logger.info("Checking %s against Google Safe Browsing...", check_url)
        try:
            async with self.session.post(
                self.endpoint,
                params={"key": self.api_key},
                json=self.request_body(check_url),
                timeout=ClientTimeout(total=self.timeout),
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    logger.error("[ERROR] API request failed with status code: %s", resp.status)
                    return SafeBrowsingFinding(url, "error", details=f"API returned {resp.status}")
        except (ClientError, asyncio.TimeoutError) as exc:
            logger.error("[ERROR] Request error: %s", exc)
            return SafeBrowsingFinding(url, "error", details=str(exc) or type(exc).__name__)

        try:
            payload = json.loads(text) if text.strip() else {}
            if not isinstance(payload, dict):
                raise ValueError("response is not a JSON object")
        except ValueError as exc:
            logger.error("[ERROR] Failed to parse API response: %s", exc)
            return SafeBrowsingFinding(url, "error", details=f"Parse error: {exc}")

        matches = payload.get("matches") or []
        if matches:
            finding = SafeBrowsingFinding(
                url, "unsafe", matches=list(matches), details="URL found in Safe Browsing list"
            )
            logger.error("[FAIL] %s is listed as UNSAFE! Threats: %s", url, ", ".join(finding.threat_types()))
            return finding
        logger.info("[PASS] %s is clean.", url)
        return SafeBrowsingFinding(url, "clean", details="No threats found")
