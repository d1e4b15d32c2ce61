# File: tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pytest
import pytest_asyncio
from aiohttp import web

from asset_sentry.config import ScannerConfig
from asset_sentry.crawler.fetcher import (
    FETCH_TEXT_JS,
    LINK_ATTRIBUTES_JS,
    PAGE_MARKUP_JS,
    SCRIPT_SOURCES_JS,
    NavigationError,
)
from asset_sentry.oracles.resolver import DNSLookupError, DNSNotFound


class FakeFetcher:
    """
    Page fetcher double. ``pages`` maps URL → dict with ``values`` (raw
    attribute values), ``markup`` and ``scripts``; ``texts`` maps URL → XML
    for sitemap fetches. Missing URLs fail like a 404.
    """

    def __init__(
        self,
        pages: Optional[Dict[str, Dict[str, Any]]] = None,
        texts: Optional[Dict[str, Union[str, Exception]]] = None,
    ) -> None:
        self.pages = pages or {}
        self.texts = texts or {}
        self.navigations: List[str] = []
        self.text_requests: List[str] = []
        self._current: Optional[str] = None

    async def navigate(self, url, *, wait_until="domcontentloaded", timeout_ms=30_000):
        self.navigations.append(url)
        page = self.pages.get(url)
        if page is None:
            raise NavigationError(url, "HTTP 404")
        if isinstance(page, Exception):
            raise page
        self._current = url

    async def evaluate(self, script, arg=None):
        if script == FETCH_TEXT_JS:
            return await self.fetch_text(arg)
        page = self.pages[self._current]
        if script == LINK_ATTRIBUTES_JS:
            return {"base": self._current, "values": list(page.get("values", []))}
        if script == PAGE_MARKUP_JS:
            return page.get("markup", "")
        if script == SCRIPT_SOURCES_JS:
            return list(page.get("scripts", []))
        raise NotImplementedError(script)

    async def fetch_text(self, url):
        self.text_requests.append(url)
        value = self.texts.get(url)
        if value is None:
            raise NavigationError(url, "HTTP 404")
        if isinstance(value, Exception):
            raise value
        return value


class FakeResolver:
    """``answers`` maps name → list of addresses or an exception to raise."""

    def __init__(self, answers: Optional[Dict[str, Union[List[str], Exception]]] = None) -> None:
        self.answers = answers or {}
        self.queries: List[str] = []

    async def resolve_a(self, name: str) -> List[str]:
        self.queries.append(name)
        answer = self.answers.get(name)
        if answer is None:
            raise DNSNotFound(name)
        if isinstance(answer, Exception):
            raise answer
        return list(answer)


@pytest.fixture()
def fake_fetcher_cls():
    return FakeFetcher


@pytest.fixture()
def fake_resolver_cls():
    return FakeResolver


@pytest.fixture()
def timeout_error():
    def _make(name: str) -> DNSLookupError:
        return DNSLookupError(name, "ETIMEOUT")

    return _make


@pytest.fixture()
def basic_config(tmp_path: Path) -> ScannerConfig:
    """ScannerConfig writing everything under tmp_path."""
    return ScannerConfig(
        output_dir=tmp_path,
        max_pages=10,
        navigation_timeout=2.0,
        download_timeout=2.0,
        skip_script_domains=["analytics.example"],
    )


@pytest_asyncio.fixture
async def start_server(unused_tcp_port_factory) -> AsyncIterator[Callable[[web.Application], Awaitable[str]]]:
    """Фабрика тестовых aiohttp-серверов: ``await start_server(app)`` → base URL."""
    runners: List[web.AppRunner] = []

    async def _start(app: web.Application) -> str:
        port = unused_tcp_port_factory()
        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, "localhost", port).start()
        runners.append(runner)
        return f"http://localhost:{port}"

    try:
        yield _start
    finally:
        for runner in runners:
            await runner.cleanup()
