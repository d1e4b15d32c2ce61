# asset_sentry/crawler/fetcher.py
"""
Page fetchers: the capability the crawler uses to load a page and run DOM
queries inside it.

Two implementations share the :class:`PageFetcher` interface:

* :class:`PlaywrightPageFetcher` drives headless Chromium, so scripts run and
  in-page ``fetch`` calls share the page's cookies and redirects;
* :class:`StaticPageFetcher` downloads raw HTML with aiohttp and answers the
  same DOM queries from BeautifulSoup. No JavaScript is executed.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from urllib.parse import urljoin

from aiohttp import ClientError, ClientSession, ClientTimeout
from bs4 import BeautifulSoup
from bs4.element import Tag
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

__all__ = (
    "NavigationError",
    "PageFetcher",
    "PlaywrightPageFetcher",
    "StaticPageFetcher",
    "LINK_ATTRIBUTES_JS",
    "SCRIPT_SOURCES_JS",
    "PAGE_MARKUP_JS",
    "FETCH_TEXT_JS",
)

# Raw href/src/action attribute values plus the base URI to resolve them against.
LINK_ATTRIBUTES_JS = """() => {
    const values = [];
    for (const el of document.querySelectorAll('[href], [src], form[action]')) {
        for (const attr of ['href', 'src', 'action']) {
            const v = el.getAttribute(attr);
            if (v) values.push(v);
        }
    }
    return { base: document.baseURI, values: values };
}"""

SCRIPT_SOURCES_JS = """() => Array.from(document.querySelectorAll('script[src]'))
    .map(s => s.src)
    .filter(src => src && !src.startsWith('chrome-extension://'))"""

PAGE_MARKUP_JS = "() => document.documentElement ? document.documentElement.outerHTML : ''"

FETCH_TEXT_JS = """async (url) => {
    const res = await fetch(url);
    if (!res.ok) throw new Error('HTTP ' + res.status);
    return await res.text();
}"""


class NavigationError(Exception):
    """Page could not be loaded: timeout, network error or non-2xx status."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


@runtime_checkable
class PageFetcher(Protocol):
    async def navigate(
        self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: int = 30_000
    ) -> None: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def fetch_text(self, url: str) -> str: ...


class PlaywrightPageFetcher:
    """Headless Chromium with a single page, used sequentially."""

    def __init__(
        self,
        *,
        user_agent: str,
        headless: bool = True,
        launch_args: Optional[List[str]] = None,
        sitemap_timeout_ms: int = 30_000,
    ) -> None:
        self.user_agent = user_agent
        self.headless = headless
        self.launch_args = launch_args if launch_args is not None else ["--no-sandbox"]
        self.sitemap_timeout_ms = sitemap_timeout_ms
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def __aenter__(self) -> PlaywrightPageFetcher:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless, args=self.launch_args
        )
        self._context = await self._browser.new_context(user_agent=self.user_agent)
        self._page = await self._context.new_page()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._page = self._context = self._browser = self._playwright = None

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Browser not started")
        return self._page

    async def navigate(
        self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: int = 30_000
    ) -> None:
        page = self._require_page()
        try:
            response = await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, f"timeout after {timeout_ms} ms") from exc
        except PlaywrightError as exc:
            raise NavigationError(url, exc.message) from exc
        if response is not None and not response.ok:
            raise NavigationError(url, f"HTTP {response.status}")

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._require_page().evaluate(script, arg)

    async def fetch_text(self, url: str) -> str:
        # navigate first so the in-page fetch runs on the sitemap's own origin
        await self.navigate(url, wait_until="load", timeout_ms=self.sitemap_timeout_ms)
        return await self.evaluate(FETCH_TEXT_JS, url)


class StaticPageFetcher:
    """aiohttp + BeautifulSoup stand-in for a browser page."""

    def __init__(self, session: ClientSession) -> None:
        self.session = session
        self._url: Optional[str] = None
        self._html: str = ""
        self._soup: Optional[BeautifulSoup] = None

    async def navigate(
        self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: int = 30_000
    ) -> None:
        html, final_url = await self._get(url, timeout_ms / 1000)
        self._url = final_url
        self._html = html
        self._soup = BeautifulSoup(html, "html.parser")

    async def fetch_text(self, url: str) -> str:
        text, _ = await self._get(url, None)
        return text

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == FETCH_TEXT_JS:
            return await self.fetch_text(str(arg))
        if self._soup is None or self._url is None:
            raise RuntimeError("No page loaded")
        if script == LINK_ATTRIBUTES_JS:
            return self._link_attributes()
        if script == SCRIPT_SOURCES_JS:
            base = self._base_uri()
            sources = [urljoin(base, src) for src in self._attr_values("script", "src")]
            return [s for s in sources if not s.startswith("chrome-extension://")]
        if script == PAGE_MARKUP_JS:
            return self._html
        raise NotImplementedError("StaticPageFetcher only answers the crawler's built-in queries")

    async def _get(self, url: str, timeout: Optional[float]) -> tuple[str, str]:
        kwargs: Dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = ClientTimeout(total=timeout)
        try:
            async with self.session.get(url, **kwargs) as resp:
                if not 200 <= resp.status < 300:
                    raise NavigationError(url, f"HTTP {resp.status}")
                return await resp.text(errors="replace"), str(resp.url)
        except asyncio.TimeoutError as exc:
            raise NavigationError(url, f"timeout after {timeout} s") from exc
        except ClientError as exc:
            raise NavigationError(url, str(exc) or type(exc).__name__) from exc

    def _base_uri(self) -> str:
        assert self._soup is not None and self._url is not None
        base = self._soup.find("base", href=True)
        if isinstance(base, Tag) and isinstance(base.get("href"), str):
            return urljoin(self._url, base["href"])  # type: ignore[arg-type]
        return self._url

    def _attr_values(self, name: Optional[str], attr: str) -> List[str]:
        assert self._soup is not None
        values: List[str] = []
        for tag in self._soup.find_all(name, attrs={attr: True}):
            if not isinstance(tag, Tag):
                continue
            value = tag.get(attr)
            if isinstance(value, str) and value:
                values.append(value)
        return values

    def _link_attributes(self) -> Dict[str, Any]:
        values = self._attr_values(None, "href") + self._attr_values(None, "src")
        values += self._attr_values("form", "action")
        return {"base": self._base_uri(), "values": values}
