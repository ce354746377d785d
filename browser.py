"""
Page sessions: a navigable page that can be queried with CSS selectors.

`PlaywrightSession` drives headless Chromium. `HtmlSession` fetches the raw
document with httpx and queries it with BeautifulSoup, without running any
scripts. Every scrape opens its own session and closes it on exit.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable, List, Optional

import httpx
from bs4 import BeautifulSoup, Tag
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from errors import BrowserError, NetworkError, NotFoundError, ScrapeTimeoutError
from logging_utils import log_event
from models import ScrapeOptions
from settings import Settings

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES = {"image", "stylesheet", "font", "media"}

# Playwright has a single network-idle state.
PLAYWRIGHT_WAIT_UNTIL = {
    "load": "load",
    "domcontentloaded": "domcontentloaded",
    "networkidle0": "networkidle",
    "networkidle2": "networkidle",
}

VIEWPORT = {"width": 1280, "height": 800}


class PageElement(ABC):
    @abstractmethod
    async def text(self) -> str:
        """Trimmed text content."""

    @abstractmethod
    async def attribute(self, name: str) -> Optional[str]:
        ...

    @abstractmethod
    async def outer_html(self) -> str:
        ...

    @abstractmethod
    async def tag_name(self) -> str:
        """Lower-case tag name."""

    @abstractmethod
    async def query(self, selector: str) -> Optional["PageElement"]:
        ...

    @abstractmethod
    async def query_all(self, selector: str) -> List["PageElement"]:
        ...

    @abstractmethod
    async def parent(self) -> Optional["PageElement"]:
        ...


class PageSession(ABC):
    @property
    @abstractmethod
    def url(self) -> str:
        """URL of the loaded page after redirects."""

    @abstractmethod
    async def navigate(self, url: str, *, wait_until: str = "networkidle2", timeout_ms: int = 30000) -> None:
        """Load `url`. Raises a typed ScrapingError on failure."""

    @abstractmethod
    async def title(self) -> str:
        ...

    @abstractmethod
    async def query(self, selector: str) -> Optional[PageElement]:
        ...

    @abstractmethod
    async def query_all(self, selector: str) -> List[PageElement]:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    async def query_text(self, selector: str) -> Optional[str]:
        element = await self.query(selector)
        return await element.text() if element is not None else None

    async def query_attribute(self, selector: str, name: str) -> Optional[str]:
        element = await self.query(selector)
        return await element.attribute(name) if element is not None else None

    async def query_html(self, selector: str) -> Optional[str]:
        element = await self.query(selector)
        return await element.outer_html() if element is not None else None

    async def exists(self, selector: str) -> bool:
        return await self.query(selector) is not None


# --- Playwright ---

class PlaywrightElement(PageElement):
    def __init__(self, handle) -> None:
        self._handle = handle

    async def text(self) -> str:
        return (await self._handle.text_content() or "").strip()

    async def attribute(self, name: str) -> Optional[str]:
        return await self._handle.get_attribute(name)

    async def outer_html(self) -> str:
        return await self._handle.evaluate("el => el.outerHTML")

    async def tag_name(self) -> str:
        return await self._handle.evaluate("el => el.tagName.toLowerCase()")

    async def query(self, selector: str) -> Optional[PageElement]:
        handle = await self._handle.query_selector(selector)
        return PlaywrightElement(handle) if handle else None

    async def query_all(self, selector: str) -> List[PageElement]:
        return [PlaywrightElement(h) for h in await self._handle.query_selector_all(selector)]

    async def parent(self) -> Optional[PageElement]:
        handle = await self._handle.evaluate_handle("el => el.parentElement")
        element = handle.as_element()
        return PlaywrightElement(element) if element else None


async def _block_heavy_resources(route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class PlaywrightSession(PageSession):
    def __init__(self, playwright, browser, page) -> None:
        self._playwright = playwright
        self._browser = browser
        self._page = page

    @classmethod
    async def launch(cls, options: ScrapeOptions, settings: Settings) -> "PlaywrightSession":
        timeout = options.timeout or settings.default_timeout_ms
        playwright = await async_playwright().start()
        browser = None
        try:
            launch_kwargs = {"headless": settings.browser_headless, "timeout": timeout}
            if options.proxy:
                proxy = {"server": options.proxy.url}
                if options.proxy.username:
                    proxy["username"] = options.proxy.username
                    proxy["password"] = options.proxy.password or ""
                launch_kwargs["proxy"] = proxy
            browser = await playwright.chromium.launch(**launch_kwargs)
            context = await browser.new_context(
                user_agent=options.userAgent or settings.default_user_agent,
                viewport=VIEWPORT,
            )
            page = await context.new_page()
            page.set_default_timeout(timeout)
            if settings.block_resources:
                await page.route("**/*", _block_heavy_resources)
        except PlaywrightError as exc:
            if browser is not None:
                await browser.close()
            await playwright.stop()
            raise BrowserError(f"Failed to launch browser: {exc}") from exc
        return cls(playwright, browser, page)

    @property
    def url(self) -> str:
        return self._page.url

    async def navigate(self, url: str, *, wait_until: str = "networkidle2", timeout_ms: int = 30000) -> None:
        try:
            response = await self._page.goto(
                url,
                wait_until=PLAYWRIGHT_WAIT_UNTIL.get(wait_until, "networkidle"),
                timeout=timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise ScrapeTimeoutError(f"Navigation to {url} timed out", {"url": url}) from exc
        except PlaywrightError as exc:
            if "net::" in str(exc):
                raise NetworkError(f"Network error while loading {url}: {exc}", {"url": url}) from exc
            raise BrowserError(f"Navigation to {url} failed: {exc}", {"url": url}) from exc

        if response is not None and response.status == 404:
            raise NotFoundError(f"Page not found: {url}", {"url": url})

    async def title(self) -> str:
        return (await self._page.title()).strip()

    async def query(self, selector: str) -> Optional[PageElement]:
        handle = await self._page.query_selector(selector)
        return PlaywrightElement(handle) if handle else None

    async def query_all(self, selector: str) -> List[PageElement]:
        return [PlaywrightElement(h) for h in await self._page.query_selector_all(selector)]

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


# --- Static HTML ---

class SoupElement(PageElement):
    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    async def text(self) -> str:
        return self._tag.get_text().strip()

    async def attribute(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    async def outer_html(self) -> str:
        return str(self._tag)

    async def tag_name(self) -> str:
        return self._tag.name.lower()

    async def query(self, selector: str) -> Optional[PageElement]:
        found = self._tag.select_one(selector)
        return SoupElement(found) if found is not None else None

    async def query_all(self, selector: str) -> List[PageElement]:
        return [SoupElement(t) for t in self._tag.select(selector)]

    async def parent(self) -> Optional[PageElement]:
        parent = self._tag.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return None
        return SoupElement(parent)


class HtmlSession(PageSession):
    def __init__(
        self,
        *,
        user_agent: str = "Mozilla/5.0",
        proxy_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._user_agent = user_agent
        self._proxy_url = proxy_url
        self._transport = transport
        self._soup: Optional[BeautifulSoup] = None
        self._url = ""

    @classmethod
    def from_html(cls, html: str, url: str) -> "HtmlSession":
        session = cls()
        session.load(html, url)
        return session

    @classmethod
    def for_options(cls, options: ScrapeOptions, settings: Settings) -> "HtmlSession":
        proxy_url = None
        if options.proxy:
            proxy = httpx.URL(options.proxy.url)
            if options.proxy.username:
                proxy = proxy.copy_with(
                    username=options.proxy.username,
                    password=options.proxy.password or "",
                )
            proxy_url = str(proxy)
        return cls(user_agent=options.userAgent or settings.default_user_agent, proxy_url=proxy_url)

    def load(self, html: str, url: str) -> None:
        self._soup = BeautifulSoup(html, "html.parser")
        self._url = url

    @property
    def url(self) -> str:
        return self._url

    async def navigate(self, url: str, *, wait_until: str = "networkidle2", timeout_ms: int = 30000) -> None:
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=timeout_ms / 1000,
                headers={"User-Agent": self._user_agent},
                proxy=self._proxy_url,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ScrapeTimeoutError(f"Fetching {url} timed out", {"url": url}) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise NotFoundError(f"Page not found: {url}", {"url": url}) from exc
            raise NetworkError(f"Fetching {url} failed with status {status}", {"url": url, "statusCode": status}) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Network error while fetching {url}: {exc}", {"url": url}) from exc

        self.load(response.text, str(response.url))

    def _document(self) -> BeautifulSoup:
        if self._soup is None:
            raise BrowserError("No page has been loaded in this session")
        return self._soup

    async def title(self) -> str:
        title = self._document().title
        return title.get_text().strip() if title else ""

    async def query(self, selector: str) -> Optional[PageElement]:
        found = self._document().select_one(selector)
        return SoupElement(found) if found is not None else None

    async def query_all(self, selector: str) -> List[PageElement]:
        return [SoupElement(t) for t in self._document().select(selector)]

    async def close(self) -> None:
        self._soup = None


SessionFactory = Callable[[ScrapeOptions], AsyncContextManager[PageSession]]


def session_factory(settings: Settings) -> SessionFactory:
    """Build the per-scrape session opener for the configured backend."""

    @asynccontextmanager
    async def open_session(options: ScrapeOptions) -> AsyncIterator[PageSession]:
        if settings.browser_backend == "static":
            session: PageSession = HtmlSession.for_options(options, settings)
        elif settings.browser_backend == "playwright":
            session = await PlaywrightSession.launch(options, settings)
        else:
            raise BrowserError(f"Unknown browser_backend '{settings.browser_backend}'")

        log_event(logger, logging.DEBUG, "session_opened", backend=settings.browser_backend)
        try:
            yield session
        finally:
            await session.close()
            log_event(logger, logging.DEBUG, "session_closed", backend=settings.browser_backend)

    return open_session
