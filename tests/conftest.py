from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import pytest

from browser import HtmlSession
from errors import NotFoundError
from scraper import ScrapeService
from settings import Settings
from store import KeyValueStore, MemoryStore

NEWS_URL = "https://news.example.com/2024/03/rivers-rise"
PRODUCT_URL = "https://shop.example.com/p/trail-runner-2"
DOCS_URL = "https://docs.example.com/guide/install"

NEWS_HTML = """
<html>
<head>
  <title>Rivers Rise | Daily Valley</title>
  <meta name="description" content="Flood warnings across the valley.">
  <meta property="og:image" content="https://news.example.com/og.jpg">
</head>
<body>
  <header><nav><a href="/">Home</a></nav></header>
  <article>
    <h1>Rivers Rise Across the Valley</h1>
    <span class="author">Ana Ruiz</span>
    <span class="author">Ben Cole</span>
    <time datetime="2024-03-01T10:00:00Z">March 1, 2024</time>
    <span class="category">Weather</span>
    <p>Heavy rain over the weekend pushed three rivers past flood stage. Officials
    opened shelters in two towns while crews reinforced levees along the lower valley.</p>
    <img src="/img/river.jpg" alt="River" width="640" height="480">
    <img src="data:image/png;base64,AAAA" alt="">
    <span class="comment-count">12 comments</span>
  </article>
</body>
</html>
"""

PRODUCT_HTML = """
<html>
<head>
  <title>Trail Runner 2 - Peakline Shop</title>
  <meta property="product:price:currency" content="USD">
</head>
<body>
  <h1 class="product-title">Trail Runner 2</h1>
  <div itemscope itemtype="https://schema.org/Product">
    <span itemprop="brand">Peakline</span>
    <span class="sku">TR-002</span>
    <span itemprop="price">$89.99</span>
    <span class="price">$120.00</span>
    <span itemprop="ratingValue">4.5 out of 5</span>
    <span class="review-count">(128 reviews)</span>
  </div>
  <div class="in-stock">In stock</div>
  <div class="product-description"><p>Lightweight trail shoe with a rock plate.</p></div>
  <div class="product-gallery">
    <img data-src="/img/shoe-1.jpg">
    <img src="/img/shoe-2.jpg">
  </div>
  <div class="product-options">
    <label>Size</label>
    <select><option>42</option><option disabled>43</option></select>
  </div>
  <table class="specifications">
    <tr><th>Weight</th><td>280 g</td></tr>
    <tr><th>Drop</th><td>6 mm</td></tr>
  </table>
  <div class="reviews">
    <div class="review">
      <span class="author">Kim</span>
      <span class="rating">5</span>
      <p class="content">Great grip on wet rock.</p>
    </div>
    <div class="review"><span class="rating">4</span></div>
  </div>
  <div class="related-products">
    <div class="product">
      <a href="/p/road-runner">Road Runner</a>
      <span class="price">$79.00</span>
      <img src="/img/road.jpg">
    </div>
  </div>
</body>
</html>
"""

DOCS_HTML = """
<html>
<head><title>Install Guide</title></head>
<body>
  <nav class="toc">
    <ul>
      <li><a href="#install">Install</a>
        <ul><li><a href="#pip">With pip</a></li></ul>
      </li>
      <li class="level-3"><a href="#usage">Usage</a></li>
    </ul>
  </nav>
  <main>
    <h1 id="install">Install</h1>
    <p>This guide walks through installing the client library and checking that
    the command line tools are available on your path.</p>
    <h2 id="pip">With pip</h2>
    <pre><code class="language-bash">pip install client
</code></pre>
    <h2 id="usage">Usage</h2>
    <p>See the <a href="/docs/api">API reference</a> or the
    <a href="https://github.com/example/client">source</a>.</p>
    <table>
      <tr><th>Flag</th><th>Meaning</th></tr>
      <tr><td>-v</td><td>verbose</td></tr>
    </table>
  </main>
</body>
</html>
"""


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenStore(KeyValueStore):
    """Store whose every call fails, like an unreachable backend."""

    async def get(self, key):
        raise ConnectionError("store unavailable")

    async def set(self, key, value, ttl_seconds=None):
        raise ConnectionError("store unavailable")

    async def delete(self, key):
        raise ConnectionError("store unavailable")


class StaticSite:
    """
    Serves fixed pages to scrape sessions and records how they were used.
    """

    def __init__(self, pages: Dict[str, str], *, delay: float = 0.0) -> None:
        self.pages = pages
        self.delay = delay
        self.errors: List[Exception] = []
        self.navigations = 0
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def open_session(self, options):
        self.opened += 1
        try:
            yield SiteSession(self)
        finally:
            self.closed += 1


class SiteSession(HtmlSession):
    def __init__(self, site: StaticSite) -> None:
        super().__init__()
        self._site = site

    async def navigate(self, url, *, wait_until="networkidle2", timeout_ms=30000):
        self._site.navigations += 1
        if self._site.delay:
            await asyncio.sleep(self._site.delay)
        if self._site.errors:
            raise self._site.errors.pop(0)
        if url not in self._site.pages:
            raise NotFoundError(f"Page not found: {url}", {"url": url})
        self.load(self._site.pages[url], url)


@pytest.fixture
def settings() -> Settings:
    return Settings(retry_backoff_seconds=0, browser_backend="static", store_backend="memory")


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def site() -> StaticSite:
    return StaticSite({NEWS_URL: NEWS_HTML, PRODUCT_URL: PRODUCT_HTML, DOCS_URL: DOCS_HTML})


@pytest.fixture
def service(settings: Settings, store: MemoryStore, site: StaticSite) -> ScrapeService:
    return ScrapeService(settings=settings, store=store, open_session=site.open_session)


def make_service(
    settings: Settings,
    site: StaticSite,
    store: Optional[KeyValueStore] = None,
    **kwargs,
) -> ScrapeService:
    return ScrapeService(
        settings=settings,
        store=MemoryStore() if store is None else store,
        open_session=site.open_session,
        **kwargs,
    )
