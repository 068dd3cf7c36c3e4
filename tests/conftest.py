"""Shared test doubles: a static-HTML page and browser."""

import pytest
from selectolax.parser import HTMLParser

from catalog_crawler.crawl.browser import NavigationError, PageTimeoutError


def _matches(html: str, selector: str) -> int:
    tree = HTMLParser(html)
    total = 0
    for part in selector.split(", "):
        try:
            total += len(tree.css(part))
        except Exception:
            continue
    return total


class FakePage:
    """Page capability over static HTML keyed by URL."""

    def __init__(self, pages: dict[str, str], url: str = "", clickable: int = 0, heights: list[int] | None = None):
        self.pages = pages
        self._url = url
        self.html = pages.get(url, "")
        self.clickable = clickable
        self.heights = list(heights or [1000])
        self.clicks = 0
        self.scrolls = 0
        self.screenshots = 0
        self.closed = False

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url: str) -> None:
        if url not in self.pages:
            raise NavigationError(url, "404")
        self._url = url
        self.html = self.pages[url]

    async def title(self) -> str:
        node = HTMLParser(self.html).css_first("title")
        return node.text(strip=True) if node else ""

    async def evaluate(self, script: str, *args):
        return None

    async def count(self, selector: str) -> int:
        return _matches(self.html, selector)

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        if not _matches(self.html, selector):
            raise PageTimeoutError(selector, timeout_ms)

    async def screenshot(self) -> bytes:
        self.screenshots += 1
        return b"\x89PNG fake"

    async def snapshot(self) -> str:
        return self.html

    async def scroll_by(self, pixels: int) -> None:
        self.scrolls += 1

    async def scroll_height(self) -> int:
        index = min(self.scrolls, len(self.heights) - 1)
        return self.heights[index]

    async def click(self, selector: str) -> bool:
        if self.clicks >= self.clickable:
            return False
        self.clicks += 1
        return True

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self.opened: list[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage(self.pages)
        self.opened.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class RecordingSink:
    """Artifact sink that keeps uploads in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: list[tuple[str, bytes, str]] = []

    async def upload(self, name: str, data: bytes, folder: str = "") -> str:
        if self.fail:
            raise RuntimeError("upload refused")
        self.uploads.append((name, data, folder))
        return f"https://artifacts.example.com/{folder}/{name}"


def product_card(index: int, price: str = "1.449,90 TL", extra: str = "") -> str:
    return f"""
    <div class="product-card">
      <a class="product-link" href="/p/bag-{index}"><img src="https://cdn.example.com/images/bag-{index}.jpg"></a>
      <h3 class="product-name"><a href="/p/bag-{index}">Bag {index}</a></h3>
      <span class="price">{price}</span>
      {extra}
    </div>
    """


def listing_page(cards: str, title: str = "Kadın Çanta", extra: str = "") -> str:
    return f"""
    <html><head><title>{title}</title></head>
    <body>
      {extra}
      <div class="product-list">{cards}</div>
    </body></html>
    """


@pytest.fixture
def recording_sink():
    return RecordingSink()
