"""Headless browser access for listing pages."""

import asyncio
import logging
import random
from typing import Optional, Protocol

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page as PlaywrightNativePage
from playwright.async_api import TimeoutError as PlaywrightTimeoutError, async_playwright

from catalog_crawler.config import settings

logger = logging.getLogger(__name__)


class PageTimeoutError(TimeoutError):
    """A wait for a selector ran out of time."""

    def __init__(self, selector: str, timeout_ms: int):
        self.selector = selector
        self.timeout_ms = timeout_ms
        super().__init__(f"Timed out after {timeout_ms}ms waiting for {selector[:80]}")


class NavigationError(RuntimeError):
    """Navigation failed after all retries."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}")


LAUNCH_ARGS = [
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--disable-extensions",
]

# Serializes the live DOM, inlining open shadow roots as <shadow-root> children
SNAPSHOT_SCRIPT = """() => {
  const voidTags = new Set(['area','base','br','col','embed','hr','img','input','link','meta','source','track','wbr']);
  const skipTags = new Set(['script','style','noscript']);
  const esc = (s) => s.replace(/&/g, '&amp;').replace(/</g, '&lt;').replace(/>/g, '&gt;');
  const quote = (s) => s.replace(/&/g, '&amp;').replace(/"/g, '&quot;');
  const walk = (node) => {
    if (node.nodeType === Node.TEXT_NODE) return esc(node.textContent);
    if (node.nodeType !== Node.ELEMENT_NODE) return '';
    const tag = node.tagName.toLowerCase();
    if (skipTags.has(tag)) return '';
    let out = '<' + tag;
    for (const a of node.attributes) out += ' ' + a.name + '="' + quote(a.value) + '"';
    out += '>';
    if (voidTags.has(tag)) return out;
    if (node.shadowRoot) {
      out += '<shadow-root>' + Array.from(node.shadowRoot.childNodes).map(walk).join('') + '</shadow-root>';
    }
    const children = tag === 'template' ? node.content.childNodes : node.childNodes;
    out += Array.from(children).map(walk).join('');
    return out + '</' + tag + '>';
  };
  return '<!DOCTYPE html>' + walk(document.documentElement);
}"""


class Page(Protocol):
    """Browser page capability used by the crawler."""

    @property
    def url(self) -> str:
        ...

    async def goto(self, url: str) -> None:
        ...

    async def title(self) -> str:
        ...

    async def evaluate(self, script: str, *args):
        ...

    async def count(self, selector: str) -> int:
        ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        ...

    async def screenshot(self) -> bytes:
        ...

    async def snapshot(self) -> str:
        ...

    async def scroll_by(self, pixels: int) -> None:
        ...

    async def scroll_height(self) -> int:
        ...

    async def click(self, selector: str) -> bool:
        ...

    async def close(self) -> None:
        ...


class PlaywrightPage:
    """Page capability backed by a Playwright page."""

    def __init__(self, page: PlaywrightNativePage, max_retries: int | None = None):
        self._page = page
        self.max_retries = max_retries or settings.max_navigation_retries

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(self, url: str) -> None:
        """
        Navigate with exponential backoff between attempts.

        Raises:
            NavigationError: If every attempt fails
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                await self._page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=settings.navigation_timeout_seconds * 1000,
                )
                return
            except (PlaywrightTimeoutError, PlaywrightError) as e:
                last_error = e
                if attempt < self.max_retries:
                    wait_time = (2 ** attempt) + random.uniform(0, 1)
                    logger.warning(
                        f"Navigation retry {attempt}/{self.max_retries} for {url} "
                        f"after {wait_time:.1f}s: {type(e).__name__}: {e}"
                    )
                    await asyncio.sleep(wait_time)

        raise NavigationError(url, str(last_error))

    async def title(self) -> str:
        return await self._page.title()

    async def evaluate(self, script: str, *args):
        if args:
            return await self._page.evaluate(script, list(args) if len(args) > 1 else args[0])
        return await self._page.evaluate(script)

    async def count(self, selector: str) -> int:
        try:
            return await self._page.locator(selector).count()
        except PlaywrightError as e:
            logger.debug(f"Count failed for {selector[:80]}: {e}")
            return 0

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout_ms, state="attached")
        except PlaywrightTimeoutError as e:
            raise PageTimeoutError(selector, timeout_ms) from e

    async def screenshot(self) -> bytes:
        return await self._page.screenshot(full_page=True)

    async def snapshot(self) -> str:
        return await self.evaluate(SNAPSHOT_SCRIPT)

    async def scroll_by(self, pixels: int) -> None:
        await self._page.mouse.wheel(0, pixels)

    async def scroll_height(self) -> int:
        return await self.evaluate("() => document.body ? document.body.scrollHeight : 0")

    async def click(self, selector: str) -> bool:
        """Click the first visible match; False when there is none."""
        locator = self._page.locator(selector).first
        try:
            if not await locator.is_visible():
                return False
            await locator.scroll_into_view_if_needed()
            await locator.click(timeout=5000)
            return True
        except PlaywrightError as e:
            logger.debug(f"Click failed for {selector[:80]}: {e}")
            return False

    async def close(self) -> None:
        await self._page.close()


class PlaywrightBrowser:
    """One Chromium instance and context shared by all crawler workers."""

    def __init__(self, headless: bool | None = None):
        self.headless = settings.headless if headless is None else headless
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._init_lock = asyncio.Lock()

    async def _ensure_browser(self) -> BrowserContext:
        async with self._init_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()

            if self._browser is None:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=LAUNCH_ARGS,
                )

            if self._context is None:
                self._context = await self._browser.new_context(
                    viewport={"width": settings.viewport_width, "height": settings.viewport_height},
                    locale="tr-TR",
                )

            return self._context

    async def new_page(self) -> PlaywrightPage:
        context = await self._ensure_browser()
        return PlaywrightPage(await context.new_page())

    async def close(self):
        """Close browser and cleanup."""
        if self._context:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.error(f"Error closing browser context: {e}")
            self._context = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "PlaywrightBrowser":
        await self._ensure_browser()
        return self

    async def __aexit__(self, *exc):
        await self.close()
