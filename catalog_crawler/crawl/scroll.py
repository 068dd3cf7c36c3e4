"""Scrolling and "show more" clicking to load lazy listing content."""

import asyncio
import logging

from catalog_crawler.config import settings
from catalog_crawler.crawl.browser import Page
from catalog_crawler.site_config import SiteConfig

logger = logging.getLogger(__name__)

SHOW_MORE_MAX_CLICKS = 5
SHOW_MORE_WAIT_MS = 2500


async def scroll_with_show_more(
    page: Page,
    selector: str,
    max_clicks: int = SHOW_MORE_MAX_CLICKS,
    wait_after_click_ms: int = SHOW_MORE_WAIT_MS,
) -> int:
    """Click the show-more button until it disappears; returns clicks made."""
    if not await page.count(selector):
        logger.debug(f"No show-more button {selector!r} on {page.url}")
        return 0
    clicks = 0
    for _ in range(max_clicks):
        if not await page.click(selector):
            break
        clicks += 1
        await asyncio.sleep(wait_after_click_ms / 1000)
        await page.scroll_by(settings.viewport_height)
    logger.info(f"Clicked show-more {clicks} times on {page.url}")
    return clicks


async def auto_scroll(
    page: Page,
    step: int = 800,
    delay: float = 0.5,
    stable_cycles: int = 3,
    max_steps: int = 200,
) -> int:
    """Scroll until the document height stops growing; returns steps taken."""
    last_height = await page.scroll_height()
    stable = 0
    steps = 0
    while stable < stable_cycles and steps < max_steps:
        await page.scroll_by(step)
        await asyncio.sleep(delay)
        steps += 1
        height = await page.scroll_height()
        if height == last_height:
            stable += 1
        else:
            stable = 0
            last_height = height
    logger.debug(f"Auto-scrolled {steps} steps on {page.url}")
    return steps


async def scroll_page_if_required(
    page: Page,
    site_config: SiteConfig,
    wait_after_click_ms: int = SHOW_MORE_WAIT_MS,
    scroll_delay: float = 0.5,
) -> str:
    """
    Load lazy content as the site requires.

    Returns:
        ``"show_more"``, ``"auto"`` or ``"none"``
    """
    if site_config.scrollable and site_config.show_more_button_selector:
        await scroll_with_show_more(
            page, site_config.show_more_button_selector, wait_after_click_ms=wait_after_click_ms
        )
        return "show_more"
    if site_config.scrollable:
        await auto_scroll(page, delay=scroll_delay)
        return "auto"
    return "none"
