"""Decide whether a loaded page is a product listing."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from catalog_crawler.config import settings
from catalog_crawler.crawl.browser import Page, PageTimeoutError
from catalog_crawler.extract.document import PageDocument
from catalog_crawler.extract.scoring import ScoredSelector, pick_best
from catalog_crawler.extract.selectors import ComputedSelector, SelectorCatalog, ShadowSelector, parse_selectors
from catalog_crawler.paginate.planner import read_total_item_count
from catalog_crawler.site_config import SiteConfig, split_list
from catalog_crawler.sinks.artifacts import ArtifactSink, LocalArtifactWriter, timestamped_name

logger = logging.getLogger(__name__)


@dataclass
class GateResult:
    """Outcome of the product-page check."""

    success: bool
    best: Optional[ScoredSelector] = None
    document: Optional[PageDocument] = None
    items_per_page: int = 0
    total_items: Optional[int] = None
    page_selector: Optional[str] = None
    timed_out: bool = False
    screenshot_url: Optional[str] = None


def wait_selector(catalog: SelectorCatalog) -> str:
    """Product-item selectors joined for a single browser-side wait."""
    parts = []
    for selector in catalog.product_item:
        if isinstance(selector, ComputedSelector):
            continue
        # Browser-side CSS pierces open shadow roots
        parts.append(selector.css if isinstance(selector, ShadowSelector) else selector.raw)
    return ", ".join(parts)


async def capture_page(page: Page) -> PageDocument:
    """Snapshot the live DOM into a parsed document."""
    html = await page.snapshot()
    return PageDocument.from_html(html, page.url, title=await page.title())


async def upload_screenshot(page: Page, artifacts: ArtifactSink, site: str) -> Optional[str]:
    """Screenshot handed to the artifact sink; failures are logged only."""
    try:
        data = await page.screenshot()
        return await artifacts.upload(timestamped_name(site or "page", "png"), data, folder="screenshots")
    except Exception as e:
        logger.warning(f"Screenshot capture failed for {page.url}: {e}")
        return None


async def save_debug_bundle(page: Page, artifacts: ArtifactSink, site: str) -> None:
    """Keep the page snapshot on disk for offline selector debugging."""
    writer = artifacts if isinstance(artifacts, LocalArtifactWriter) else LocalArtifactWriter()
    try:
        await writer.write_page_bundle(site or "page", page.url, await page.snapshot())
    except Exception as e:
        logger.warning(f"Could not save debug bundle for {page.url}: {e}")


async def continue_if_product_page(
    page: Page,
    site_config: SiteConfig,
    catalog: SelectorCatalog,
    artifacts: ArtifactSink,
    timeout_ms: int | None = None,
) -> GateResult:
    """
    Check that the page lists products.

    Waits (bounded) for any product-item selector, then picks the best one
    on a snapshot. A timeout or no match is a negative result and triggers
    a screenshot upload; it never raises.

    Args:
        page: Loaded page
        site_config: Site configuration
        catalog: Selector sets
        artifacts: Where diagnostic screenshots go
        timeout_ms: Wait bound (defaults to config)

    Returns:
        GateResult
    """
    if site_config.wait_for_seconds > 0:
        await asyncio.sleep(site_config.wait_for_seconds)

    timeout_ms = timeout_ms if timeout_ms is not None else settings.selector_wait_timeout_ms
    try:
        await page.wait_for_selector(wait_selector(catalog), timeout_ms)
    except PageTimeoutError as e:
        logger.info(f"Not a product page (timeout) {page.url}: {e}")
        screenshot_url = await upload_screenshot(page, artifacts, site_config.site)
        if site_config.debug:
            await save_debug_bundle(page, artifacts, site_config.site)
        return GateResult(success=False, timed_out=True, screenshot_url=screenshot_url)

    document = await capture_page(page)
    scope = document.scope()
    best = pick_best(scope, catalog.product_item)
    if best is None:
        logger.info(f"Not a product page (no product items) {page.url}")
        screenshot_url = await upload_screenshot(page, artifacts, site_config.site)
        if site_config.debug:
            await save_debug_bundle(page, artifacts, site_config.site)
        return GateResult(success=False, document=document, screenshot_url=screenshot_url)

    counters = parse_selectors(split_list(site_config.total_product_counter_selector)) + list(catalog.item_counter)
    try:
        total_items = read_total_item_count(scope, counters)
    except Exception as e:
        logger.warning(f"Could not read total item count on {page.url}: {e}")
        total_items = None

    # Listing container, kept for diagnostics
    page_best = pick_best(scope, catalog.product_page)

    logger.info(
        f"Product page {page.url}: {best.match_count} items via {best.raw!r}, "
        f"total {total_items if total_items is not None else 'unknown'}"
    )
    return GateResult(
        success=True,
        best=best,
        document=document,
        items_per_page=best.match_count,
        total_items=total_items,
        page_selector=page_best.raw if page_best else None,
    )
