"""Request handlers for the two crawl labels.

``default`` pages are the configured landing URLs: they contribute
category navigation links and are then processed like ``second`` pages.
``second`` pages run gate, scroll, pagination and extraction.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from urllib.parse import urlsplit

from catalog_crawler.crawl.browser import Page
from catalog_crawler.crawl.gate import capture_page, continue_if_product_page
from catalog_crawler.crawl.scroll import scroll_page_if_required
from catalog_crawler.extract.assembler import assemble_records
from catalog_crawler.extract.document import PageDocument
from catalog_crawler.extract.records import ErrorRecord, ProductRecord, StoredRecord
from catalog_crawler.extract.scoring import pick_best
from catalog_crawler.extract.selectors import SelectorCatalog
from catalog_crawler.metrics import record_enqueued, record_invalid_fields, record_items, record_page_outcome
from catalog_crawler.paginate.planner import extract_page_number, filter_urls, plan_next_pages
from catalog_crawler.site_config import SiteConfig
from catalog_crawler.sinks.artifacts import ArtifactSink
from catalog_crawler.sinks.dataset import DatasetStore
from catalog_crawler.validate.validator import validate_record

logger = logging.getLogger(__name__)

LABEL_DEFAULT = "default"
LABEL_SECOND = "second"


@dataclass
class CrawlRequest:
    url: str
    label: str = LABEL_DEFAULT


def normalize_url(url: str) -> str:
    """Queue identity of a URL: fragment dropped, scheme and host lowercased."""
    parts = urlsplit(url.strip())
    normalized = parts._replace(scheme=parts.scheme.lower(), netloc=parts.netloc.lower(), fragment="")
    return normalized.geturl()


class RequestQueue:
    """FIFO of crawl requests, each normalized URL accepted once."""

    def __init__(self):
        self._queue: asyncio.Queue[CrawlRequest] = asyncio.Queue()
        self._seen: set[str] = set()

    def enqueue(self, url: str, label: str = LABEL_DEFAULT) -> bool:
        key = normalize_url(url)
        if key in self._seen:
            return False
        self._seen.add(key)
        self._queue.put_nowait(CrawlRequest(url=url, label=label))
        return True

    def enqueue_many(self, urls: list[str], label: str) -> int:
        return sum(1 for url in urls if self.enqueue(url, label))

    async def get(self) -> CrawlRequest:
        return await self._queue.get()

    def task_done(self):
        self._queue.task_done()

    async def join(self):
        await self._queue.join()

    @property
    def seen_count(self) -> int:
        return len(self._seen)


@dataclass
class RouteContext:
    """Everything a handler needs for one site's crawl."""

    site_config: SiteConfig
    catalog: SelectorCatalog
    queue: RequestQueue
    dataset: DatasetStore
    artifacts: ArtifactSink
    scroll_options: dict = field(default_factory=dict)
    gate_timeout_ms: Optional[int] = None

    @property
    def site(self) -> str:
        return self.site_config.site

    @property
    def exclude_patterns(self) -> list[str]:
        return list(self.catalog.common_excluded_patterns) + list(self.site_config.exclude_url_patterns)


def discover_navigation_urls(document: PageDocument, site_config: SiteConfig, exclude_patterns: list[str]) -> list[str]:
    """
    Category links on a landing page.

    Keeps http(s), non-root anchors containing a navigation keyword,
    deduplicated case-insensitively, minus excluded patterns.
    """
    scope = document.scope()
    keywords = [k.lower() for k in site_config.navigation_keywords if k]
    seen = set()
    urls = []
    for node in scope.query_all(site_config.navigation_selector):
        url = scope.resolve_url(node.attributes.get("href"))
        if not url:
            continue
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or parts.path in ("", "/"):
            continue
        lowered = url.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        if any(keyword in lowered for keyword in keywords):
            urls.append(url)
    return filter_urls(urls, exclude_patterns)


async def handle_second(page: Page, ctx: RouteContext) -> list[StoredRecord]:
    """Gate, scroll, paginate and extract one listing page."""
    gate = await continue_if_product_page(page, ctx.site_config, ctx.catalog, ctx.artifacts, ctx.gate_timeout_ms)
    if not gate.success:
        record_page_outcome(ctx.site, "timeout" if gate.timed_out else "not_product_page")
        return []

    scroll_mode = await scroll_page_if_required(page, ctx.site_config, **ctx.scroll_options)
    document = gate.document
    best = gate.best
    if scroll_mode != "none":
        document = await capture_page(page)
        best = pick_best(document.scope(), ctx.catalog.product_item) or gate.best

    next_pages = plan_next_pages(
        document.url,
        ctx.site_config.pagination,
        document.scope(),
        postfixes=ctx.site_config.pagination_postfix or ctx.catalog.pagination_postfix,
        exclude_patterns=ctx.exclude_patterns,
        observed_items=gate.items_per_page,
    )
    record_enqueued(ctx.site, LABEL_SECOND, ctx.queue.enqueue_many(next_pages, LABEL_SECOND))

    started = time.monotonic()
    extracted = assemble_records(document, ctx.catalog, ctx.site_config.image_cdn, best)
    stored: list[StoredRecord] = []
    for record in extracted:
        if isinstance(record, ProductRecord):
            validated = validate_record(record)
            record_invalid_fields(ctx.site, validated.invalid_fields())
            stored.append(validated)
        else:
            stored.append(record)

    errors = sum(1 for r in stored if isinstance(r, ErrorRecord))
    page_number = extract_page_number(document.url, ctx.site_config.pagination_parameter_name) or 1
    logger.info(f"{document.url} (page {page_number}): {len(stored)} records, {errors} errors")
    record_items(ctx.site, len(stored) - errors, errors, time.monotonic() - started)
    await ctx.dataset.append(stored)
    record_page_outcome(ctx.site, "product_page")
    return stored


async def handle_default(page: Page, ctx: RouteContext) -> list[StoredRecord]:
    """Landing page: enqueue category links, then process as a listing page."""
    document = await capture_page(page)
    nav_urls = discover_navigation_urls(document, ctx.site_config, ctx.exclude_patterns)
    added = ctx.queue.enqueue_many(nav_urls, LABEL_SECOND)
    record_enqueued(ctx.site, LABEL_SECOND, added)
    logger.info(f"Discovered {len(nav_urls)} navigation URLs on {page.url} ({added} new)")
    return await handle_second(page, ctx)


ROUTES: dict[str, Callable[[Page, RouteContext], Awaitable[list[StoredRecord]]]] = {
    LABEL_DEFAULT: handle_default,
    LABEL_SECOND: handle_second,
}
