"""Crawl one site: drain the request queue, then summarize the run."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from catalog_crawler.analyze.summary import RunSummary, analyze, upload_samples, write_summary
from catalog_crawler.config import settings
from catalog_crawler.crawl.browser import NavigationError, Page, PlaywrightBrowser
from catalog_crawler.crawl.routes import LABEL_DEFAULT, ROUTES, RequestQueue, RouteContext
from catalog_crawler.extract.selectors import SelectorCatalog
from catalog_crawler.logging_config import get_logger
from catalog_crawler.metrics import record_enqueued, record_page_outcome
from catalog_crawler.site_config import SiteConfig, SiteConfigError
from catalog_crawler.sinks.artifacts import ArtifactSink, default_artifact_sink
from catalog_crawler.sinks.dataset import DatasetStore
from catalog_crawler.sinks.sheet import SheetLogger

logger = logging.getLogger(__name__)


class BrowserLike(Protocol):
    async def new_page(self) -> Page:
        ...

    async def close(self) -> None:
        ...


class SiteCrawler:
    """Runs the crawl for one site configuration."""

    def __init__(
        self,
        site_config: SiteConfig,
        catalog: SelectorCatalog,
        browser: Optional[BrowserLike] = None,
        dataset: Optional[DatasetStore] = None,
        artifacts: Optional[ArtifactSink] = None,
        sheet_logger: Optional[SheetLogger] = None,
        max_concurrency: int | None = None,
        summary_dir: str | Path | None = None,
        scroll_options: Optional[dict] = None,
        gate_timeout_ms: Optional[int] = None,
    ):
        self.site_config = site_config
        self.catalog = catalog
        self.browser = browser or PlaywrightBrowser()
        self.dataset = dataset or DatasetStore(site_config.site)
        self.artifacts = artifacts or default_artifact_sink()
        self.sheet_logger = sheet_logger or SheetLogger()
        self.max_concurrency = max(1, max_concurrency or settings.max_concurrency)
        self.summary_dir = Path(summary_dir or Path(settings.artifacts_dir) / "summaries")
        self.queue = RequestQueue()
        self.context = RouteContext(
            site_config=site_config,
            catalog=catalog,
            queue=self.queue,
            dataset=self.dataset,
            artifacts=self.artifacts,
            scroll_options=scroll_options or {},
            gate_timeout_ms=gate_timeout_ms,
        )
        self.log = get_logger(__name__, site=site_config.site)

    async def _process(self, url: str, label: str):
        page = None
        try:
            page = await self.browser.new_page()
            await page.goto(url)
            await ROUTES[label](page, self.context)
        except NavigationError as e:
            record_page_outcome(self.site_config.site, "navigation_error")
            self.log.error(f"Navigation failed: {e}")
        except Exception as e:
            # One page failing must not end the crawl
            record_page_outcome(self.site_config.site, "error")
            self.log.exception(f"Handler {label} failed for {url}: {e}")
        finally:
            if page is not None:
                await self._close_page(page)

    async def _close_page(self, page: Page):
        try:
            await page.close()
        except Exception as e:
            self.log.warning(f"Failed to close page: {e}")

    async def _worker(self, worker_id: int):
        while True:
            request = await self.queue.get()
            try:
                self.log.info(f"Worker {worker_id} processing {request.label} {request.url}")
                await self._process(request.url, request.label)
            except Exception as e:
                self.log.exception(f"Worker {worker_id} failed on {request.url}: {e}")
            finally:
                self.queue.task_done()

    async def crawl(self):
        """Process every queued page until the queue is drained."""
        if not self.site_config.urls:
            raise SiteConfigError(f"No URLs to crawl for site {self.site_config.site!r}")

        added = self.queue.enqueue_many(self.site_config.urls, LABEL_DEFAULT)
        record_enqueued(self.site_config.site, LABEL_DEFAULT, added)

        workers = [asyncio.create_task(self._worker(i)) for i in range(self.max_concurrency)]
        try:
            await self.queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def summarize(self) -> RunSummary:
        """Analyze the accumulated dataset and persist the run summary."""
        site = self.site_config.site
        records = self.dataset.read_all()
        summary = analyze(records)
        summary = await upload_samples(summary, records, self.artifacts, site, settings.sample_size)
        write_summary(summary, site, self.summary_dir)
        await self.sheet_logger.append_row(summary.to_sheet_row(site))
        return summary

    async def run(self, fresh: bool = True) -> RunSummary:
        """
        Crawl the site and return its run summary.

        Args:
            fresh: Start from an empty dataset

        Raises:
            SiteConfigError: If the configuration has no URLs
        """
        if fresh:
            self.dataset.clear()

        self.log.info(f"Starting crawl of {len(self.site_config.urls)} URLs")
        try:
            await self.crawl()
        finally:
            await self.browser.close()

        summary = await self.summarize()
        self.log.info(
            f"Crawl finished: {summary.total_collected} items from {self.queue.seen_count} pages requested"
        )
        return summary
