"""End-to-end crawl over static pages."""

import asyncio
import json

import pytest

from conftest import FakeBrowser, FakePage, listing_page, product_card

from catalog_crawler.crawl.crawler import SiteCrawler
from catalog_crawler.crawl.routes import LABEL_SECOND, RequestQueue, normalize_url
from catalog_crawler.extract.records import ValidatedProductRecord
from catalog_crawler.extract.selectors import SelectorCatalog
from catalog_crawler.site_config import SiteConfig, SiteConfigError
from catalog_crawler.sinks.artifacts import LocalArtifactWriter
from catalog_crawler.sinks.dataset import DatasetStore
from catalog_crawler.sinks.sheet import SheetLogger

BASE = "https://shop.example.com"
LANDING = f"{BASE}/kadin-canta"

NAV = """
<nav>
  <a href="/kadin-cuzdan">Cüzdan</a>
  <a href="/login">Giriş</a>
  <a href="/">Anasayfa</a>
</nav>
"""
PAGER = '<div class="pagination"><a>1</a><a>2</a><a>Sonraki</a></div>'


def _cards(indices) -> str:
    return "".join(product_card(i) for i in indices)


PAGES = {
    LANDING: listing_page(_cards([1, 2, 3]), extra=NAV + PAGER),
    f"{BASE}/kadin-cuzdan": listing_page(_cards([4, 5]), title="Kadın Cüzdan"),
    f"{LANDING}?page=1": listing_page(_cards([1, 2, 3]), extra=PAGER),
    f"{LANDING}?page=2": listing_page(_cards([6, 7, 8]), extra=PAGER),
}


def _crawler(tmp_path, pages=PAGES, urls=(LANDING,), browser=None) -> tuple[SiteCrawler, FakeBrowser]:
    site_config = SiteConfig(
        site="shop",
        urls=list(urls),
        wait_for_seconds=0,
        pagination_selector=".pagination a",
        pagination_parameter_name="?page=",
    )
    browser = browser or FakeBrowser(pages)
    crawler = SiteCrawler(
        site_config,
        SelectorCatalog(),
        browser=browser,
        dataset=DatasetStore("shop", str(tmp_path / "datasets")),
        artifacts=LocalArtifactWriter(str(tmp_path / "artifacts")),
        sheet_logger=SheetLogger(sheet_id="", access_token=""),
        summary_dir=tmp_path / "summaries",
        gate_timeout_ms=10,
    )
    return crawler, browser


class FlakyBrowser(FakeBrowser):
    """Browser whose first page cannot be opened."""

    def __init__(self, pages):
        super().__init__(pages)
        self.attempts = 0

    async def new_page(self) -> FakePage:
        self.attempts += 1
        if self.attempts == 1:
            raise RuntimeError("target closed")
        return await super().new_page()


class StickyPage(FakePage):
    async def close(self) -> None:
        raise RuntimeError("page already detached")


class StickyBrowser(FakeBrowser):
    async def new_page(self) -> FakePage:
        page = StickyPage(self.pages)
        self.opened.append(page)
        return page


@pytest.mark.asyncio
async def test_page_open_failure_does_not_stall_workers(tmp_path):
    pages = {
        LANDING: listing_page(_cards([1, 2])),
        f"{BASE}/kadin-cuzdan": listing_page(_cards([4, 5])),
    }
    browser = FlakyBrowser(pages)
    crawler, _ = _crawler(tmp_path, pages=pages, urls=(f"{BASE}/kadin-cuzdan", LANDING), browser=browser)

    summary = await asyncio.wait_for(crawler.run(), timeout=5)

    assert browser.attempts == 2
    assert summary.total_collected == 2
    assert browser.closed is True


@pytest.mark.asyncio
async def test_page_close_failure_is_tolerated(tmp_path):
    pages = {LANDING: listing_page(_cards([1, 2]))}
    browser = StickyBrowser(pages)
    crawler, _ = _crawler(tmp_path, pages=pages, browser=browser)

    summary = await asyncio.wait_for(crawler.run(), timeout=5)

    assert summary.total_collected == 2


@pytest.mark.asyncio
async def test_full_site_crawl(tmp_path):
    crawler, browser = _crawler(tmp_path)

    summary = await crawler.run()

    assert summary.total_collected == 11
    assert summary.total_error == 0
    assert summary.unique_items == 8
    assert summary.duplicate_links == 3
    assert summary.total_pages == 2
    assert summary.total_valid == 11

    # Landing, navigation link and two pagination pages; /login and / are never visited
    visited = sorted(page.url for page in browser.opened)
    assert visited == sorted(PAGES)
    assert all(page.closed for page in browser.opened)
    assert browser.closed is True

    records = crawler.dataset.read_all()
    assert all(isinstance(r, ValidatedProductRecord) for r in records)
    assert {r.page_url for r in records} == set(PAGES)

    stored = json.loads((tmp_path / "summaries" / "shop.json").read_text(encoding="utf-8"))
    assert stored["totalCollected"] == 11
    assert set(summary.samples) == {"valid", "duplicate"}


@pytest.mark.asyncio
async def test_failed_navigation_does_not_stop_the_crawl(tmp_path):
    pages = {LANDING: listing_page(_cards([1, 2]))}
    crawler, _ = _crawler(tmp_path, pages=pages, urls=(f"{BASE}/missing", LANDING))

    summary = await crawler.run()

    assert summary.total_collected == 2


@pytest.mark.asyncio
async def test_non_product_page_yields_nothing(tmp_path):
    pages = {LANDING: "<html><head><title>Kampanya</title></head><body><p>Yakında</p></body></html>"}
    crawler, _ = _crawler(tmp_path, pages=pages)

    summary = await crawler.run()

    assert summary.total_collected == 0
    assert list((tmp_path / "artifacts" / "screenshots").glob("*.png"))


@pytest.mark.asyncio
async def test_site_without_urls_is_a_config_error(tmp_path):
    crawler, _ = _crawler(tmp_path, urls=())
    with pytest.raises(SiteConfigError):
        await crawler.crawl()


@pytest.mark.asyncio
async def test_fresh_run_clears_previous_dataset(tmp_path):
    crawler, _ = _crawler(tmp_path, pages={LANDING: listing_page(_cards([1]))})
    await crawler.run()
    crawler, _ = _crawler(tmp_path, pages={LANDING: listing_page(_cards([1]))})
    summary = await crawler.run()
    assert summary.total_collected == 1


def test_request_queue_accepts_each_url_once():
    queue = RequestQueue()
    assert queue.enqueue(f"{LANDING}?page=1", LABEL_SECOND) is True
    assert queue.enqueue(f"{LANDING}?page=1#top", LABEL_SECOND) is False
    assert queue.enqueue("HTTPS://SHOP.EXAMPLE.COM/kadin-canta?page=1", LABEL_SECOND) is False
    assert queue.enqueue_many([f"{LANDING}?page=1", f"{LANDING}?page=2"], LABEL_SECOND) == 1
    assert queue.seen_count == 2


def test_normalize_url_keeps_path_case():
    assert normalize_url("HTTPS://Shop.Example.com/Kadin#x") == "https://shop.example.com/Kadin"
