"""Tests for site configuration parsing and caching."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from catalog_crawler.paginate.planner import Arithmetic, ButtonScan
from catalog_crawler.site_config import (
    SheetConfigSource,
    SiteConfig,
    SiteConfigCache,
    SiteConfigError,
    main_domain_part,
    parse_sheet_rows,
)

HEADER = ["brand", "paginationSelector", "paginationParameterName", "scrollable", "showMore",
          "totalProductCounterSelector", "debug", "urls", "paused", "pausedReason", "notes",
          "itemsPerPage", "excludeUrlPatterns", "imageCDN"]

ROWS = [
    HEADER,
    ["Vakko", ".pagination a", "?page=", "", "", "", "", "https://www.vakko.com.tr/kadin-canta, https://www.vakko.com.tr/kadin-cuzdan"],
    ["Vakko", "", "", "", "", "", "", "https://www.vakko.com.tr/kadin-ayakkabi", "TRUE", "site redesign"],
    ["Beymen", "", "?p=", "x", ".load-more", ".total", "", "https://www.beymen.com/kadin", "", "", "", "48", "*outlet*, *sale*"],
]


class FakeSource:
    def __init__(self, rows):
        self.rows = rows
        self.calls = 0

    async def fetch_rows(self):
        self.calls += 1
        return self.rows


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.vakko.com.tr/kadin", "vakko"),
        ("https://vakko.com/", "vakko"),
        ("shop.example.co.uk", "example"),
        ("https://m.beymen.com/p", "beymen"),
        ("localhost", "localhost"),
    ],
)
def test_main_domain_part(url, expected):
    assert main_domain_part(url) == expected


def test_rows_for_a_site_are_merged():
    config = parse_sheet_rows(ROWS, "vakko")

    assert config.brand == "Vakko"
    assert config.urls == [
        "https://www.vakko.com.tr/kadin-canta",
        "https://www.vakko.com.tr/kadin-cuzdan",
        "https://www.vakko.com.tr/kadin-ayakkabi",
    ]
    assert config.pagination_selector == ".pagination a"
    assert config.paused is True
    assert config.paused_reason == "site redesign"


def test_row_columns_parsed():
    config = parse_sheet_rows(ROWS, "beymen")

    assert config.scrollable is True
    assert config.show_more_button_selector == ".load-more"
    assert config.items_per_page == 48
    assert config.exclude_url_patterns == ["*outlet*", "*sale*"]
    assert config.paused is False
    assert isinstance(config.pagination, Arithmetic)
    assert config.pagination.counter_selectors == (".total",)


def test_unknown_site():
    assert parse_sheet_rows(ROWS, "boyner") is None


def test_pagination_strategy_choice():
    assert isinstance(SiteConfig(site="a", pagination_selector=".p a", pagination_parameter_name="?page=").pagination, ButtonScan)
    assert SiteConfig(site="a", pagination_selector=".p a").pagination is None
    assert SiteConfig(site="a").pagination is None


@pytest.mark.asyncio
async def test_cache_fetches_once_and_writes_file(tmp_path):
    source = FakeSource(ROWS)
    cache = SiteConfigCache(source=source, cache_path=tmp_path / "cache.json", local_only=False)

    first = await cache.get("vakko")
    second = await cache.get("beymen")

    assert first.site == "vakko"
    assert second.site == "beymen"
    assert source.calls == 1
    stored = json.loads((tmp_path / "cache.json").read_text(encoding="utf-8"))
    assert stored["rows"] == ROWS


@pytest.mark.asyncio
async def test_cache_staleness_and_force_refresh(tmp_path):
    source = FakeSource(ROWS)
    cache = SiteConfigCache(source=source, cache_path=tmp_path / "cache.json", max_age=timedelta(minutes=5), local_only=False)
    await cache.rows()

    assert cache.is_stale() is False
    assert cache.is_stale(now=datetime.now(timezone.utc) + timedelta(minutes=6)) is True

    await cache.rows(force_refresh=True)
    assert source.calls == 2

    cache.invalidate()
    assert cache.is_stale() is True


@pytest.mark.asyncio
async def test_fresh_file_cache_skips_the_sheet(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"fetchedAt": datetime.now(timezone.utc).isoformat(), "rows": ROWS}), encoding="utf-8")
    source = FakeSource([])
    cache = SiteConfigCache(source=source, cache_path=path, local_only=False)

    config = await cache.get("beymen")

    assert config.urls == ["https://www.beymen.com/kadin"]
    assert source.calls == 0


@pytest.mark.asyncio
async def test_local_only_without_file_fails(tmp_path):
    cache = SiteConfigCache(source=FakeSource(ROWS), cache_path=tmp_path / "missing.json", local_only=True)
    with pytest.raises(SiteConfigError):
        await cache.rows()


@pytest.mark.asyncio
async def test_missing_site_raises(tmp_path):
    cache = SiteConfigCache(source=FakeSource(ROWS), cache_path=tmp_path / "cache.json", local_only=False)
    with pytest.raises(SiteConfigError):
        await cache.get("boyner")


@pytest.mark.asyncio
async def test_sheet_source_reads_values():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/values/config")
        assert request.url.params["key"] == "k"
        return httpx.Response(200, json={"values": ROWS})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    source = SheetConfigSource(sheet_id="sheet", sheet_name="config", api_key="k", access_token="", client=client)

    assert await source.fetch_rows() == ROWS
    await client.aclose()


@pytest.mark.asyncio
async def test_sheet_source_errors_become_config_errors():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(403)))
    source = SheetConfigSource(sheet_id="sheet", sheet_name="config", api_key="", access_token="", client=client)

    with pytest.raises(SiteConfigError):
        await source.fetch_rows()
    await client.aclose()
