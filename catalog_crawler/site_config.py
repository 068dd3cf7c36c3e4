"""Per-site crawl configuration read from the configuration spreadsheet."""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, Field

from catalog_crawler.config import settings
from catalog_crawler.extract.selectors import DEFAULT_PAGINATION_POSTFIX
from catalog_crawler.paginate.planner import Arithmetic, ButtonScan, PaginationStrategy

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"

# Second-level public suffixes where the brand sits one label further left
TWO_LEVEL_TLDS = {"com.tr", "gov.tr", "net.tr", "org.tr", "co.uk", "com.br"}

_TRUE_VALUES = {"true", "1", "yes", "y", "x", "evet"}


class SiteConfigError(RuntimeError):
    """Raised when a site has no usable configuration."""
    pass


class SiteConfig(BaseModel):
    """Crawl settings for one site, immutable for a run."""

    brand: str = ""
    site: str
    urls: list[str] = Field(default_factory=list)

    pagination_selector: str = ""
    pagination_parameter_name: str = ""
    items_per_page: Optional[int] = None
    total_product_counter_selector: str = ""
    pagination_postfix: list[str] = Field(default_factory=lambda: list(DEFAULT_PAGINATION_POSTFIX))

    scrollable: bool = False
    show_more_button_selector: str = ""

    exclude_url_patterns: list[str] = Field(default_factory=list)
    image_cdn: str = ""
    navigation_selector: str = "a[href]"
    navigation_keywords: list[str] = Field(default_factory=lambda: list(settings.navigation_keywords))

    debug: bool = False
    paused: bool = False
    paused_reason: str = ""
    notes: str = ""
    wait_for_seconds: float = Field(default_factory=lambda: settings.wait_for_seconds)

    model_config = {"frozen": True}

    @property
    def pagination(self) -> Optional[PaginationStrategy]:
        """Declarative pagination strategy, None when the site has none."""
        parameter = self.pagination_parameter_name.strip()
        if not parameter:
            return None
        if self.pagination_selector.strip():
            return ButtonScan(selector=self.pagination_selector.strip(), parameter=parameter)
        counters = split_list(self.total_product_counter_selector)
        if counters:
            return Arithmetic(
                parameter=parameter,
                items_per_page=self.items_per_page,
                counter_selectors=tuple(counters),
            )
        return None


def split_list(value: str) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def parse_bool(value) -> bool:
    return str(value or "").strip().lower() in _TRUE_VALUES


def parse_int(value) -> Optional[int]:
    text = str(value or "").strip()
    return int(text) if text.isdigit() else None


def main_domain_part(url: str) -> str:
    """
    Brand label of a URL's host.

    ``https://www.vakko.com.tr/x`` and ``https://vakko.com/`` both give
    ``vakko``.
    """
    if "://" not in url:
        url = f"https://{url}"
    host = (urlsplit(url.strip()).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    labels = [label for label in host.split(".") if label]
    if len(labels) < 2:
        return labels[0] if labels else ""
    if ".".join(labels[-2:]) in TWO_LEVEL_TLDS and len(labels) >= 3:
        return labels[-3]
    return labels[-2]


def _cell(row: list, index: int) -> str:
    return str(row[index]).strip() if index < len(row) and row[index] is not None else ""


def parse_sheet_rows(rows: list[list], site: str) -> Optional[SiteConfig]:
    """
    Build the configuration for one site from sheet rows.

    The first row is a header. Columns: A brand, B pagination selector,
    C pagination parameter, D scrollable, E show-more selector, F total
    counter selector, G debug, H URLs (comma separated), I paused,
    J paused reason, K notes, L items per page, M exclude patterns,
    N image CDN.

    Rows whose URLs belong to ``site`` are merged: URLs are concatenated,
    the first row's settings win, and the site is paused if any row is.

    Returns:
        SiteConfig, or None when no row matches
    """
    site = site.lower()
    matching = []
    for row in rows[1:]:
        urls = split_list(_cell(row, 7))
        if urls and any(main_domain_part(u) == site for u in urls):
            matching.append((row, [u for u in urls if main_domain_part(u) == site]))

    if not matching:
        return None

    first, _ = matching[0]
    urls: list[str] = []
    for _, row_urls in matching:
        for url in row_urls:
            if url not in urls:
                urls.append(url)

    paused_rows = [row for row, _ in matching if parse_bool(_cell(row, 8))]

    return SiteConfig(
        brand=_cell(first, 0),
        site=site,
        urls=urls,
        pagination_selector=_cell(first, 1),
        pagination_parameter_name=_cell(first, 2),
        scrollable=parse_bool(_cell(first, 3)),
        show_more_button_selector=_cell(first, 4),
        total_product_counter_selector=_cell(first, 5),
        debug=parse_bool(_cell(first, 6)),
        paused=bool(paused_rows),
        paused_reason=_cell(paused_rows[0], 9) if paused_rows else "",
        notes=_cell(first, 10),
        items_per_page=parse_int(_cell(first, 11)),
        exclude_url_patterns=split_list(_cell(first, 12)),
        image_cdn=_cell(first, 13),
    )


class SheetConfigSource:
    """Reads configuration rows from the Google Sheets values API."""

    def __init__(
        self,
        sheet_id: str | None = None,
        sheet_name: str | None = None,
        api_key: str | None = None,
        access_token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.sheet_id = sheet_id or settings.google_sheet_id
        self.sheet_name = sheet_name or settings.google_sheet_name
        self.api_key = api_key if api_key is not None else settings.google_api_key
        self.access_token = access_token if access_token is not None else settings.google_access_token
        self._client = client

    async def fetch_rows(self) -> list[list]:
        """
        Fetch all rows of the configuration tab.

        Raises:
            SiteConfigError: If the sheet is not configured or the request fails
        """
        if not self.sheet_id:
            raise SiteConfigError("GOOGLE_SHEET_ID is not set")

        url = f"{SHEETS_API}/{self.sheet_id}/values/{self.sheet_name}"
        params = {"key": self.api_key} if self.api_key else {}
        headers = {"Authorization": f"Bearer {self.access_token}"} if self.access_token else {}

        client = self._client or httpx.AsyncClient(timeout=30.0)
        try:
            resp = await client.get(url, params=params, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise SiteConfigError(f"Failed to read sheet {self.sheet_name}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        rows = resp.json().get("values", [])
        logger.info(f"Fetched {len(rows)} configuration rows from sheet {self.sheet_name}")
        return rows


class SiteConfigCache:
    """
    Configuration rows cached in memory and in a JSON file.

    Holds ``value`` (the rows) and ``fetched_at``; stale after ``max_age``.
    """

    def __init__(
        self,
        source: SheetConfigSource | None = None,
        cache_path: str | Path | None = None,
        max_age: timedelta | None = None,
        local_only: bool | None = None,
    ):
        self.source = source or SheetConfigSource()
        self.cache_path = Path(cache_path or settings.site_config_cache_path)
        self.max_age = max_age or timedelta(minutes=settings.site_config_max_age_minutes)
        self.local_only = settings.use_local_site_config if local_only is None else local_only
        self.value: Optional[list[list]] = None
        self.fetched_at: Optional[datetime] = None

    def is_stale(self, now: datetime | None = None) -> bool:
        if self.value is None or self.fetched_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - self.fetched_at > self.max_age

    def invalidate(self):
        self.value = None
        self.fetched_at = None

    def _read_file(self) -> bool:
        if not self.cache_path.exists():
            return False
        try:
            data = json.loads(self.cache_path.read_text(encoding="utf-8"))
            self.value = data["rows"]
            self.fetched_at = datetime.fromisoformat(data["fetchedAt"])
        except (ValueError, KeyError) as e:
            logger.warning(f"Ignoring unreadable config cache {self.cache_path}: {e}")
            self.invalidate()
            return False
        return True

    def _write_file(self):
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"fetchedAt": self.fetched_at.isoformat(), "rows": self.value}
        self.cache_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    async def rows(self, force_refresh: bool = False) -> list[list]:
        """Configuration rows: memory, then file cache, then the sheet."""
        if force_refresh:
            self.invalidate()
        elif not self.is_stale():
            return self.value

        if not force_refresh and self._read_file():
            if self.local_only or not self.is_stale():
                logger.info(f"Using cached site configuration from {self.cache_path}")
                return self.value

        if self.local_only and not force_refresh:
            raise SiteConfigError(f"Local site configuration {self.cache_path} is missing")

        self.value = await self.source.fetch_rows()
        self.fetched_at = datetime.now(timezone.utc)
        self._write_file()
        return self.value

    async def get(self, site: str, force_refresh: bool = False) -> SiteConfig:
        """
        Configuration for one site.

        Raises:
            SiteConfigError: If no row matches the site or it has no URLs
        """
        config = parse_sheet_rows(await self.rows(force_refresh=force_refresh), site)
        if config is None or not config.urls:
            raise SiteConfigError(f"No configuration found for site {site!r}")
        return config
