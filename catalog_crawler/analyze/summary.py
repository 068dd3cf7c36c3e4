"""Run statistics computed once over a crawl's accumulated records."""

import json
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import ClassVar, Optional, Sequence

from pydantic import Field

from catalog_crawler.extract.records import (
    ErrorRecord,
    RecordModel,
    StoredRecord,
    ValidatedProductRecord,
)

logger = logging.getLogger(__name__)

FINAL_SUMMARY_NAME = "final-summary.json"


class DuplicateGroup(RecordModel):
    """Records sharing one canonical link."""

    link: str
    count: int
    indices: list[int]


class RunSummary(RecordModel):
    """Aggregate counts for one crawl run."""

    total_collected: int = 0
    total_valid: int = 0
    total_error: int = 0
    total_invalid: int = 0

    start_time: Optional[str] = None
    end_time: Optional[str] = None
    minutes_span: float = 0.0

    total_pages: int = 0
    unique_page_urls: list[str] = Field(default_factory=list)
    unique_items: int = 0
    duplicate_links: int = 0
    duplicates: list[DuplicateGroup] = Field(default_factory=list)

    invalid_links: int = 0
    invalid_titles: int = 0
    invalid_page_titles: int = 0
    invalid_images: int = 0
    invalid_videos: int = 0
    invalid_prices: int = 0
    unset_prices: int = 0
    price_scrape_errors: int = 0
    not_available: int = 0

    samples: dict[str, str] = Field(default_factory=dict)

    # Column titles used in the crawl log sheet
    SHEET_COLUMNS: ClassVar[OrderedDict] = OrderedDict([
        ("total_collected", "Total Collected Items"),
        ("total_valid", "Total Valid Items"),
        ("total_error", "Total Error Items"),
        ("total_invalid", "Total Invalid Items"),
        ("start_time", "Oldest Timestamp"),
        ("end_time", "Newest Timestamp"),
        ("minutes_span", "Minutes Span"),
        ("total_pages", "Total Pages"),
        ("unique_items", "Unique Items"),
        ("duplicate_links", "Duplicate Links"),
        ("invalid_links", "Invalid Links"),
        ("invalid_titles", "Invalid Titles"),
        ("invalid_page_titles", "Invalid Page Titles"),
        ("invalid_images", "Invalid Images"),
        ("invalid_videos", "Invalid Videos"),
        ("invalid_prices", "Invalid Prices"),
        ("unset_prices", "Unset Prices"),
        ("price_scrape_errors", "Price Scrape Errors"),
        ("not_available", "Not Available Items"),
    ])

    def to_sheet_row(self, site: str) -> dict:
        """Human readable row for the crawl log sheet."""
        row = {"Site": site, "Date": datetime.now().strftime("%Y-%m-%d %H:%M")}
        for name, title in self.SHEET_COLUMNS.items():
            value = getattr(self, name)
            row[title] = value if value is not None else ""
        for kind, url in self.samples.items():
            row[f"{kind.capitalize()} Sample"] = url
        return row


def strip_query(url: str) -> str:
    return url.split("?", 1)[0]


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def time_span(records: Sequence[StoredRecord]) -> tuple[Optional[str], Optional[str], float]:
    """
    Oldest and newest valid timestamps and the minutes between them.

    Records with missing or unparsable timestamps are ignored (naive
    values are read as UTC); no valid timestamps gives ``(None, None, 0.0)``.
    """
    stamps = [t for t in (_parse_timestamp(r.timestamp) for r in records) if t is not None]
    if not stamps:
        return None, None, 0.0
    oldest, newest = min(stamps), max(stamps)
    minutes = round((newest - oldest).total_seconds() / 60, 2)
    return oldest.isoformat(), newest.isoformat(), minutes


def find_duplicates(records: Sequence[StoredRecord]) -> list[DuplicateGroup]:
    """
    Group product records by exact link.

    Returns:
        Groups with more than one record, largest first, ties by first
        appearance
    """
    groups: dict[str, list[int]] = {}
    for index, record in enumerate(records):
        if isinstance(record, ErrorRecord) or not record.link:
            continue
        groups.setdefault(record.link, []).append(index)

    duplicates = [
        DuplicateGroup(link=link, count=len(indices), indices=indices)
        for link, indices in groups.items()
        if len(indices) > 1
    ]
    duplicates.sort(key=lambda g: (-g.count, g.indices[0]))
    return duplicates


def analyze(records: Sequence[StoredRecord]) -> RunSummary:
    """Compute the run summary; empty input yields an all-zero summary."""
    products = [r for r in records if isinstance(r, ValidatedProductRecord)]
    errors = [r for r in records if isinstance(r, ErrorRecord)]
    valid = [r for r in products if r.is_valid]

    page_urls = []
    seen_pages = set()
    for record in records:
        url = record.page_url if isinstance(record, ValidatedProductRecord) else record.url
        if not url:
            continue
        stripped = strip_query(url)
        if stripped not in seen_pages:
            seen_pages.add(stripped)
            page_urls.append(stripped)

    start, end, minutes = time_span(records)
    duplicates = find_duplicates(records)
    image_records = [r for r in products if r.media_type == "image"]
    video_records = [r for r in products if r.media_type == "video"]

    summary = RunSummary(
        total_collected=len(records),
        total_valid=len(valid),
        total_error=len(errors),
        total_invalid=len(products) - len(valid),
        start_time=start,
        end_time=end,
        minutes_span=minutes,
        total_pages=len(page_urls),
        unique_page_urls=page_urls,
        unique_items=len({r.link for r in products if r.link}),
        duplicate_links=len(duplicates),
        duplicates=duplicates,
        invalid_links=sum(1 for r in products if not r.link_valid),
        invalid_titles=sum(1 for r in products if not r.title_valid),
        invalid_page_titles=sum(1 for r in products if not r.page_title_valid),
        invalid_images=sum(1 for r in image_records if not r.img_valid),
        invalid_videos=sum(1 for r in video_records if not r.video_valid),
        invalid_prices=sum(1 for r in products if not r.price_valid),
        unset_prices=sum(1 for r in products if r.prices and all(p.unset_price for p in r.prices)),
        price_scrape_errors=sum(1 for r in products if any(p.price_scrape_error for p in r.prices)),
        not_available=sum(1 for r in products if r.product_not_in_stock),
    )

    logger.info(
        f"Run summary: {summary.total_collected} collected, {summary.total_valid} valid, "
        f"{summary.total_error} errors, {summary.duplicate_links} duplicate links"
    )
    return summary


async def upload_samples(summary: RunSummary, records: Sequence[StoredRecord], sink, site: str, sample_size: int = 5) -> RunSummary:
    """Upload valid, error and duplicate samples; failed uploads are logged."""
    products = [r for r in records if isinstance(r, ValidatedProductRecord)]
    by_link = {r.link: r for r in products if r.link}
    samples = {
        "valid": [r for r in products if r.is_valid][:sample_size],
        "error": [r for r in records if isinstance(r, ErrorRecord)][:sample_size],
        "duplicate": [by_link[g.link] for g in summary.duplicates[:sample_size] if g.link in by_link],
    }

    for kind, items in samples.items():
        if not items:
            continue
        payload = json.dumps([r.to_json_dict() for r in items], ensure_ascii=False, indent=2)
        try:
            url = await sink.upload(f"{site}-{kind}.json", payload.encode("utf-8"), folder="samples")
        except Exception as e:
            logger.warning(f"Sample upload failed for {site}/{kind}: {e}")
            continue
        summary.samples[kind] = url
    return summary


def write_summary(summary: RunSummary, site: str, directory: str | Path) -> Path:
    """Persist one run summary as ``<directory>/<site>.json``."""
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    target = path / f"{site}.json"
    target.write_text(json.dumps(summary.to_json_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info(f"Wrote run summary to {target}")
    return target


def aggregate_summaries(directory: str | Path) -> dict:
    """
    Merge per-site summary files into ``final-summary.json``.

    Numeric counters are summed; each site's totals are kept under ``sites``.
    """
    path = Path(directory)
    totals: dict = {}
    sites: dict = {}

    for file in sorted(path.glob("*.json")):
        if file.name == FINAL_SUMMARY_NAME:
            continue
        try:
            summary = RunSummary.model_validate(json.loads(file.read_text(encoding="utf-8")))
        except ValueError as e:
            logger.warning(f"Skipping unreadable summary {file}: {e}")
            continue

        site = file.stem
        sites[site] = {
            "totalCollected": summary.total_collected,
            "totalValid": summary.total_valid,
            "totalError": summary.total_error,
        }
        for name in RunSummary.SHEET_COLUMNS:
            value = getattr(summary, name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                totals[name] = totals.get(name, 0) + value

    result = {
        "siteCount": len(sites),
        "totals": {RunSummary.SHEET_COLUMNS[k]: v for k, v in totals.items()},
        "sites": sites,
    }
    (path / FINAL_SUMMARY_NAME).write_text(json.dumps(result, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info(f"Aggregated {len(sites)} site summaries in {path}")
    return result
