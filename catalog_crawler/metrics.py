"""Prometheus metrics for crawl runs."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("catalog_crawler", "Catalog crawler application info")
app_info.info({"version": "0.1.0", "name": "catalog-crawler"})

# Page metrics
pages_processed_total = Counter(
    "pages_processed_total",
    "Total number of pages processed",
    ["site", "outcome"],
)

pages_enqueued_total = Counter(
    "pages_enqueued_total",
    "Total number of page requests added to the queue",
    ["site", "label"],
)

page_extraction_seconds = Histogram(
    "page_extraction_seconds",
    "Time spent extracting records from one page",
    ["site"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

# Item metrics
items_extracted_total = Counter(
    "items_extracted_total",
    "Total number of product items extracted",
    ["site", "kind"],
)

items_invalid_total = Counter(
    "items_invalid_total",
    "Total number of extracted items failing a field validity check",
    ["site", "field"],
)


def record_page_outcome(site: str, outcome: str):
    """Record how a page visit ended."""
    pages_processed_total.labels(site=site, outcome=outcome).inc()


def record_enqueued(site: str, label: str, count: int):
    """Record newly enqueued page requests."""
    if count > 0:
        pages_enqueued_total.labels(site=site, label=label).inc(count)


def record_items(site: str, records: int, errors: int, duration: float):
    """Record the outcome of one page extraction."""
    items_extracted_total.labels(site=site, kind="record").inc(records)
    items_extracted_total.labels(site=site, kind="error").inc(errors)
    page_extraction_seconds.labels(site=site).observe(duration)


def record_invalid_fields(site: str, fields: list[str]):
    """Record failing validity flags for one item."""
    for field in fields:
        items_invalid_total.labels(site=site, field=field).inc()
