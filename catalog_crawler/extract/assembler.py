"""Assemble product records from every product-item element on a page."""

import logging
from typing import Optional

from selectolax.parser import Node

from catalog_crawler.extract.document import PageDocument
from catalog_crawler.extract.fields import (
    extract_availability,
    extract_images,
    extract_link,
    extract_prices,
    extract_title,
    extract_videos,
)
from catalog_crawler.extract.records import ErrorRecord, ExtractedRecord, ProductRecord
from catalog_crawler.extract.scoring import ScoredSelector, pick_best
from catalog_crawler.extract.selectors import SelectorCatalog

logger = logging.getLogger(__name__)

# Outer HTML kept on error records
MAX_ERROR_CONTENT = 5000


def canonical_link(title_href: Optional[str], link_href: Optional[str], container: Node, document: PageDocument) -> Optional[str]:
    """Title link first, then the link selector match, then an anchor container."""
    if title_href:
        return title_href
    if link_href:
        return link_href
    if container.tag == "a":
        return document.element_scope(container).resolve_url(container.attributes.get("href"))
    return None


def build_record(container: Node, document: PageDocument, catalog: SelectorCatalog, image_cdn: Optional[str] = None) -> ProductRecord:
    """
    Run every field extractor over one product-item element.

    Raises:
        Exception: Whatever a field extractor raises; callers isolate it per item
    """
    scope = document.element_scope(container)
    matched: dict[str, str] = {}

    title = extract_title(container, scope, catalog.title, catalog.title_attributes)
    if title:
        matched["title"] = title.selector

    link = extract_link(scope, catalog.link)
    if link:
        matched["link"] = link.selector

    images = extract_images(scope, catalog.image, catalog.image_attributes, image_cdn)
    if images.selectors:
        matched["image"] = images.selectors[0]

    videos = extract_videos(scope, catalog.video, catalog.video_attributes)
    if videos.selectors:
        matched["video"] = videos.selectors[0]

    prices = extract_prices(scope, catalog.price, catalog.price_attributes)
    if prices:
        matched["price"] = prices[0].selector

    not_available = extract_availability(scope, catalog.not_available)
    if not_available:
        matched["notAvailable"] = not_available

    return ProductRecord(
        title=title.text if title else None,
        images=images.urls,
        primary_image=images.urls[0] if images.urls else None,
        link=canonical_link(title.href if title else None, link.url if link else None, container, document),
        prices=prices,
        videos=videos.urls,
        product_not_in_stock=not_available is not None,
        matched_selectors=matched,
        page_title=document.title,
        page_url=document.url,
    )


def assemble_records(
    document: PageDocument,
    catalog: SelectorCatalog,
    image_cdn: Optional[str] = None,
    best: Optional[ScoredSelector] = None,
) -> list[ExtractedRecord]:
    """
    Extract one record per product-item element.

    Args:
        document: Parsed page
        catalog: Selector sets
        image_cdn: Base for relative image URLs
        best: Product-item selector already chosen for this page, if any

    Returns:
        One ProductRecord or ErrorRecord per candidate element, in DOM
        order; empty when the page has no product items
    """
    if best is None:
        best = pick_best(document.scope(), catalog.product_item)
    if best is None:
        logger.info(f"No product items on {document.url}")
        return []

    containers = best.selector.select(document.scope())
    records: list[ExtractedRecord] = []
    errors = 0

    for container in containers:
        try:
            record = build_record(container, document, catalog, image_cdn)
            record.matched_page_selector = best.raw
            records.append(record)
        except Exception as e:
            errors += 1
            logger.warning(f"Item extraction failed on {document.url}: {e}")
            records.append(
                ErrorRecord(
                    message=str(e) or type(e).__name__,
                    content=(container.html or "")[:MAX_ERROR_CONTENT],
                    url=document.url,
                    page_title=document.title,
                )
            )

    logger.info(
        f"Extracted {len(containers)} candidates from {document.url} "
        f"({errors} errors) using {best.raw!r}"
    )
    return records
