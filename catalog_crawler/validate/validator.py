"""Attach validity flags to extracted product records."""

import logging

from catalog_crawler.extract.records import ProductRecord, ValidatedProductRecord
from catalog_crawler.normalize.price import parse_price_entries
from catalog_crawler.validate.rules import (
    is_valid_image_url,
    is_valid_text,
    is_valid_url,
    is_valid_video_url,
)

logger = logging.getLogger(__name__)


def validate_record(record: ProductRecord, convert_prices: bool = False) -> ValidatedProductRecord:
    """
    Normalize prices and compute per-field validity.

    Never raises for bad field values; they are flagged, not dropped.

    Args:
        record: Raw record from the assembler
        convert_prices: Convert USD/EUR prices to TRY

    Returns:
        ValidatedProductRecord
    """
    prices = parse_price_entries(record.prices, convert=convert_prices)

    videos_present = bool(record.videos)
    video_valid = videos_present and all(is_valid_video_url(v) for v in record.videos)

    price_valid = any((p.numeric_value or 0) > 0 for p in prices)
    if record.product_not_in_stock:
        # Unavailable products are exempt from price validity
        price_valid = True

    data = record.model_dump()
    data["prices"] = prices
    validated = ValidatedProductRecord(
        **data,
        img_valid=any(is_valid_image_url(i) for i in record.images),
        link_valid=is_valid_url(record.link),
        title_valid=is_valid_text(record.title),
        page_title_valid=is_valid_text(record.page_title),
        price_valid=price_valid,
        video_valid=video_valid,
        media_type="video" if videos_present else "image",
    )

    failed = validated.invalid_fields()
    if failed:
        logger.debug(f"Invalid fields {failed} for {record.link or record.title!r}")
    return validated


def validate_records(records: list[ProductRecord], convert_prices: bool = False) -> list[ValidatedProductRecord]:
    return [validate_record(r, convert_prices) for r in records]
