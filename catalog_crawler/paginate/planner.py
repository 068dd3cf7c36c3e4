"""Next-page planning for paginated category listings.

Two declarative strategies replace executable pagination expressions:

- ``ButtonScan``: read the numeric pagination buttons and enqueue pages
  ``1..max``.
- ``Arithmetic``: read the total item count, divide by items per page.

Both are gated on the current URL not already being a paginated page.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union
from urllib.parse import parse_qs, urlsplit

from catalog_crawler.extract.scoring import pick_best
from catalog_crawler.extract.selectors import QueryScope, Selector, node_text

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ButtonScan:
    selector: str
    parameter: str


@dataclass(frozen=True)
class Arithmetic:
    parameter: str
    items_per_page: Optional[int] = None
    counter_selectors: tuple[str, ...] = field(default_factory=tuple)


PaginationStrategy = Union[ButtonScan, Arithmetic]


def is_paginated_url(url: str, postfixes: Sequence[str]) -> bool:
    """True when the URL already carries a pagination marker."""
    lowered = url.lower()
    return any(p and p.lower() in lowered for p in postfixes)


def build_page_url(base_url: str, parameter: str, page: int) -> str:
    if parameter.startswith("?") and "?" in base_url:
        parameter = "&" + parameter[1:]
    elif parameter.startswith("&") and "?" not in base_url:
        parameter = "?" + parameter[1:]
    return f"{base_url}{parameter}{page}".replace("??", "?")


def filter_urls(urls: Sequence[str], exclude_patterns: Sequence[str]) -> list[str]:
    """Drop URLs containing an exclude pattern (``*`` wildcards stripped)."""
    patterns = [p.replace("*", "").strip().lower() for p in exclude_patterns]
    patterns = [p for p in patterns if p]
    kept = []
    for url in urls:
        lowered = url.lower()
        if any(p in lowered for p in patterns):
            continue
        kept.append(url.replace("??", "?"))
    return kept


def read_max_page(scope: QueryScope, selector: str) -> Optional[int]:
    """Largest purely numeric pagination control text."""
    pages = []
    for node in scope.query_all(selector):
        text = node_text(node)
        if _DIGITS.match(text):
            pages.append(int(text))
    return max(pages) if pages else None


def read_total_item_count(scope: QueryScope, selectors: Sequence[Union[Selector, str]]) -> Optional[int]:
    """
    Total product count shown by the best matching counter element.

    Returns:
        First numeric whitespace-separated token (thousand separators
        removed), or None when no counter is present
    """
    best = pick_best(scope, list(selectors))
    if best is None:
        return None

    nodes = best.selector.select(scope)
    if not nodes:
        return None

    for token in node_text(nodes[0]).split():
        token = token.strip("()[]:,")
        digits = token.replace(".", "").replace(",", "")
        if digits and _DIGITS.match(digits):
            return int(digits)
    return None


def extract_page_number(url: str, parameter: str) -> Optional[int]:
    """
    Page number carried by a URL.

    Args:
        url: Page URL
        parameter: Pagination parameter (``?page=``, ``&p=``, ``/page/``)

    Returns:
        Page number from the query or the path, or None
    """
    name = parameter.strip("?&=/ ")
    if not name:
        return None

    parts = urlsplit(url)
    values = parse_qs(parts.query).get(name)
    if values and _DIGITS.match(values[0]):
        return int(values[0])

    match = re.search(rf"/{re.escape(name)}[/=-]?(\d+)(?:/|$)", parts.path)
    if match:
        return int(match.group(1))
    return None


def _button_scan_pages(scope: QueryScope, strategy: ButtonScan) -> int:
    return read_max_page(scope, strategy.selector) or 0


def _arithmetic_pages(scope: QueryScope, strategy: Arithmetic, observed_items: int) -> int:
    per_page = strategy.items_per_page or observed_items
    if not per_page:
        return 0
    total = read_total_item_count(scope, list(strategy.counter_selectors))
    if total is None or total <= per_page:
        return 0
    return math.ceil(total / per_page)


def plan_next_pages(
    current_url: str,
    strategy: Optional[PaginationStrategy],
    scope: QueryScope,
    postfixes: Sequence[str],
    exclude_patterns: Sequence[str] = (),
    observed_items: int = 0,
) -> list[str]:
    """
    Compute the page URLs to enqueue from the current listing page.

    Args:
        current_url: URL of the page being processed
        strategy: Site pagination strategy, None when the site has none
        scope: Document scope of the current page
        postfixes: Markers of an already paginated URL
        exclude_patterns: Common and site exclude patterns
        observed_items: Product items found on this page

    Returns:
        Ordered page URLs; empty when gated or nothing was found
    """
    if strategy is None:
        return []
    if is_paginated_url(current_url, postfixes):
        logger.debug(f"Skipping pagination for already paginated {current_url}")
        return []

    try:
        if isinstance(strategy, ButtonScan):
            total_pages = _button_scan_pages(scope, strategy)
        else:
            total_pages = _arithmetic_pages(scope, strategy, observed_items)
    except Exception as e:
        logger.warning(f"Pagination failed for {current_url}: {e}")
        return []

    urls = [build_page_url(current_url, strategy.parameter, i) for i in range(1, total_pages + 1)]
    urls = filter_urls(urls, exclude_patterns)
    logger.info(f"Planned {len(urls)} pages from {current_url}")
    return urls
