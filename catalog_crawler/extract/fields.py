"""Field extractors run against a single product-item element."""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from selectolax.parser import Node

from catalog_crawler.extract.document import node_key
from catalog_crawler.extract.records import PriceEntry
from catalog_crawler.extract.selectors import ComputedSelector, LightDomScope, Selector, node_text
from catalog_crawler.normalize.images import prepare_image_url

logger = logging.getLogger(__name__)

TEXT_ATTRIBUTES = {"innerText", "textContent", "text"}
URL_ATTRIBUTES = {"href", "src", "data-src", "data-original", "data-lazy", "poster", "data-video-src"}

_BACKGROUND_IMAGE = re.compile(r"background-image\s*:\s*url\(\s*(['\"]?)(.*?)\1\s*\)", re.IGNORECASE)


@dataclass
class TitleMatch:
    text: str
    selector: str
    href: Optional[str] = None


@dataclass
class LinkMatch:
    url: str
    selector: str


@dataclass
class MediaMatch:
    urls: list[str]
    selectors: list[str]


def _select(scope: LightDomScope, selector: Selector) -> list[Node]:
    try:
        return selector.select(scope)
    except Exception as e:
        # Malformed CSS in configuration behaves as no match
        logger.debug(f"Selector {selector.raw!r} failed to evaluate: {e}")
        return []


def read_attribute(node: Node, attribute: str, scope: LightDomScope, resolve: bool = True) -> Optional[str]:
    """Read one attribute; text pseudo-attributes return collapsed visible text."""
    if attribute in TEXT_ATTRIBUTES:
        value = node_text(node)
    else:
        value = node.attributes.get(attribute)
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if resolve and attribute in URL_ATTRIBUTES and not value.startswith("data:"):
        return scope.resolve_url(value)
    return value


def first_attribute(
    node: Node, attributes: Sequence[str], scope: LightDomScope, resolve: bool = True
) -> tuple[Optional[str], Optional[str]]:
    """First non-empty value among attributes, with the attribute name."""
    for attribute in attributes:
        value = read_attribute(node, attribute, scope, resolve)
        if value and not value.startswith("data:"):
            return value, attribute
    return None, None


def background_image(node: Node) -> Optional[str]:
    style = node.attributes.get("style") or ""
    match = _BACKGROUND_IMAGE.search(style)
    if match and match.group(2).strip():
        return match.group(2).strip()
    return None


def _unique_nodes(scope: LightDomScope, selectors: Sequence[Selector]) -> list[tuple[Node, Selector]]:
    """Matches across all selectors, each element kept once."""
    seen = set()
    matches = []
    for selector in selectors:
        if isinstance(selector, ComputedSelector):
            continue
        for node in _select(scope, selector):
            key = node_key(node)
            if key in seen:
                continue
            seen.add(key)
            matches.append((node, selector))
    return matches


def extract_title(container: Node, scope: LightDomScope, selectors: Sequence[Selector], attributes: Sequence[str]) -> Optional[TitleMatch]:
    """
    First selector yielding a non-empty title wins.

    Computed selectors are called with the container; anything they raise
    propagates so the caller can turn the item into an error record.
    """
    for selector in selectors:
        if isinstance(selector, ComputedSelector):
            value = selector.evaluate(container)
            if value is not None and str(value).strip():
                return TitleMatch(text=str(value).strip(), selector=selector.raw)
            continue

        for node in _select(scope, selector)[:1]:
            value, _ = first_attribute(node, attributes, scope)
            if value:
                href = scope.resolve_url(node.attributes.get("href"))
                return TitleMatch(text=value, selector=selector.raw, href=href)
    return None


def extract_link(scope: LightDomScope, selectors: Sequence[Selector]) -> Optional[LinkMatch]:
    """First selector whose match carries an href wins."""
    for selector in selectors:
        if isinstance(selector, ComputedSelector):
            continue
        for node in _select(scope, selector):
            url = scope.resolve_url(node.attributes.get("href"))
            if url:
                return LinkMatch(url=url, selector=selector.raw)
            break
    return None


def extract_images(
    scope: LightDomScope,
    selectors: Sequence[Selector],
    attributes: Sequence[str],
    image_cdn: Optional[str] = None,
) -> MediaMatch:
    """Union of attribute values and background images across all selectors."""
    urls: list[str] = []
    used: list[str] = []
    for node, selector in _unique_nodes(scope, selectors):
        candidates = [first_attribute(node, attributes, scope, resolve=False)[0], background_image(node)]
        for raw_value in candidates:
            url = prepare_image_url(raw_value, scope.base_url, image_cdn)
            if url and url not in urls:
                urls.append(url)
                if selector.raw not in used:
                    used.append(selector.raw)
    return MediaMatch(urls=urls, selectors=used)


def extract_videos(scope: LightDomScope, selectors: Sequence[Selector], attributes: Sequence[str]) -> MediaMatch:
    urls: list[str] = []
    used: list[str] = []
    for node, selector in _unique_nodes(scope, selectors):
        value, _ = first_attribute(node, attributes, scope)
        if value and value not in urls:
            urls.append(value)
            if selector.raw not in used:
                used.append(selector.raw)
    return MediaMatch(urls=urls, selectors=used)


def extract_prices(scope: LightDomScope, selectors: Sequence[Selector], attributes: Sequence[str]) -> list[PriceEntry]:
    """One entry per matched element; multiple prices per item are expected."""
    entries = []
    for node, selector in _unique_nodes(scope, selectors):
        value, attribute = first_attribute(node, attributes, scope)
        if value:
            entries.append(PriceEntry(value=value, selector=selector.raw, attribute=attribute))
    return entries


def extract_availability(scope: LightDomScope, selectors: Sequence[Selector]) -> Optional[str]:
    """Raw text of the first not-available selector that matches, else None."""
    for selector in selectors:
        if isinstance(selector, ComputedSelector):
            continue
        if _select(scope, selector):
            return selector.raw
    return None
