"""Selector model: CSS, shadow-host and computed selectors plus query scopes.

Configuration values are parsed once into one of three selector variants so
the extraction path branches on the type instead of sniffing string syntax on
every call:

- ``CssSelector``: a plain CSS selector evaluated against the light DOM.
- ``ShadowSelector``: a CSS selector evaluated inside the open shadow roots
  of every element matching ``host``.
- ``ComputedSelector``: a ``lambda el: ...`` expression compiled at load time
  and called with the container element. Only value fields (title) use it.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Union
from urllib.parse import urljoin

from pydantic import BaseModel, ConfigDict, Field, field_validator
from selectolax.parser import HTMLParser, Node

logger = logging.getLogger(__name__)

# Tag the page snapshot uses to inline an open shadow root under its host
SHADOW_ROOT_TAG = "shadow-root"

_COMPUTED_PATTERN = re.compile(r"^\s*lambda\b")
_LEGACY_SHADOW_MARKER = "::shadow::"

_SAFE_BUILTINS = {
    "str": str,
    "len": len,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
    "sorted": sorted,
    "list": list,
    "filter": filter,
    "map": map,
    "int": int,
    "float": float,
    "None": None,
    "True": True,
    "False": False,
}


class SelectorConfigError(ValueError):
    """Raised when a selector entry cannot be parsed or compiled."""


def node_text(node: Node) -> str:
    """Visible text of a node with whitespace collapsed."""
    return " ".join(node.text(deep=True, separator=" ").split())


def split_selector_list(css: str) -> List[str]:
    """Split a CSS selector list on top-level commas only."""
    parts: List[str] = []
    depth = 0
    quote = ""
    start = 0
    for i, char in enumerate(css):
        if quote:
            if char == quote and css[i - 1] != "\\":
                quote = ""
        elif char in "'\"":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            parts.append(css[start:i])
            start = i + 1
    parts.append(css[start:])
    return [part.strip() for part in parts if part.strip()]


# =============================================================================
# Query scopes
# =============================================================================


class QueryScope(Protocol):
    """Something CSS selectors can be evaluated against."""

    base_url: str

    def query_all(self, css: str) -> List[Node]:
        ...


@dataclass
class LightDomScope:
    """Regular DOM scope: a parsed document or a single element."""

    node: Union[HTMLParser, Node]
    base_url: str = ""

    def query_all(self, css: str) -> List[Node]:
        return list(self.node.css(css))

    def resolve_url(self, value: Optional[str]) -> Optional[str]:
        """Resolve a relative href/src against the page URL."""
        if not value:
            return None
        value = value.strip()
        if not value or value.startswith(("javascript:", "mailto:", "tel:")):
            return None
        return urljoin(self.base_url, value) if self.base_url else value


@dataclass
class ShadowHostScope:
    """Scope covering the open shadow roots of ``host`` elements under ``parent``."""

    parent: LightDomScope
    host: str

    @property
    def base_url(self) -> str:
        return self.parent.base_url

    def query_all(self, css: str) -> List[Node]:
        scoped = ", ".join(f"{self.host} > {SHADOW_ROOT_TAG} {part}" for part in split_selector_list(css))
        return self.parent.query_all(scoped)


# =============================================================================
# Selector variants
# =============================================================================


@dataclass(frozen=True)
class CssSelector:
    """Plain CSS selector."""

    css: str

    @property
    def raw(self) -> str:
        return self.css

    def select(self, scope: LightDomScope) -> List[Node]:
        return scope.query_all(self.css)


@dataclass(frozen=True)
class ShadowSelector:
    """CSS selector evaluated inside the shadow roots of ``host`` elements."""

    host: str
    css: str

    @property
    def raw(self) -> str:
        return f"{self.host}{_LEGACY_SHADOW_MARKER}{self.css}"

    def select(self, scope: LightDomScope) -> List[Node]:
        return ShadowHostScope(scope, self.host).query_all(self.css)


@dataclass(frozen=True)
class ComputedSelector:
    """Compiled ``lambda el: ...`` expression producing a field value."""

    source: str
    func: Callable[[Node], Any] = field(compare=False, repr=False)

    @property
    def raw(self) -> str:
        return self.source

    def select(self, scope: LightDomScope) -> List[Node]:
        # Computed selectors yield values, not elements
        return []

    def evaluate(self, container: Node) -> Any:
        return self.func(container)


Selector = Union[CssSelector, ShadowSelector, ComputedSelector]


def compile_computed(source: str) -> ComputedSelector:
    """
    Compile a computed selector expression.

    The expression runs with a few builtins plus ``text(node)`` for collapsed
    visible text. Expressions come from trusted configuration only: the reduced
    builtins keep them short, they do not sandbox them.

    Raises:
        SelectorConfigError: If the expression does not compile or is not callable
    """
    namespace = {"__builtins__": _SAFE_BUILTINS, "text": node_text}
    try:
        code = compile(source.strip(), "<computed-selector>", "eval")
        func = eval(code, namespace, {})
    except SyntaxError as e:
        raise SelectorConfigError(f"Computed selector does not compile: {source!r}: {e}") from e
    if not callable(func):
        raise SelectorConfigError(f"Computed selector is not callable: {source!r}")
    return ComputedSelector(source=source.strip(), func=func)


def parse_selector(entry: Union[str, dict, Selector]) -> Selector:
    """
    Parse one configuration entry into a selector variant.

    Args:
        entry: CSS string, ``"host::shadow::inner"`` string, ``lambda`` string,
               or a mapping ``{"host": ..., "css": ...}``

    Returns:
        Parsed selector

    Raises:
        SelectorConfigError: On empty entries, unknown shapes or compile errors
    """
    if isinstance(entry, (CssSelector, ShadowSelector, ComputedSelector)):
        return entry

    if isinstance(entry, dict):
        host = str(entry.get("host", "")).strip()
        css = str(entry.get("css", "")).strip()
        if not host or not css:
            raise SelectorConfigError(f"Shadow selector needs 'host' and 'css': {entry!r}")
        return ShadowSelector(host=host, css=css)

    if not isinstance(entry, str):
        raise SelectorConfigError(f"Unsupported selector entry: {entry!r}")

    text = entry.strip()
    if not text:
        raise SelectorConfigError("Empty selector entry")

    if _COMPUTED_PATTERN.match(text):
        return compile_computed(text)

    if _LEGACY_SHADOW_MARKER in text:
        host, _, css = text.partition(_LEGACY_SHADOW_MARKER)
        return parse_selector({"host": host, "css": css})

    return CssSelector(css=text)


def parse_selectors(entries: List[Union[str, dict, Selector]]) -> List[Selector]:
    """Parse an ordered selector list, keeping order."""
    return [parse_selector(entry) for entry in entries]


# =============================================================================
# Selector catalog
# =============================================================================

DEFAULT_PRODUCT_ITEM_SELECTORS = [
    "[data-product-id]",
    ".product-item",
    ".product-card",
    ".product-box",
    ".product-tile",
    ".productItem",
    ".plp-card",
    "li.product",
    "article.product",
    ".products .product",
    ".product-list .product-item",
    ".product-grid .product-item",
    "div[class*='product'][class*='card']",
]

DEFAULT_PRODUCT_PAGE_SELECTORS = [
    ".product-list",
    ".product-grid",
    ".products",
    "#product-list",
    "[data-testid='product-grid']",
    "main",
]

DEFAULT_TITLE_SELECTORS = [
    ".product-name a",
    ".product-title a",
    ".product-name",
    ".product-title",
    ".product-item-name",
    "h2 a",
    "h3 a",
    "h2",
    "h3",
    "a[title]",
]

DEFAULT_IMAGE_SELECTORS = [
    "img",
    "picture source",
    "[data-bg]",
    "[style*='background-image']",
]

DEFAULT_LINK_SELECTORS = [
    "a.product-link",
    "a.product-item-link",
    "a[href*='/p/']",
    "a[href]",
]

DEFAULT_PRICE_SELECTORS = [
    ".sale-price",
    ".discounted-price",
    ".current-price",
    ".product-price",
    ".old-price",
    ".price",
    "[data-price]",
]

DEFAULT_VIDEO_SELECTORS = [
    "video",
    "video source",
    "iframe[src*='youtube']",
    "iframe[src*='vimeo']",
]

DEFAULT_NOT_AVAILABLE_SELECTORS = [
    ".out-of-stock",
    ".sold-out",
    ".soldout",
    ".tukendi",
    ".stock-out",
    "[data-stock='out']",
]

DEFAULT_ITEM_COUNTER_SELECTORS = [
    ".total-count",
    ".product-count",
    ".result-count",
    ".search-result-count",
    ".total-products",
]

DEFAULT_COMMON_EXCLUDED_PATTERNS = [
    "login",
    "signin",
    "register",
    "account",
    "wishlist",
    "favorite",
    "cart",
    "checkout",
    "javascript:",
    "mailto:",
    "tel:",
    "facebook.com",
    "instagram.com",
    "twitter.com",
]

DEFAULT_PAGINATION_POSTFIX = [
    "?page=",
    "&page=",
    "/page/",
    "?p=",
    "&p=",
    "?pg=",
    "&pg=",
    "?sayfa=",
    "&sayfa=",
]


class SelectorCatalog(BaseModel):
    """Ordered selector sets per semantic field, loaded once per deployment."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    product_item: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_PRODUCT_ITEM_SELECTORS))
    product_page: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_PRODUCT_PAGE_SELECTORS))
    title: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_TITLE_SELECTORS))
    image: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_IMAGE_SELECTORS))
    link: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_LINK_SELECTORS))
    price: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_PRICE_SELECTORS))
    video: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_VIDEO_SELECTORS))
    not_available: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_NOT_AVAILABLE_SELECTORS))
    item_counter: List[Selector] = Field(default_factory=lambda: parse_selectors(DEFAULT_ITEM_COUNTER_SELECTORS))

    title_attributes: List[str] = Field(default_factory=lambda: ["innerText", "textContent", "title", "alt"])
    image_attributes: List[str] = Field(default_factory=lambda: ["src", "data-src", "data-original", "srcset", "data-srcset", "data-bg"])
    price_attributes: List[str] = Field(default_factory=lambda: ["innerText", "textContent", "content", "data-price"])
    video_attributes: List[str] = Field(default_factory=lambda: ["src", "data-src", "poster"])

    common_excluded_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_COMMON_EXCLUDED_PATTERNS))
    pagination_postfix: List[str] = Field(default_factory=lambda: list(DEFAULT_PAGINATION_POSTFIX))

    @field_validator(
        "product_item", "product_page", "title", "image", "link",
        "price", "video", "not_available", "item_counter",
        mode="before",
    )
    @classmethod
    def _parse_entries(cls, value):
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            value = [value]
        return parse_selectors(list(value))

    def raw(self, field_name: str) -> List[str]:
        """Configuration text of one selector set, in order."""
        return [selector.raw for selector in getattr(self, field_name)]


def load_catalog(path: Optional[Union[str, Path]] = None) -> SelectorCatalog:
    """
    Load selector sets from a JSON file.

    Keys missing from the file keep their built-in defaults.

    Args:
        path: JSON file path; empty or None returns the built-in catalog

    Returns:
        SelectorCatalog

    Raises:
        SelectorConfigError: If any selector entry fails to parse or compile
    """
    if not path:
        return SelectorCatalog()

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    try:
        catalog = SelectorCatalog(**data)
    except SelectorConfigError:
        raise
    except ValueError as e:
        # pydantic wraps validator errors; surface the selector problem
        raise SelectorConfigError(str(e)) from e

    logger.info(f"Loaded selector catalog from {path}")
    return catalog
