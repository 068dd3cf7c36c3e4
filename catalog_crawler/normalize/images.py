"""Image URL preparation: srcset selection and relative URL resolution."""

import re
from typing import Optional
from urllib.parse import urljoin

_SRCSET_SPLIT = re.compile(r",\s+")
_DESCRIPTOR = re.compile(r"^(?P<url>\S+)\s+(?P<size>\d+(?:\.\d+)?)(?P<unit>[wx])$")


def middle_srcset_url(value: str) -> str:
    """
    Pick the middle candidate of a srcset by width.

    ``"a.jpg 320w, b.jpg 640w, c.jpg 1280w"`` gives ``b.jpg``; with an even
    number of candidates the lower middle wins. Values without descriptors
    are returned unchanged.
    """
    candidates = []
    for part in _SRCSET_SPLIT.split(value.strip()):
        match = _DESCRIPTOR.match(part.strip())
        if match:
            candidates.append((float(match.group("size")), match.group("url")))

    if not candidates:
        return value.strip().split()[0] if value.strip() else value

    candidates.sort(key=lambda c: c[0])
    return candidates[(len(candidates) - 1) // 2][1]


def cdn_base(image_cdn: Optional[str]) -> str:
    """First URL of a comma separated image CDN setting."""
    if not image_cdn:
        return ""
    return image_cdn.split(",")[0].strip()


def prepare_image_url(value: Optional[str], base_url: str = "", image_cdn: Optional[str] = None) -> Optional[str]:
    """
    Turn a raw attribute value into one absolute image URL.

    Args:
        value: src, srcset or background-image value
        base_url: Page URL used for relative paths
        image_cdn: Site image CDN base, preferred over the page URL

    Returns:
        Absolute URL, or None for empty and ``data:`` placeholder values
    """
    if not value:
        return None

    value = value.strip()
    if not value or value.startswith("data:"):
        return None

    url = middle_srcset_url(value)
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith(("http://", "https://")):
        return url

    base = cdn_base(image_cdn) or base_url
    return urljoin(base, url) if base else url
