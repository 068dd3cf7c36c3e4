"""Field validity predicates for extracted product records."""

import re
from typing import Any, Optional
from urllib.parse import quote, unquote, urlsplit

# Path words and query strings that mark navigation, auth or commerce pages
BLOCKED_LINK_KEYWORDS = frozenset([
    "login",
    "auth",
    "facebook",
    "twitter",
    "instagram",
    "linkedin",
    "google",
    "signin",
    "signup",
    "register",
    "account",
    "profile",
    "settings",
    "admin",
    "api",
    "oauth",
    "social",
    "share",
    "cart",
    "checkout",
    "payment",
    "billing",
])

_HTTP_URL = re.compile(r"^https?://[^\s]+$", re.IGNORECASE)

IMAGE_PATTERNS = [
    re.compile(r"\.(jpg|jpeg|png|gif|webp|bmp|svg|avif)(\?|$)", re.IGNORECASE),
    re.compile(r"cdn/shop/files/[^?]+\?(.*width=\d+)", re.IGNORECASE),  # Shopify
    re.compile(r"/is/image/[^/]+/[^?]+\?.+", re.IGNORECASE),  # Akamai / Scene7
    re.compile(r"/image/upload/[^/]*/v\d+/", re.IGNORECASE),  # Cloudinary
    re.compile(r"/(mnresize|resize|transform)/\d+/\d+/", re.IGNORECASE),
    re.compile(r"(jpg|jpeg|png|gif|webp|bmp|svg)\d*$", re.IGNORECASE),
    re.compile(r"/(media|images?|photos?|assets|content)/", re.IGNORECASE),
]

VIDEO_PATTERNS = [
    re.compile(r"\.(mp4|webm|ogg|avi|mov|wmv|flv|mkv|m4v|3gp)(\?|$)", re.IGNORECASE),
    re.compile(r"cdn/shop/(files|videos)/[^?]+\.(mp4|webm|m3u8)", re.IGNORECASE),
    re.compile(r"(youtube\.com/(watch|embed)|youtu\.be/)", re.IGNORECASE),
    re.compile(r"(player\.)?vimeo\.com/", re.IGNORECASE),
    re.compile(r"(fast\.)?wistia\.(com|net)/", re.IGNORECASE),
    re.compile(r"(content\.)?jwplatform\.com/|cdn\.jwplayer\.com/", re.IGNORECASE),
    re.compile(r"players\.brightcove\.net/", re.IGNORECASE),
    re.compile(r"(cloudfront\.net|amazonaws\.com|cloudflare).*\.(mp4|webm|m3u8|mpd)", re.IGNORECASE),
    re.compile(r"\.(m3u8|mpd)(\?|$)", re.IGNORECASE),
    re.compile(r"/video/upload/[^/]*/v\d+/", re.IGNORECASE),  # Cloudinary
]


def is_valid_text(value: Any) -> bool:
    """Non-empty after trim and not a stringified undefined/null."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    return bool(text) and text.lower() not in ("undefined", "null")


def is_valid_url(url: Optional[str]) -> bool:
    """
    Absolute http(s) URL that does not point at navigation pages.

    A path word (segments split on ``/`` then ``-``) equal to a blocked
    keyword fails, as does a query string containing one.
    """
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return False

    for segment in parts.path.lower().split("/"):
        for word in segment.split("-"):
            if word in BLOCKED_LINK_KEYWORDS:
                return False

    query = parts.query.lower()
    if query and any(keyword in query for keyword in BLOCKED_LINK_KEYWORDS):
        return False
    return True


def prepare_media_url(url: str) -> Optional[str]:
    """Protocol-relative to https, then decode and re-encode safely."""
    url = url.strip()
    if url.startswith("//"):
        url = f"https:{url}"
    try:
        return quote(unquote(url), safe=":/?#[]@!$&'()*+,;=%~")
    except (TypeError, ValueError):
        return None


def _matches_media(url: Optional[str], patterns: list[re.Pattern]) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    prepared = prepare_media_url(url)
    if not prepared or not _HTTP_URL.match(prepared):
        return False
    return any(pattern.search(prepared) for pattern in patterns)


def is_valid_image_url(url: Optional[str]) -> bool:
    """Known image extension or a CDN path that serves images."""
    return _matches_media(url, IMAGE_PATTERNS)


def is_valid_video_url(url: Optional[str]) -> bool:
    """Known video extension, platform or streaming manifest."""
    return _matches_media(url, VIDEO_PATTERNS)
