from __future__ import annotations

import re
from urllib.parse import parse_qsl, urldefrag, urlencode, urljoin, urlsplit, urlunsplit

TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "fbclid",
}

SKIPPED_EXTENSIONS = (
    ".webp", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".ico", ".bmp",
    ".pdf", ".zip", ".gz", ".tar", ".rar", ".7z",
    ".mp3", ".mp4", ".avi", ".mov", ".woff", ".woff2", ".ttf",
)

ORIGIN_RE = re.compile(r"^https?://[^/]+", re.IGNORECASE)


def normalize_url(raw_url: str) -> str:
    parts = urlsplit(raw_url.strip())
    scheme = parts.scheme.lower() or "https"
    netloc = parts.netloc.lower()
    if not netloc and parts.path:
        netloc = parts.path.lower()
        path = ""
    else:
        path = parts.path or "/"
    path = re.sub(r"/+", "/", path)

    filtered_qs = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=False) if k.lower() not in TRACKING_PARAMS]
    query = urlencode(filtered_qs)
    return urlunsplit((scheme, netloc, path, query, ""))


def resolve_link(base_url: str, href: str) -> str | None:
    href = (href or "").strip()
    if not href or href.startswith(("mailto:", "tel:", "javascript:", "data:")):
        return None
    absolute, _fragment = urldefrag(urljoin(base_url, href))
    if urlsplit(absolute).scheme not in ("http", "https"):
        return None
    return normalize_url(absolute)


def is_within_site(url: str, root_url: str) -> bool:
    return url.startswith(root_url)


def has_skipped_extension(url: str) -> bool:
    return urlsplit(url).path.lower().endswith(SKIPPED_EXTENSIONS)


def strip_origin(url: str) -> str:
    return ORIGIN_RE.sub("", url) or "/"
