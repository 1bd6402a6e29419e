"""Shared URL sanitization and normalization helpers."""

from __future__ import annotations

import re
from typing import FrozenSet, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REPEATED_SLASHES_PATTERN = re.compile(r"/{2,}")
TRAILING_SLASHES_PATTERN = re.compile(r"/+$")
HTTP_URL_SCHEMES: FrozenSet[str] = frozenset({"http", "https"})
WWW_PREFIX = "www."
DEFAULT_TRACKING_QUERY_KEYS: FrozenSet[str] = frozenset(
    {
        "gclid",
        "fbclid",
        "yclid",
        "mc_cid",
        "mc_eid",
        "ref",
        "ref_src",
        "igshid",
    }
)


def sanitize_url(url: str) -> str:
    """Remove shell-escaping artifacts and surrounding whitespace."""
    if not url:
        return ""
    return str(url).replace("\\", "").strip()


def is_http_url(url: str) -> bool:
    """Return True when a target is a valid HTTP(S) URL."""
    sanitized = sanitize_url(url)
    if not sanitized:
        return False
    parsed = urlsplit(sanitized)
    return parsed.scheme.lower() in HTTP_URL_SCHEMES and bool(parsed.netloc)


def url_hostname(url: str) -> Optional[str]:
    """Return the lowercase hostname of ``url``, or None when it has none."""
    try:
        hostname = urlsplit(sanitize_url(url)).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def normalize_history_url(url: str) -> str:
    """Key used to collapse browsing-history duplicates.

    Lowercases the whole URL and drops one trailing slash, nothing else, so
    entries that differ only by case or a trailing slash share a key.
    """
    lowered = (url or "").lower()
    if lowered.endswith("/"):
        return lowered[:-1]
    return lowered


def canonicalize_url(
    url: str,
    *,
    tracking_query_keys: Optional[set[str] | FrozenSet[str]] = None,
) -> str:
    """Normalize a URL into the key used to detect already-saved pages.

    Lowercases the host, strips a leading ``www.``, drops the fragment,
    ``utm_*`` and other tracking parameters, sorts the remaining query and
    strips trailing slashes from the path. Unparseable input is returned
    sanitized but otherwise untouched.
    """
    sanitized = sanitize_url(url)
    if not sanitized:
        return ""

    try:
        parsed = urlsplit(sanitized)
        port = parsed.port
    except ValueError:
        return sanitized
    if not parsed.scheme or not parsed.netloc:
        return sanitized

    scheme = parsed.scheme.lower()
    hostname = (parsed.hostname or "").lower()
    if not hostname:
        return sanitized
    if hostname.startswith(WWW_PREFIX):
        hostname = hostname[len(WWW_PREFIX) :]

    include_port = port is not None and not (
        (scheme == "http" and port == 80) or (scheme == "https" and port == 443)
    )
    netloc = f"{hostname}:{port}" if include_port else hostname

    path = REPEATED_SLASHES_PATTERN.sub("/", parsed.path or "")
    path = TRAILING_SLASHES_PATTERN.sub("", path) or "/"

    blocked_keys = tracking_query_keys or DEFAULT_TRACKING_QUERY_KEYS
    filtered_pairs = []
    for key, value in parse_qsl(parsed.query, keep_blank_values=True):
        lowered = key.lower()
        if lowered.startswith("utm_") or lowered in blocked_keys:
            continue
        filtered_pairs.append((key, value))
    filtered_pairs.sort()

    query = urlencode(filtered_pairs, doseq=True)
    return urlunsplit((scheme, netloc, path, query, ""))
