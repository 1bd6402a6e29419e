"""URL retrieval and main-content extraction.

``extract`` is the single entry point: given raw HTML it extracts the readable
article, given only a URL it downloads the page first. ``None`` means "nothing
worth saving here" and is not an error; transport failures raise
``FetchError`` with a reason suitable for showing to the user.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import requests
import trafilatura

from memex.config import (
    CONNECTIVITY_PROBE_TIMEOUT,
    CONNECTIVITY_PROBE_URL,
    EXCERPT_CHARS,
    FETCH_TIMEOUT,
    MIN_CONTENT_LENGTH,
    USER_AGENT,
    WORDS_PER_MINUTE,
)
from memex.core.exceptions import FetchError
from memex.html import extract_main_text
from memex.url_utils import sanitize_url

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 220

SITE_NOT_FOUND = "Site not found - Invalid URL"
CONNECTION_TIMEOUT = "Connection timeout - Site took too long to respond"
CONNECTION_REFUSED = "Connection refused - Site is not accessible"
CONNECTION_RESET = "Connection reset - Site closed the connection"
CERTIFICATE_ERROR = "SSL certificate error - Site security certificate is invalid"

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "name resolution",
    "failed to resolve",
    "no address associated",
)


@dataclass
class ExtractedContent:
    """Readable article text pulled out of a page."""

    title: str
    content: str
    word_count: int
    content_length: int
    excerpt: str = ""
    byline: Optional[str] = None
    reading_time: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def count_words(text: str) -> int:
    return len((text or "").split())


def describe_fetch_error(exc: BaseException) -> str:
    """Map a transport exception to a human-readable reason."""
    if isinstance(exc, requests.exceptions.SSLError):
        return CERTIFICATE_ERROR
    if isinstance(exc, requests.exceptions.Timeout):
        return CONNECTION_TIMEOUT
    if isinstance(exc, requests.exceptions.HTTPError):
        response = getattr(exc, "response", None)
        if response is not None:
            return f"Site returned HTTP {response.status_code}"
        return f"Failed to fetch page - {exc}"

    message = str(exc).lower()
    if isinstance(exc, requests.exceptions.ConnectionError):
        if any(marker in message for marker in _DNS_FAILURE_MARKERS):
            return SITE_NOT_FOUND
        if "refused" in message:
            return CONNECTION_REFUSED
        if "reset" in message or "aborted" in message:
            return CONNECTION_RESET
        return f"Failed to reach site - {exc}"
    if isinstance(exc, requests.exceptions.InvalidURL) or isinstance(
        exc, requests.exceptions.MissingSchema
    ):
        return SITE_NOT_FOUND
    return f"Failed to fetch page - {exc}"


def fetch_html(url: str, timeout: Optional[float] = None) -> str:
    """Download a page with a browser-like user agent, raising ``FetchError``."""
    requested_url = sanitize_url(url)
    if not requested_url:
        raise FetchError("URL is empty.", url=url)

    effective_timeout = timeout if timeout is not None else FETCH_TIMEOUT
    started = time.perf_counter()
    try:
        response = requests.get(
            requested_url,
            headers={"User-Agent": USER_AGENT},
            timeout=effective_timeout,
        )
        response.raise_for_status()
    except requests.exceptions.RequestException as exc:
        reason = describe_fetch_error(exc)
        logger.debug(
            "retrieval fetch failed url=%s elapsed=%.2fms error=%s",
            requested_url,
            (time.perf_counter() - started) * 1000,
            exc,
        )
        raise FetchError(reason, url=requested_url, code=type(exc).__name__) from exc

    logger.debug(
        "retrieval fetched url=%s status=%s bytes=%d elapsed=%.2fms",
        requested_url,
        response.status_code,
        len(response.content or b""),
        (time.perf_counter() - started) * 1000,
    )
    return response.text or ""


def extract_from_html(
    html: str,
    url: Optional[str] = None,
    min_content_length: Optional[int] = None,
) -> Optional[ExtractedContent]:
    """Extract the main article from raw HTML, or None when it is too thin."""
    minimum = MIN_CONTENT_LENGTH if min_content_length is None else min_content_length
    if not html or not html.strip():
        return None

    extracted = _extract_with_trafilatura(html, url)
    if not extracted.get("content"):
        fallback = extract_main_text(html)
        extracted["content"] = fallback.get("content") or ""
        extracted["title"] = extracted.get("title") or fallback.get("title") or ""
        extracted["source"] = "html_fallback"

    content = (extracted.get("content") or "").strip()
    if len(content) < minimum:
        logger.debug(
            "retrieval skipped thin page url=%s chars=%d source=%s",
            url,
            len(content),
            extracted.get("source"),
        )
        return None

    word_count = count_words(content)
    title = _clean_title(extracted.get("title", "")) or _derive_title(content, url or "")
    excerpt = (extracted.get("excerpt") or "").strip() or content[:EXCERPT_CHARS]
    return ExtractedContent(
        title=title,
        content=content,
        word_count=word_count,
        content_length=len(content),
        excerpt=excerpt,
        byline=extracted.get("byline") or None,
        reading_time=math.ceil(word_count / WORDS_PER_MINUTE),
    )


def extract(
    url: str,
    html: Optional[str] = None,
    timeout: Optional[float] = None,
    min_content_length: Optional[int] = None,
) -> Optional[ExtractedContent]:
    """Extract readable content from supplied HTML or by fetching ``url``."""
    if html is None:
        html = fetch_html(url, timeout=timeout)
    return extract_from_html(html, url=url, min_content_length=min_content_length)


def _extract_with_trafilatura(html: str, source_url: Optional[str]) -> Dict[str, Any]:
    """Best-effort Trafilatura extraction with metadata."""
    try:
        extracted = trafilatura.extract(
            html,
            url=source_url,
            output_format="txt",
            include_comments=False,
            include_tables=False,
        )
    except Exception as exc:
        logger.debug(
            "retrieval trafilatura extraction failed url=%s error=%s", source_url, exc
        )
        return {"content": "", "source": "trafilatura"}

    if not extracted:
        return {"content": "", "source": "trafilatura"}

    result: Dict[str, Any] = {"content": str(extracted).strip(), "source": "trafilatura"}
    try:
        metadata = trafilatura.extract_metadata(html, default_url=source_url)
    except Exception as exc:
        logger.debug(
            "retrieval metadata extraction failed url=%s error=%s", source_url, exc
        )
        metadata = None
    if metadata is not None:
        result["title"] = getattr(metadata, "title", None) or ""
        result["byline"] = getattr(metadata, "author", None)
        result["excerpt"] = getattr(metadata, "description", None) or ""
    return result


def _clean_title(value: Optional[str]) -> str:
    if not value:
        return ""
    cleaned = str(value).strip().strip("#").strip()
    return cleaned[:MAX_TITLE_CHARS]


def _derive_title(content: str, url: str) -> str:
    """Derive a fallback title from content or URL."""
    for line in content.splitlines():
        cleaned = _clean_title(line)
        if cleaned:
            return cleaned
    return url[:MAX_TITLE_CHARS]


def check_connection(
    url: str = CONNECTIVITY_PROBE_URL,
    timeout: float = CONNECTIVITY_PROBE_TIMEOUT,
) -> bool:
    """Short HEAD probe against a host that is normally reachable."""
    try:
        response = requests.head(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
            allow_redirects=True,
        )
    except requests.exceptions.RequestException as exc:
        logger.debug("connectivity probe failed url=%s error=%s", url, exc)
        return False
    return response.status_code < 500
