"""Browsing-history filtering and candidate selection."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from memex.config import AI_DESIRED_SELECTION, MAX_URLS_TO_SEND_AI
from memex.url_utils import normalize_history_url, sanitize_url, url_hostname

logger = logging.getLogger(__name__)

RankFunc = Callable[[str, int], List[str]]

BLOCKED_DOMAINS = (
    # Social media
    "twitter.com",
    "x.com",
    "facebook.com",
    "instagram.com",
    "linkedin.com",
    "reddit.com",
    "tiktok.com",
    "snapchat.com",
    "pinterest.com",
    # Video platforms
    "youtube.com",
    "youtu.be",
    "twitch.tv",
    "vimeo.com",
    # Email and chat
    "mail.google.com",
    "outlook.live.com",
    "outlook.office.com",
    "yahoo.com/mail",
    "slack.com",
    "discord.com",
    "teams.microsoft.com",
    "zoom.us",
    # Cloud storage
    "drive.google.com",
    "dropbox.com",
    "onedrive.live.com",
    "docs.google.com",
    # Package registries and CDNs
    "npmjs.com",
    "npm.io",
    "cdnjs.com",
    "unpkg.com",
    "jsdelivr.net",
    # Icon libraries
    "lucide.dev",
    "fontawesome.com",
    "heroicons.com",
    "flaticon.com",
    # Search result pages
    "google.com/search",
    "bing.com/search",
    "duckduckgo.com/",
    # Analytics
    "analytics.google.com",
    # Code hosting
    "github.com",
    "gitlab.com",
    "bitbucket.org",
)

BLOCKED_URL_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        # Auth flows
        r"/(login|signin|sign-in|signup|sign-up|register|auth|oauth|sso|callback|logout)",
        # API endpoints
        r"/api/",
        r"/graphql",
        # Official documentation
        r"/docs?/",
        r"/documentation/",
        r"/guide",
        r"/guides/",
        r"/reference",
        r"/getting-started",
        r"/quickstart",
        r"readthedocs\.io",
        # Downloads and media
        r"\.(pdf|zip|rar|tar|gz|exe|dmg|pkg|deb|rpm)$",
        r"\.(jpg|jpeg|png|gif|svg|webp|mp4|mp3|wav|avi|mov)$",
        # Local development
        r"localhost",
        r"127\.0\.0\.1",
        r"192\.168\.",
        r"\.local",
        r"^file://",
        # Redirect parameters
        r"[?&](redirect|return|returnUrl|next|continue|callback)=",
    )
)


@dataclass
class HistoryEntry:
    """One browsing-history row."""

    url: str
    title: str = ""
    visit_time: Optional[datetime] = None
    visit_count: int = 1
    typed_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        """Build an entry from an export row (camelCase or snake_case keys)."""
        visit_count = data.get("visit_count", data.get("visitCount", 1))
        typed_count = data.get("typed_count", data.get("typedCount"))
        return cls(
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            visit_time=_parse_visit_time(data.get("visit_time", data.get("visitTime"))),
            visit_count=int(visit_count or 0),
            typed_count=int(typed_count) if typed_count is not None else None,
        )


def _parse_visit_time(value: Any) -> Optional[datetime]:
    """Accept epoch milliseconds, epoch seconds or an ISO-8601 string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10_000_000_000 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("unparseable visit time: %r", value)
        return None


def _split_blocked_entry(entry: str) -> Tuple[str, str]:
    domain, slash, path = entry.partition("/")
    return domain, slash + path


_BLOCKED_HOSTS = tuple(_split_blocked_entry(entry) for entry in BLOCKED_DOMAINS)


def _host_is_blocked(url: str) -> bool:
    host = url_hostname(url)
    if not host:
        return False
    path = urlsplit(sanitize_url(url)).path or "/"
    for domain, path_prefix in _BLOCKED_HOSTS:
        if host == domain or host.endswith("." + domain):
            if not path_prefix or path.lower().startswith(path_prefix):
                return True
    return False


def is_blocked(url: str) -> bool:
    """True when ``url``'s host is on the domain blocklist or it matches a blocked pattern."""
    if _host_is_blocked(url or ""):
        return True
    return any(pattern.search(url or "") for pattern in BLOCKED_URL_PATTERNS)


def apply_blocklist(entries: Iterable[HistoryEntry]) -> List[HistoryEntry]:
    """Drop blocked entries. Pure filter, so applying it twice changes nothing."""
    return [entry for entry in entries if not is_blocked(entry.url)]


def deduplicate_by_url(entries: Iterable[HistoryEntry]) -> List[HistoryEntry]:
    """Collapse entries sharing a normalized URL, keeping the most visited one."""
    seen: Dict[str, HistoryEntry] = {}
    for entry in entries:
        key = normalize_history_url(entry.url)
        existing = seen.get(key)
        if existing is None or entry.visit_count > existing.visit_count:
            seen[key] = entry
    return list(seen.values())


def _visit_sort_key(entry: HistoryEntry) -> float:
    if entry.visit_time is None:
        return float("-inf")
    visit_time = entry.visit_time
    if visit_time.tzinfo is None:
        visit_time = visit_time.replace(tzinfo=timezone.utc)
    return visit_time.timestamp()


def prepare_ranking_payload(
    entries: Iterable[HistoryEntry],
    max_send: int = MAX_URLS_TO_SEND_AI,
) -> Tuple[str, List[HistoryEntry]]:
    """Most recent ``max_send`` entries as the compact JSON the ranker reads."""
    ordered = sorted(entries, key=_visit_sort_key, reverse=True)[:max_send]
    url_data = [
        {
            "index": position,
            "url": entry.url,
            "title": entry.title,
            "visitCount": entry.visit_count,
        }
        for position, entry in enumerate(ordered, start=1)
    ]
    return json.dumps(url_data, indent=2), ordered


def select_candidates(
    entries: Iterable[HistoryEntry],
    rank_func: RankFunc,
    max_send: int = MAX_URLS_TO_SEND_AI,
    desired: int = AI_DESIRED_SELECTION,
) -> List[str]:
    """Blocklist, dedup, cap and hand the survivors to the ranking collaborator."""
    filtered = deduplicate_by_url(apply_blocklist(entries))
    if not filtered:
        return []
    payload, _ = prepare_ranking_payload(filtered, max_send=max_send)
    return rank_urls(payload, rank_func, desired)


def rank_urls(payload: str, rank_func: RankFunc, desired: int) -> List[str]:
    selected = rank_func(payload, desired)
    if not isinstance(selected, list):
        return []
    return [url for url in selected if isinstance(url, str) and url][:desired]
